"""Repository module for the collaborators the checkout engine talks to.

This module defines the contracts for the product catalog, the customer
directory, the sale store and the receipt dispatcher, together with in-memory
implementations used by the demo register and the tests. It serves as an
abstraction layer between the checkout workflow and data storage.
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from PosCheckout.enums import ReceiptChannel
from PosCheckout.exceptions import NotificationError, PersistenceError, ProductNotFound, SaleNotFound
from PosCheckout.models import Customer, Product, Sale, SaleSnapshot

logger = logging.getLogger(__name__)


class ProductCatalog:

    async def lookup(self, sku: str) -> Optional[Product]:
        raise NotImplementedError

    async def search(self, term: str, limit: int = 10) -> List[Product]:
        raise NotImplementedError


class CustomerDirectory:

    async def search(self, term: str, limit: int = 10) -> List[Customer]:
        raise NotImplementedError


class PersistenceStore:

    async def create_sale(self, snapshot: SaleSnapshot) -> str:
        """Store a sale atomically and return its id.

        Raises:
            PersistenceError: If the sale could not be stored
        """
        raise NotImplementedError


class NotificationDispatcher:

    async def send_receipt(self, channel: ReceiptChannel, target: str, payload: dict) -> None:
        """Deliver a receipt.

        Raises:
            NotificationError: If delivery failed
        """
        raise NotImplementedError


class InMemoryProductCatalog(ProductCatalog):
    """Product catalog backed by a dictionary keyed by product id."""

    def __init__(self):
        self._products: Dict[str, Product] = {}

    async def upsert(self, product: Product):
        self._products[product.id] = product

    async def add_products(self, products: List[Product]):
        for product in products:
            await self.upsert(product=product)

    async def get_product(self, product_id: str) -> Product:
        if product_id not in self._products:
            raise ProductNotFound(f"Product with id {product_id} does not exist")
        return self._products[product_id]

    async def lookup(self, sku: str) -> Optional[Product]:
        sku = sku.strip().upper()
        for product in self._products.values():
            if product.sku.upper() == sku:
                return product
        return None

    async def search(self, term: str, limit: int = 10) -> List[Product]:
        term = term.strip().lower()
        if not term:
            return []
        matches = [
            product for product in self._products.values()
            if term in product.name.lower() or term in product.sku.lower()
            or term in product.category.lower() or term in product.manufacturer.lower()
        ]
        return matches[:limit]


class InMemoryCustomerDirectory(CustomerDirectory):

    def __init__(self):
        self._customers: Dict[str, Customer] = {}

    async def upsert(self, customer: Customer):
        self._customers[customer.id] = customer

    async def search(self, term: str, limit: int = 10) -> List[Customer]:
        term = term.strip().lower()
        if not term:
            return []
        matches = [
            customer for customer in self._customers.values()
            if term in customer.name.lower() or term in customer.phone
        ]
        return matches[:limit]


class InMemorySaleRepository(PersistenceStore):
    """Sale store keyed by quotation number.

    Re-submitting an identical snapshot returns the id it was first stored
    under, so an operator retry never records the same sale twice.
    """

    def __init__(self):
        self._sales: Dict[str, Sale] = {}

    async def create_sale(self, snapshot: SaleSnapshot) -> str:
        existing = self._sales.get(snapshot.quotation_number)
        if existing is not None:
            if existing.snapshot == snapshot:
                return existing.id
            raise PersistenceError(f"Quotation number {snapshot.quotation_number} already used")
        sale = Sale(id=str(uuid.uuid4()), snapshot=snapshot)
        self._sales[snapshot.quotation_number] = sale
        return sale.id

    async def get_sale(self, quotation_number: str) -> Sale:
        if quotation_number not in self._sales:
            raise SaleNotFound(f"Sale with quotation number {quotation_number} does not exist")
        return self._sales[quotation_number]

    async def get_all_sales(self) -> List[Sale]:
        return list(self._sales.values())


class RecordingNotificationDispatcher(NotificationDispatcher):
    """Dispatcher that logs receipts and keeps them for inspection."""

    def __init__(self):
        self.sent: List[Tuple[ReceiptChannel, str, dict]] = []

    async def send_receipt(self, channel: ReceiptChannel, target: str, payload: dict) -> None:
        if not target:
            raise NotificationError(channel.value, "no destination given")
        logger.info("Sending %s receipt for bill #%s to %s", channel.value, payload.get("quotation_number"), target)
        self.sent.append((channel, target, payload))
