"""Sale completion workflow.

The orchestrator owns one register's checkout session and drives a sale
through an explicit state machine::

    COLLECTING_ITEMS -> NEEDS_BUYER_DETAILS -> NEEDS_PAYMENT_METHOD
        -> READY_TO_PERSIST -> PERSISTING -> PERSISTED
        -> DISPATCHING_RECEIPT -> COMPLETE -> (fresh) COLLECTING_ITEMS

States that need no operator input are skipped. Collaborator calls are
awaited strictly in sequence (validate, persist, dispatch receipt, reset) and
persistence is never retried without an explicit operator action.
"""
import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from PosCheckout.config import CheckoutSettings, settings as default_settings
from PosCheckout.enums import (
    Capability, CheckoutState, CustomerSegment, DeliveryMethod, PaymentMethod,
    PaymentStatus, ReceiptChannel, ReceiptPreference, SaleType, StockOutcomeKind,
)
from PosCheckout.exceptions import (
    CheckoutException, EmptyCartError, InvalidTransition, NotificationError,
    PermissionDenied, PersistenceError, ProductNotFound, StockLimitExceeded, ValidationError,
)
from PosCheckout.models import (
    BuyerDetails, BuyerSnapshot, Cart, CheckoutSession, Customer, DiscountRange,
    PaymentDetails, PaymentEntry, Product, ProductDescriptor, ReceiptResult,
    SaleAnalytics, SaleItemSnapshot, SaleOutcome, SaleSnapshot, StaffMember,
    StockOutcome, Totals, TotalsSnapshot, WorkflowStatus, ZERO, money, to_decimal,
)
from PosCheckout.quotation import QuotationNumberGenerator
from PosCheckout.receipt import build_receipt
from PosCheckout.repository import CustomerDirectory, NotificationDispatcher, PersistenceStore, ProductCatalog
from PosCheckout.service import PaymentResolver, StockGuard, TotalsCalculator
from PosCheckout.strategy import DiscountPolicy
from PosCheckout.validation import BuyerDetailsValidator, is_valid_email

logger = logging.getLogger(__name__)

PRINT_TARGET = "print_preview"

_CANCELLABLE = (
    CheckoutState.COLLECTING_ITEMS,
    CheckoutState.NEEDS_BUYER_DETAILS,
    CheckoutState.NEEDS_PAYMENT_METHOD,
    CheckoutState.READY_TO_PERSIST,
)


class SaleOrchestrator:
    """Drives one register's checkout from an empty cart to a receipted sale."""

    def __init__(
            self,
            catalog: ProductCatalog,
            customers: CustomerDirectory,
            store: PersistenceStore,
            dispatcher: NotificationDispatcher,
            settings: Optional[CheckoutSettings] = None,
            quotation_generator: Optional[QuotationNumberGenerator] = None,
            discount_policy: Optional[DiscountPolicy] = None,
            stock_guard: Optional[StockGuard] = None,
            payment_resolver: Optional[PaymentResolver] = None,
            validator: Optional[BuyerDetailsValidator] = None,
            operator: Optional[StaffMember] = None,
            clock: Optional[Callable[[], datetime]] = None):
        self._catalog = catalog
        self._customers = customers
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings or default_settings
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._quotation_generator = quotation_generator or QuotationNumberGenerator(
            prefix=self._settings.QUOTATION_PREFIX, clock=self._clock
        )
        self._discount_policy = discount_policy or DiscountPolicy()
        self._totals_calculator = TotalsCalculator(discount_policy=self._discount_policy)
        self._stock_guard = stock_guard or StockGuard()
        self._payment_resolver = payment_resolver or PaymentResolver(clock=self._clock)
        self._validator = validator or BuyerDetailsValidator()
        self._session = self._new_session(
            quotation_number=self._quotation_generator.next(), operator=operator, scanning=False
        )

    # Session state

    @property
    def session(self) -> CheckoutSession:
        return self._session

    @property
    def state(self) -> CheckoutState:
        return self._session.state

    @property
    def cart(self) -> Cart:
        return self._session.cart

    @property
    def quotation_number(self) -> str:
        return self._session.quotation_number

    @property
    def totals(self) -> Totals:
        return self._totals_calculator.compute_for_cart(self._session.cart)

    @property
    def discount_range(self) -> DiscountRange:
        return self._discount_policy.resolve(self.cart.segment, self.totals.subtotal)

    def _new_session(self, quotation_number: str, operator: Optional[StaffMember],
                     scanning: bool) -> CheckoutSession:
        cart = Cart(
            segment=self._settings.DEFAULT_SEGMENT,
            tax_enabled=self._settings.TAX_ENABLED_BY_DEFAULT,
            tax_rate=to_decimal(self._settings.DEFAULT_TAX_RATE),
        )
        return CheckoutSession(
            quotation_number=quotation_number,
            cart=cart,
            buyer_details=BuyerDetails(
                country=self._settings.DEFAULT_COUNTRY,
                payment_method=self._settings.DEFAULT_PAYMENT_METHOD,
            ),
            operator=operator,
            scanning=scanning,
        )

    def _transition(self, new_state: CheckoutState) -> None:
        logger.debug("Checkout %s: %s -> %s", self.quotation_number, self.state.value, new_state.value)
        self._session.state = new_state

    def _require_state(self, action: str, *states: CheckoutState) -> None:
        if self.state not in states:
            raise InvalidTransition(self.state, action)

    def _require_capability(self, capability: Capability) -> None:
        operator = self._session.operator
        if operator is not None and not operator.can(capability):
            raise PermissionDenied(capability)

    # Cart editing

    def set_scanning(self, scanning: bool) -> None:
        self._session.scanning = scanning

    async def scan(self, sku: str) -> StockOutcome:
        self._require_state("scan a product", CheckoutState.COLLECTING_ITEMS)
        product = await self._catalog.lookup(sku)
        if product is None:
            raise ProductNotFound(f"No product with SKU {sku}")
        return self.add_product(product)

    async def search_products(self, term: str) -> List[Product]:
        return await self._catalog.search(term, limit=self._settings.CATALOG_SEARCH_LIMIT)

    async def search_customers(self, term: str) -> List[Customer]:
        self._require_capability(Capability.MANAGE_CUSTOMERS)
        return await self._customers.search(term, limit=self._settings.CATALOG_SEARCH_LIMIT)

    def add_product(self, product: Product) -> StockOutcome:
        """Add one unit of ``product`` to the cart.

        Raises:
            StockLimitExceeded: If the product is out of stock or already at its stock level
        """
        self._require_state("add a product", CheckoutState.COLLECTING_ITEMS)
        outcome = self._stock_guard.add_product(self.cart, product)
        if outcome.kind == StockOutcomeKind.REJECTED:
            raise StockLimitExceeded(product)
        return outcome

    def change_quantity(self, product_id: str, delta: int) -> StockOutcome:
        """Change a line's quantity by ``delta``; lines dropping below 1 are removed.

        Raises:
            StockLimitExceeded: If the new quantity would exceed the stock level
            ProductNotFound: If the product is not in the cart
        """
        self._require_state("change a quantity", CheckoutState.COLLECTING_ITEMS)
        outcome = self._stock_guard.change_quantity(self.cart, product_id, delta)
        if outcome.kind == StockOutcomeKind.REJECTED:
            raise StockLimitExceeded(outcome.product)
        return outcome

    def remove_item(self, product_id: str) -> None:
        self._require_state("remove an item", CheckoutState.COLLECTING_ITEMS)
        item = self.cart.find(product_id)
        if item is None:
            raise ProductNotFound(f"Product with id {product_id} is not in the cart")
        self.cart.items.remove(item)

    def set_segment(self, segment: CustomerSegment) -> None:
        self._require_state("change the customer segment", CheckoutState.COLLECTING_ITEMS)
        if segment != self.cart.segment:
            self.cart.segment = segment
            # percentage and amount discounts are not interchangeable
            self.cart.discount_value = ZERO

    def select_customer(self, customer: Optional[Customer]) -> None:
        self._require_state("select a customer", CheckoutState.COLLECTING_ITEMS)
        if customer is not None:
            self._require_capability(Capability.MANAGE_CUSTOMERS)
            self.set_segment(customer.segment)
        self._session.selected_customer = customer

    def set_discount(self, value) -> Decimal:
        """Apply a discount typed or picked by the operator; returns the discount now in effect."""
        self._require_state("change the discount", CheckoutState.COLLECTING_ITEMS)
        self.cart.discount_value = self._discount_policy.apply_entry(
            segment=self.cart.segment,
            value=value,
            current=self.cart.discount_value,
            subtotal=self.totals.subtotal,
        )
        return self.cart.discount_value

    def clear_discount(self) -> None:
        self._require_state("change the discount", CheckoutState.COLLECTING_ITEMS)
        self.cart.discount_value = ZERO

    def toggle_tax(self) -> bool:
        self._require_state("toggle tax", CheckoutState.COLLECTING_ITEMS)
        self.cart.tax_enabled = not self.cart.tax_enabled
        return self.cart.tax_enabled

    def set_tax_rate(self, rate) -> None:
        self._require_state("change the tax rate", CheckoutState.COLLECTING_ITEMS)
        rate = to_decimal(rate)
        if rate < 0 or rate > 100:
            raise ValidationError("tax_rate", "Tax rate must be between 0 and 100")
        self.cart.tax_rate = rate

    def set_payment(self, status: PaymentStatus, paid_amount=ZERO,
                    method: Optional[PaymentMethod] = None) -> None:
        """Declare how a wholesale sale is being paid before completing it.

        Retail sales are always paid in full, so only the method is kept for them.
        """
        self._require_state("change the payment", CheckoutState.COLLECTING_ITEMS)
        if self.cart.segment == CustomerSegment.RETAILER:
            status, paid_amount = PaymentStatus.PAID, ZERO
        if status == PaymentStatus.CANCELLED:
            raise ValidationError("payment_status", "A cancelled sale cannot be completed")
        if status == PaymentStatus.PARTIALLY_PAID and method is None:
            raise ValidationError("payment_method", "Please select a payment method")
        self._session.buyer_details = self._session.buyer_details.with_changes(
            payment_status=status,
            paid_amount=to_decimal(paid_amount),
            payment_method=method if method is not None else self._session.buyer_details.payment_method,
        )

    def set_delivery_method(self, delivery_method: DeliveryMethod) -> None:
        self._require_state("change the delivery method", CheckoutState.COLLECTING_ITEMS)
        self._session.buyer_details = self._session.buyer_details.with_changes(delivery_method=delivery_method)

    # Sale completion

    async def complete(self) -> CheckoutState:
        """Start completing the sale.

        Advances as far as possible without operator input and returns the
        state reached: NEEDS_BUYER_DETAILS, NEEDS_PAYMENT_METHOD, or
        DISPATCHING_RECEIPT once the sale is persisted. Called again after a
        failed persist, it re-submits the identical snapshot.

        Raises:
            EmptyCartError: If the cart has no items
            ValidationError: If the payment cannot be resolved
            PersistenceError: If the sale could not be stored
        """
        if self.state == CheckoutState.READY_TO_PERSIST:
            return await self.retry()
        self._require_state("complete the sale", CheckoutState.COLLECTING_ITEMS)
        if self.cart.is_empty():
            raise EmptyCartError()
        return await self._advance()

    async def submit_buyer_details(self, details: BuyerDetails) -> CheckoutState:
        """Validate buyer details and continue the sale.

        Raises:
            ValidationError: Listing every offending field; nothing is changed
        """
        self._require_state("submit buyer details", CheckoutState.NEEDS_BUYER_DETAILS)
        validated = self._validator.validate(details, self.cart.segment, self.totals.final_total)
        self._session.buyer_details = validated
        return await self._advance()

    async def select_payment_method(self, method: PaymentMethod) -> CheckoutState:
        self._require_state("select a payment method", CheckoutState.NEEDS_PAYMENT_METHOD)
        self._session.buyer_details = self._session.buyer_details.with_changes(payment_method=method)
        return await self._advance()

    async def retry(self) -> CheckoutState:
        """Re-submit the snapshot that failed to persist."""
        self._require_state("retry saving the sale", CheckoutState.READY_TO_PERSIST)
        await self._persist()
        return self.state

    def cancel(self) -> None:
        """Back out to item collection, keeping the cart and entered details."""
        self._require_state("cancel", *_CANCELLABLE)
        self._session.snapshot = None
        self._transition(CheckoutState.COLLECTING_ITEMS)

    def abandon(self) -> None:
        """Throw the sale in progress away; the quotation number is kept since nothing was stored."""
        self._require_state("abandon the sale", *_CANCELLABLE)
        self._session = self._new_session(
            quotation_number=self.quotation_number,
            operator=self._session.operator,
            scanning=self._session.scanning,
        )

    def _needs_buyer_details(self) -> bool:
        if self._session.selected_customer is not None:
            return False
        if self._session.buyer_details.buyer_name.strip():
            return False
        if self.cart.segment == CustomerSegment.WHOLESALER:
            return True
        return self.totals.final_total > to_decimal(self._settings.RETAIL_BUYER_DETAILS_THRESHOLD)

    def _payment_status(self) -> PaymentStatus:
        if self.cart.segment == CustomerSegment.RETAILER:
            return PaymentStatus.PAID
        return self._session.buyer_details.payment_status

    def _needs_payment_method(self) -> bool:
        return (self._payment_status() == PaymentStatus.PAID
                and self._session.buyer_details.payment_method is None)

    async def _advance(self) -> CheckoutState:
        if self._needs_buyer_details():
            self._transition(CheckoutState.NEEDS_BUYER_DETAILS)
            return self.state
        if self._needs_payment_method():
            self._transition(CheckoutState.NEEDS_PAYMENT_METHOD)
            return self.state

        self._session.snapshot = self._assemble_snapshot()
        self._transition(CheckoutState.READY_TO_PERSIST)
        await self._persist()
        return self.state

    def _assemble_snapshot(self) -> SaleSnapshot:
        session = self._session
        cart = session.cart
        details = session.buyer_details
        totals = self.totals
        resolution = self._payment_resolver.resolve(cart.segment, details, totals.final_total)
        rounded = totals.rounded()
        now = self._clock()

        items = tuple(
            SaleItemSnapshot(
                product_id=item.product.id,
                quantity=item.quantity,
                price=money(item.unit_price),
                original_price=money(item.original_price),
                product=ProductDescriptor(
                    name=item.product.name,
                    sku=item.product.sku,
                    description=item.product.description,
                    manufacturer=item.product.manufacturer,
                    category=item.product.category,
                ),
            )
            for item in cart.items
        )

        buyer = None
        if session.selected_customer is None and details.buyer_name.strip():
            buyer = BuyerSnapshot(
                name=details.buyer_name,
                phone=details.buyer_phone,
                email=details.buyer_email,
                categories=tuple(sorted(details.buyer_categories)),
                country=details.country,
            )

        fulfilment = "completed" if details.delivery_method == DeliveryMethod.HAND_CARRY else "pending"
        categories = Counter()
        for item in cart.items:
            categories[item.product.category] += item.quantity

        payment_method = resolution.payments[0].method if resolution.payments else details.payment_method

        return SaleSnapshot(
            sale_type=SaleType.REMOTE if session.selected_customer else SaleType.COUNTER,
            customer_id=session.selected_customer.id if session.selected_customer else None,
            segment=cart.segment,
            quotation_number=session.quotation_number,
            items=items,
            totals=TotalsSnapshot(
                subtotal=rounded.subtotal,
                discount_value=cart.discount_value,
                discount_amount=rounded.discount_amount,
                total=rounded.total,
                tax_enabled=cart.tax_enabled,
                tax_rate=cart.tax_rate,
                tax_amount=rounded.tax_amount,
                final_total=rounded.final_total,
            ),
            payment_details=PaymentDetails(
                total_amount=rounded.final_total,
                paid_amount=resolution.paid_amount,
                pending_amount=resolution.pending_amount,
                payment_status=resolution.status,
                payments=tuple(
                    PaymentEntry(amount=p.amount, date=p.timestamp, type=p.type, method=p.method)
                    for p in resolution.payments
                ),
            ),
            delivery_method=details.delivery_method,
            workflow_status=WorkflowStatus(qc=fulfilment, packaging=fulfilment, dispatch=fulfilment),
            buyer=buyer,
            analytics=SaleAnalytics(
                hour_of_day=now.hour,
                day_of_week=now.isoweekday() % 7,
                items_count=cart.item_count,
                categories=dict(categories),
                payment_method=payment_method,
                customer_type="registered" if session.selected_customer else "walk_in",
            ),
            created_at=now,
            valid_until=now + timedelta(days=self._settings.QUOTATION_VALIDITY_DAYS),
        )

    async def _persist(self) -> None:
        snapshot = self._session.snapshot
        self._transition(CheckoutState.PERSISTING)
        try:
            sale_id = await asyncio.wait_for(
                self._store.create_sale(snapshot), timeout=self._settings.PERSISTENCE_TIMEOUT_SEC
            )
        except asyncio.CancelledError:
            logger.warning("Saving bill #%s was cancelled", self.quotation_number)
            self._transition(CheckoutState.READY_TO_PERSIST)
            raise
        except PersistenceError as e:
            self._persist_failed(e)
            raise
        except asyncio.TimeoutError as e:
            error = PersistenceError("timed out waiting for the sale store")
            self._persist_failed(error)
            raise error from e
        except CheckoutException:
            self._transition(CheckoutState.READY_TO_PERSIST)
            raise
        except Exception as e:
            error = PersistenceError(str(e) or e.__class__.__name__)
            self._persist_failed(error)
            raise error from e

        self._session.sale_id = sale_id
        self._transition(CheckoutState.PERSISTED)
        logger.info("Sale %s saved as bill #%s, total %s", sale_id, snapshot.quotation_number,
                    snapshot.totals.final_total)

        self._session.low_stock_alerts = self._stock_guard.low_stock(
            self.cart.items, self._settings.LOW_STOCK_THRESHOLD
        )
        for product, remaining in self._session.low_stock_alerts:
            logger.warning("Low stock: %s has %s units remaining", product.name, remaining)

        self._transition(CheckoutState.DISPATCHING_RECEIPT)

    def _persist_failed(self, error: PersistenceError) -> None:
        logger.error("Could not save bill #%s: %s", self.quotation_number, error.reason)
        self._transition(CheckoutState.READY_TO_PERSIST)

    async def dispatch_receipt(self, preference: ReceiptPreference, email: Optional[str] = None) -> SaleOutcome:
        """Send the receipt the operator chose and start a fresh session.

        Delivery failures are reported on the returned outcome and never undo
        the persisted sale.

        Raises:
            ValidationError: If an email receipt was requested without a usable address
        """
        self._require_state("dispatch a receipt", CheckoutState.DISPATCHING_RECEIPT)
        session = self._session
        wants_print = preference in (ReceiptPreference.PRINT, ReceiptPreference.BOTH)
        wants_email = preference in (ReceiptPreference.EMAIL, ReceiptPreference.BOTH)

        target = None
        if wants_email:
            target = email or self._saved_email()
            if not target:
                raise ValidationError("buyer_email", "Please enter an email address for the receipt")
            if not is_valid_email(target):
                raise ValidationError("buyer_email", "Please enter a valid email address")

        result = ReceiptResult(preference=preference)
        payload = build_receipt(session.snapshot)
        if wants_print:
            result.printed = await self._send(ReceiptChannel.PRINT, PRINT_TARGET, payload, result)
        if wants_email:
            if await self._send(ReceiptChannel.EMAIL, target.strip(), payload, result):
                result.emailed_to = target.strip()

        outcome = SaleOutcome(
            sale_id=session.sale_id,
            snapshot=session.snapshot,
            receipt=result,
            low_stock_alerts=list(session.low_stock_alerts),
        )
        self._transition(CheckoutState.COMPLETE)
        logger.info("Bill #%s completed", outcome.quotation_number)
        self._session = self._new_session(
            quotation_number=self._quotation_generator.next(),
            operator=session.operator,
            scanning=session.scanning,
        )
        return outcome

    def _saved_email(self) -> Optional[str]:
        customer = self._session.selected_customer
        if customer is not None and customer.email:
            return customer.email
        return self._session.buyer_details.buyer_email

    async def _send(self, channel: ReceiptChannel, target: str, payload: dict, result: ReceiptResult) -> bool:
        try:
            await self._dispatcher.send_receipt(channel, target, payload)
        except NotificationError as e:
            logger.warning("Receipt for bill #%s not sent: %s", payload["quotation_number"], e)
            result.errors.append(e)
            return False
        except Exception as e:
            error = NotificationError(channel.value, str(e) or e.__class__.__name__)
            logger.warning("Receipt for bill #%s not sent: %s", payload["quotation_number"], error)
            result.errors.append(error)
            return False
        return True
