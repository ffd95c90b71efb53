"""Data models for the checkout engine.

This module defines the core data structures used throughout the register,
including products, cart lines, buyer details, payment records, totals, and
the immutable sale snapshot handed to the persistence store.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from PosCheckout.enums import (
    Capability, CheckoutState, CustomerSegment, DeliveryMethod, DiscountMode,
    PaymentMethod, PaymentStatus, PaymentType, ReceiptPreference, SaleType,
    StaffRole, StockOutcomeKind,
)

TWOPLACES = Decimal("0.01")
ZERO = Decimal(0)


def to_decimal(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    """Round a monetary value to 2 decimal places, half-up."""
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass
class Product:
    """Represents a product as last fetched from the catalog.

    Attributes:
        id: Unique identifier for the product
        sku: Stock keeping unit scanned at the register
        name: Display name
        category: Product category (e.g. 'BANGLES', 'EARRINGS')
        manufacturer: Manufacturer name
        stock_level: Units available when the product was fetched
        wholesale_price: Price charged to wholesalers
        retail_price: Price charged to retailers
        description: Free text description frozen into the sale snapshot
    """
    id: str
    sku: str
    name: str
    category: str
    manufacturer: str
    stock_level: int
    wholesale_price: Decimal
    retail_price: Decimal
    description: str = ""

    def price_for(self, segment: CustomerSegment) -> Decimal:
        if segment == CustomerSegment.WHOLESALER:
            return to_decimal(self.wholesale_price)
        return to_decimal(self.retail_price)


@dataclass
class Customer:
    """A registered customer from the customer directory."""
    id: str
    name: str
    phone: str
    segment: CustomerSegment
    email: Optional[str] = None


@dataclass
class LineItem:
    """Represents a line in the cart.

    Attributes:
        product: The product being sold
        quantity: Units of the product, always within [1, product.stock_level]
        unit_price: Price snapshot taken at add time, selected by customer segment
        original_price: Wholesale price snapshot, display only
    """
    product: Product
    quantity: int
    unit_price: Decimal
    original_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class Cart:
    items: List[LineItem] = field(default_factory=list)
    segment: CustomerSegment = CustomerSegment.RETAILER
    discount_value: Decimal = ZERO
    tax_enabled: bool = True
    tax_rate: Decimal = Decimal(18)

    def find(self, product_id: str) -> Optional[LineItem]:
        for item in self.items:
            if item.product.id == product_id:
                return item
        return None

    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass
class BuyerDetails:
    """Buyer details collected for counter sales.

    Attributes:
        buyer_name: Name of the buyer
        buyer_phone: National number as typed, or E.164 once validated
        buyer_email: Optional email used for digital receipts
        delivery_method: HAND_CARRY or DISPATCH
        payment_status: Declared payment status (only wholesalers may pay partially or not at all)
        paid_amount: Amount paid now for a partially paid sale
        buyer_categories: Product categories the buyer deals in (wholesalers)
        payment_method: Payment method used for the amount paid now
        country: ISO country code of the buyer's phone number
    """
    buyer_name: str = ""
    buyer_phone: str = ""
    buyer_email: Optional[str] = None
    delivery_method: DeliveryMethod = DeliveryMethod.HAND_CARRY
    payment_status: PaymentStatus = PaymentStatus.PAID
    paid_amount: Decimal = ZERO
    buyer_categories: FrozenSet[str] = frozenset()
    payment_method: Optional[PaymentMethod] = None
    country: str = "IN"

    def with_changes(self, **changes) -> "BuyerDetails":
        return replace(self, **changes)


@dataclass(frozen=True)
class PaymentRecord:
    amount: Decimal
    timestamp: datetime
    type: PaymentType
    method: PaymentMethod


@dataclass(frozen=True)
class PaymentResolution:
    paid_amount: Decimal
    pending_amount: Decimal
    status: PaymentStatus
    payments: Tuple[PaymentRecord, ...] = ()


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total: Decimal = ZERO
    tax_amount: Decimal = ZERO
    final_total: Decimal = ZERO

    def rounded(self) -> "Totals":
        return Totals(
            subtotal=money(self.subtotal),
            discount_amount=money(self.discount_amount),
            total=money(self.total),
            tax_amount=money(self.tax_amount),
            final_total=money(self.final_total),
        )


@dataclass(frozen=True)
class DiscountRange:
    """Allowed discount entries for a segment and cart value.

    Attributes:
        allowed_values: Quick-select values offered to the operator, ascending
        cap: Largest discount value accepted
        mode: PERCENTAGE of subtotal, or ABSOLUTE_AMOUNT in currency units
    """
    allowed_values: Tuple[Decimal, ...]
    cap: Decimal
    mode: DiscountMode


@dataclass(frozen=True)
class StockOutcome:
    kind: StockOutcomeKind
    quantity: Optional[int] = None
    product: Optional[Product] = None

    @classmethod
    def updated(cls, quantity: int) -> "StockOutcome":
        return cls(kind=StockOutcomeKind.UPDATED, quantity=quantity)

    @classmethod
    def removed(cls) -> "StockOutcome":
        return cls(kind=StockOutcomeKind.REMOVED)

    @classmethod
    def rejected(cls, product: Product) -> "StockOutcome":
        return cls(kind=StockOutcomeKind.REJECTED, product=product)


ROLE_CAPABILITIES: Dict[StaffRole, FrozenSet[Capability]] = {
    StaffRole.ADMIN: frozenset(Capability),
    StaffRole.MANAGER: frozenset({Capability.MANAGE_INVENTORY, Capability.MANAGE_CUSTOMERS}),
    StaffRole.SALES: frozenset({Capability.VIEW_INVENTORY, Capability.MANAGE_CUSTOMERS}),
    StaffRole.QC: frozenset({Capability.VIEW_INVENTORY, Capability.MANAGE_QC}),
    StaffRole.PACKAGING: frozenset({Capability.VIEW_INVENTORY, Capability.MANAGE_PACKAGING}),
    StaffRole.DISPATCH: frozenset({Capability.VIEW_INVENTORY, Capability.MANAGE_DISPATCH}),
}


@dataclass(frozen=True)
class StaffMember:
    """The operator running a register session.

    Attributes:
        id: Staff identifier
        name: Display name
        role: Staff role
        capabilities: Named capabilities granted to this operator
    """
    id: str
    name: str
    role: StaffRole
    capabilities: FrozenSet[Capability] = frozenset()

    @classmethod
    def for_role(cls, id: str, name: str, role: StaffRole) -> "StaffMember":
        return cls(id=id, name=name, role=role, capabilities=ROLE_CAPABILITIES[role])

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


# Persisted sale snapshot. Frozen so the store receives exactly what was assembled.

class ProductDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sku: str
    description: str = ""
    manufacturer: str
    category: str


class SaleItemSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    quantity: int
    price: Decimal
    original_price: Decimal
    product: ProductDescriptor

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1")
        return v


class TotalsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    discount_value: Decimal
    discount_amount: Decimal
    total: Decimal
    tax_enabled: bool
    tax_rate: Decimal
    tax_amount: Decimal
    final_total: Decimal


class PaymentEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    date: datetime
    type: PaymentType
    method: PaymentMethod


class PaymentDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    payment_status: PaymentStatus
    payments: Tuple[PaymentEntry, ...] = ()


class BuyerSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    email: Optional[EmailStr] = None
    categories: Tuple[str, ...] = ()
    country: Optional[str] = None


class WorkflowStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    qc: str
    packaging: str
    dispatch: str


class SaleAnalytics(BaseModel):
    model_config = ConfigDict(frozen=True)

    hour_of_day: int
    day_of_week: int
    items_count: int
    categories: Dict[str, int]
    payment_method: Optional[PaymentMethod] = None
    customer_type: str


class SaleSnapshot(BaseModel):
    """Everything the persistence store needs to record one sale."""
    model_config = ConfigDict(frozen=True)

    sale_type: SaleType
    customer_id: Optional[str] = None
    segment: CustomerSegment
    quotation_number: str
    items: Tuple[SaleItemSnapshot, ...]
    totals: TotalsSnapshot
    payment_details: PaymentDetails
    delivery_method: DeliveryMethod
    workflow_status: WorkflowStatus
    buyer: Optional[BuyerSnapshot] = None
    analytics: SaleAnalytics
    created_at: datetime
    valid_until: datetime


@dataclass
class Sale:
    """A sale as recorded by the persistence store."""
    id: str
    snapshot: SaleSnapshot

    @property
    def quotation_number(self) -> str:
        return self.snapshot.quotation_number


@dataclass
class ReceiptResult:
    preference: ReceiptPreference
    printed: bool = False
    emailed_to: Optional[str] = None
    errors: List[Exception] = field(default_factory=list)


@dataclass
class SaleOutcome:
    """Result handed back to the register once a sale is complete.

    Attributes:
        sale_id: Identifier assigned by the persistence store
        snapshot: The persisted sale snapshot
        receipt: What happened when dispatching the receipt
        low_stock_alerts: Products left at or below the low stock threshold
    """
    sale_id: str
    snapshot: SaleSnapshot
    receipt: ReceiptResult
    low_stock_alerts: List[Tuple[Product, int]] = field(default_factory=list)

    @property
    def quotation_number(self) -> str:
        return self.snapshot.quotation_number

    @property
    def warnings(self) -> List[str]:
        return [str(error) for error in self.receipt.errors]


@dataclass
class CheckoutSession:
    """Session scoped state owned by one register's orchestrator.

    Attributes:
        quotation_number: Quotation number for the sale in progress
        cart: The cart being built
        state: Current checkout state
        selected_customer: Registered customer linked to the sale, if any
        buyer_details: Buyer details for counter sales
        scanning: Whether the barcode scanner input is active
        operator: Staff member running the register
        snapshot: Assembled sale snapshot, kept for retries after a failed persist
        sale_id: Identifier returned by the store once persisted
        low_stock_alerts: Products left at or below the low stock threshold by this sale
    """
    quotation_number: str
    cart: Cart
    state: CheckoutState = CheckoutState.COLLECTING_ITEMS
    selected_customer: Optional[Customer] = None
    buyer_details: BuyerDetails = field(default_factory=BuyerDetails)
    scanning: bool = False
    operator: Optional[StaffMember] = None
    snapshot: Optional[SaleSnapshot] = None
    sale_id: Optional[str] = None
    low_stock_alerts: List[Tuple[Product, int]] = field(default_factory=list)
