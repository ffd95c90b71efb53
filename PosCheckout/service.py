"""Service layer for the checkout calculations.

This module contains the services the orchestrator builds on: stock-aware
quantity editing, totals computation and payment resolution. None of them
perform I/O; they operate on the in-memory cart and return new values.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple

from PosCheckout.enums import CustomerSegment, PaymentStatus, PaymentType, StockOutcomeKind
from PosCheckout.exceptions import ProductNotFound, ValidationError
from PosCheckout.models import (
    BuyerDetails, Cart, LineItem, PaymentRecord, PaymentResolution, Product,
    StockOutcome, Totals, TWOPLACES, ZERO, money, to_decimal,
)
from PosCheckout.strategy import DiscountPolicy

logger = logging.getLogger(__name__)


class StockGuard:
    """Keeps every cart line within [1, stock level].

    Checks are optimistic against the product snapshot held by the line item;
    live stock is the catalog's concern.
    """

    def apply_delta(self, item: LineItem, delta: int) -> StockOutcome:
        """Apply a quantity change to a cart line.

        Args:
            item: The cart line to change
            delta: Units to add (positive) or take away (negative)

        Returns:
            StockOutcome: UPDATED with the new quantity (already set on the item),
            REMOVED when the quantity would drop below 1, or REJECTED when it would
            exceed the product's stock level. Rejected edits leave the item unchanged.
        """
        new_quantity = item.quantity + delta
        if new_quantity < 1:
            return StockOutcome.removed()
        if new_quantity > item.product.stock_level:
            logger.info("Stock limit reached for %s (%s available)", item.product.name, item.product.stock_level)
            return StockOutcome.rejected(item.product)
        item.quantity = new_quantity
        return StockOutcome.updated(new_quantity)

    def change_quantity(self, cart: Cart, product_id: str, delta: int) -> StockOutcome:
        item = cart.find(product_id)
        if item is None:
            raise ProductNotFound(f"Product with id {product_id} is not in the cart")
        outcome = self.apply_delta(item, delta)
        if outcome.kind == StockOutcomeKind.REMOVED:
            cart.items.remove(item)
        return outcome

    def add_product(self, cart: Cart, product: Product) -> StockOutcome:
        """Add one unit of a product, pricing new lines for the cart's segment."""
        existing = cart.find(product.id)
        if existing is not None:
            return self.apply_delta(existing, +1)
        if product.stock_level < 1:
            logger.info("Refusing to add %s, out of stock", product.name)
            return StockOutcome.rejected(product)
        cart.items.append(LineItem(
            product=product,
            quantity=1,
            unit_price=product.price_for(cart.segment),
            original_price=to_decimal(product.wholesale_price),
        ))
        return StockOutcome.updated(1)

    def low_stock(self, items: Iterable[LineItem], threshold: int) -> List[Tuple[Product, int]]:
        """Products whose remaining stock after this sale is at or below ``threshold``."""
        alerts = []
        for item in items:
            remaining = item.product.stock_level - item.quantity
            if remaining <= threshold:
                alerts.append((item.product, remaining))
        return alerts


class TotalsCalculator:
    """Computes cart totals. Deterministic, no side effects.

    Values are kept at full precision; rounding happens only when a sale is
    persisted or displayed.
    """

    def __init__(self, discount_policy: Optional[DiscountPolicy] = None):
        self._discount_policy = discount_policy or DiscountPolicy()

    def compute(self, items: Iterable[LineItem], discount_value, segment: CustomerSegment,
                tax_enabled: bool, tax_rate) -> Totals:
        items = list(items)
        if not items:
            return Totals()

        subtotal = sum((item.unit_price * item.quantity for item in items), ZERO)
        discount_amount = self._discount_policy.discount_amount(segment, subtotal, discount_value)
        total = subtotal - discount_amount
        tax_amount = total * to_decimal(tax_rate) / 100 if tax_enabled else ZERO
        return Totals(
            subtotal=subtotal,
            discount_amount=discount_amount,
            total=total,
            tax_amount=tax_amount,
            final_total=total + tax_amount,
        )

    def compute_for_cart(self, cart: Cart) -> Totals:
        return self.compute(
            items=cart.items,
            discount_value=cart.discount_value,
            segment=cart.segment,
            tax_enabled=cart.tax_enabled,
            tax_rate=cart.tax_rate,
        )


class PaymentResolver:
    """Derives paid and pending amounts and the payment history of a sale."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, segment: CustomerSegment, buyer_details: BuyerDetails, final_total) -> PaymentResolution:
        """Resolve the payment for a sale.

        Retailers always pay in full. Wholesalers may declare the sale paid,
        partially paid (0 < paid < total) or unpaid.

        Raises:
            ValidationError: If the declared amount or status cannot be honoured,
                or money is taken without a payment method
        """
        final_total = money(final_total)
        status = PaymentStatus.PAID
        if segment == CustomerSegment.WHOLESALER:
            status = buyer_details.payment_status

        if status == PaymentStatus.PAID:
            paid_amount = final_total
        elif status == PaymentStatus.PARTIALLY_PAID:
            paid_amount = money(buyer_details.paid_amount)
            if not ZERO < paid_amount < final_total:
                raise ValidationError(
                    "paid_amount",
                    "For partial payment, please enter an amount greater than 0 and less than the total",
                )
        elif status == PaymentStatus.UNPAID:
            paid_amount = ZERO
        else:
            raise ValidationError("payment_status", f"Cannot complete a sale with payment status {status.value}")

        pending_amount = money(final_total - paid_amount)

        payments: Tuple[PaymentRecord, ...] = ()
        if paid_amount > 0:
            if buyer_details.payment_method is None:
                raise ValidationError("payment_method", "Please select a payment method")
            payments = (PaymentRecord(
                amount=paid_amount,
                timestamp=self._clock(),
                type=PaymentType.FULL if status == PaymentStatus.PAID else PaymentType.PARTIAL,
                method=buyer_details.payment_method,
            ),)

        resolution = PaymentResolution(
            paid_amount=paid_amount,
            pending_amount=pending_amount,
            status=status,
            payments=payments,
        )
        self._reconcile(resolution, final_total)
        return resolution

    @staticmethod
    def _reconcile(resolution: PaymentResolution, final_total: Decimal) -> None:
        if abs(final_total - (resolution.paid_amount + resolution.pending_amount)) > TWOPLACES:
            raise ValidationError("paid_amount", "Payment amounts do not reconcile")
        recorded = sum((payment.amount for payment in resolution.payments), ZERO)
        if recorded != resolution.paid_amount:
            raise ValidationError("payments", "Payment history does not match the paid amount")
