from datetime import datetime, timezone
from decimal import Decimal

import pytest

from PosCheckout.enums import CustomerSegment, PaymentMethod, PaymentStatus, PaymentType, StockOutcomeKind
from PosCheckout.exceptions import ProductNotFound, ValidationError
from PosCheckout.models import BuyerDetails, Cart, LineItem, Totals
from PosCheckout.service import PaymentResolver, StockGuard, TotalsCalculator

from conftest import make_product

WHOLESALER = CustomerSegment.WHOLESALER
RETAILER = CustomerSegment.RETAILER
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def line(product, quantity=1, price=None):
    return LineItem(
        product=product,
        quantity=quantity,
        unit_price=Decimal(price if price is not None else product.retail_price),
        original_price=product.wholesale_price,
    )


class TestStockGuard:

    def test_delta_within_stock_updates_quantity(self):
        item = line(make_product(stock=5), quantity=2)
        outcome = StockGuard().apply_delta(item, +2)
        assert outcome.kind == StockOutcomeKind.UPDATED
        assert outcome.quantity == 4
        assert item.quantity == 4

    def test_delta_below_one_removes(self):
        item = line(make_product(stock=5), quantity=1)
        outcome = StockGuard().apply_delta(item, -1)
        assert outcome.kind == StockOutcomeKind.REMOVED

    def test_delta_above_stock_is_rejected_and_item_unchanged(self):
        product = make_product(stock=3)
        item = line(product, quantity=3)
        outcome = StockGuard().apply_delta(item, +1)
        assert outcome.kind == StockOutcomeKind.REJECTED
        assert outcome.product is product
        assert item.quantity == 3

    def test_adding_three_times_with_stock_of_two(self):
        guard = StockGuard()
        cart = Cart()
        product = make_product(stock=2)
        kinds = [guard.add_product(cart, product).kind for _ in range(3)]
        assert kinds == [StockOutcomeKind.UPDATED, StockOutcomeKind.UPDATED, StockOutcomeKind.REJECTED]
        assert cart.find(product.id).quantity == 2

    def test_out_of_stock_product_rejected_outright(self):
        cart = Cart()
        outcome = StockGuard().add_product(cart, make_product(stock=0))
        assert outcome.kind == StockOutcomeKind.REJECTED
        assert cart.is_empty()

    def test_add_prices_line_for_segment(self):
        product = make_product(price=5000, wholesale=3500)
        retail_cart, wholesale_cart = Cart(segment=RETAILER), Cart(segment=WHOLESALER)
        StockGuard().add_product(retail_cart, product)
        StockGuard().add_product(wholesale_cart, product)
        assert retail_cart.items[0].unit_price == 5000
        assert wholesale_cart.items[0].unit_price == 3500
        assert retail_cart.items[0].original_price == 3500

    def test_change_quantity_drops_line_from_cart(self):
        guard = StockGuard()
        cart = Cart()
        product = make_product(stock=4)
        guard.add_product(cart, product)
        assert guard.change_quantity(cart, product.id, -1).kind == StockOutcomeKind.REMOVED
        assert cart.is_empty()

    def test_change_quantity_unknown_product(self):
        with pytest.raises(ProductNotFound):
            StockGuard().change_quantity(Cart(), "missing", 1)

    def test_quantity_stays_within_bounds_for_any_sequence(self):
        guard = StockGuard()
        cart = Cart()
        product = make_product(stock=4)
        guard.add_product(cart, product)
        for delta in [3, 1, -2, 5, -1, 2, 1, -10]:
            guard.change_quantity(cart, product.id, delta)
            item = cart.find(product.id)
            if item is None:
                break
            assert 1 <= item.quantity <= product.stock_level

    def test_low_stock(self):
        items = [line(make_product("1", stock=10), 4), line(make_product("2", stock=10), 5)]
        alerts = StockGuard().low_stock(items, threshold=5)
        assert [(product.id, remaining) for product, remaining in alerts] == [("2", 5)]


class TestTotalsCalculator:

    def test_empty_cart_yields_zero_totals(self):
        assert TotalsCalculator().compute([], 500, RETAILER, True, 18) == Totals()

    def test_retail_scenario(self):
        items = [line(make_product(price=5000, stock=10), 4)]
        totals = TotalsCalculator().compute(items, Decimal(800), RETAILER, True, Decimal(18))
        assert totals.subtotal == 20000
        assert totals.discount_amount == 800
        assert totals.total == 19200
        assert totals.tax_amount == 3456
        assert totals.final_total == 22656

    def test_wholesale_percentage_without_tax(self):
        items = [line(make_product(price=2000, stock=10), 5)]
        totals = TotalsCalculator().compute(items, 5, WHOLESALER, False, 18)
        assert totals.discount_amount == 500
        assert totals.tax_amount == 0
        assert totals.final_total == 9500

    def test_retail_discount_capped_at_subtotal(self):
        items = [line(make_product(price=30, stock=10), 1)]
        totals = TotalsCalculator().compute(items, 50, RETAILER, True, 18)
        assert totals.discount_amount == 30
        assert totals.final_total == 0

    def test_compute_is_deterministic(self):
        items = [line(make_product("1", price="199.99", stock=10), 3), line(make_product("2", price=10, stock=5), 2)]
        calculator = TotalsCalculator()
        first = calculator.compute(items, 3, WHOLESALER, True, 18)
        second = calculator.compute(items, 3, WHOLESALER, True, 18)
        assert first == second
        assert [item.quantity for item in items] == [3, 2]

    def test_no_rounding_until_asked(self):
        items = [line(make_product(price="33.33", stock=10), 1)]
        totals = TotalsCalculator().compute(items, 0, RETAILER, True, 18)
        assert totals.tax_amount == Decimal("5.9994")
        assert totals.rounded().tax_amount == Decimal("6.00")
        assert totals.rounded().final_total == Decimal("39.33")


class TestPaymentResolver:

    @pytest.fixture
    def resolver(self):
        return PaymentResolver(clock=lambda: NOW)

    def test_retailer_always_paid_in_full(self, resolver):
        details = BuyerDetails(payment_status=PaymentStatus.UNPAID, payment_method=PaymentMethod.UPI)
        resolution = resolver.resolve(RETAILER, details, Decimal("22656"))
        assert resolution.status == PaymentStatus.PAID
        assert resolution.paid_amount == Decimal("22656.00")
        assert resolution.pending_amount == 0
        assert len(resolution.payments) == 1
        assert resolution.payments[0].type == PaymentType.FULL
        assert resolution.payments[0].method == PaymentMethod.UPI
        assert resolution.payments[0].timestamp == NOW

    def test_wholesaler_partial_payment(self, resolver):
        details = BuyerDetails(payment_status=PaymentStatus.PARTIALLY_PAID, paid_amount=Decimal(4000),
                               payment_method=PaymentMethod.CASH)
        resolution = resolver.resolve(WHOLESALER, details, Decimal(9500))
        assert resolution.paid_amount == 4000
        assert resolution.pending_amount == 5500
        assert resolution.status == PaymentStatus.PARTIALLY_PAID
        assert resolution.payments[0].type == PaymentType.PARTIAL
        assert resolution.payments[0].amount == 4000

    @pytest.mark.parametrize("paid", [0, -5, 9500, 12000])
    def test_wholesaler_partial_payment_out_of_range(self, resolver, paid):
        details = BuyerDetails(payment_status=PaymentStatus.PARTIALLY_PAID, paid_amount=Decimal(paid),
                               payment_method=PaymentMethod.CASH)
        with pytest.raises(ValidationError) as exc_info:
            resolver.resolve(WHOLESALER, details, Decimal(9500))
        assert exc_info.value.field == "paid_amount"

    def test_wholesaler_unpaid_has_no_payments(self, resolver):
        details = BuyerDetails(payment_status=PaymentStatus.UNPAID)
        resolution = resolver.resolve(WHOLESALER, details, Decimal("1234.5"))
        assert resolution.paid_amount == 0
        assert resolution.pending_amount == Decimal("1234.50")
        assert resolution.payments == ()

    def test_amounts_rounded_half_up(self, resolver):
        details = BuyerDetails(payment_method=PaymentMethod.CARD)
        resolution = resolver.resolve(RETAILER, details, Decimal("100.005"))
        assert resolution.paid_amount == Decimal("100.01")

    def test_paid_sale_without_method_rejected(self, resolver):
        with pytest.raises(ValidationError) as exc_info:
            resolver.resolve(RETAILER, BuyerDetails(), Decimal(100))
        assert exc_info.value.field == "payment_method"

    def test_cancelled_status_rejected(self, resolver):
        details = BuyerDetails(payment_status=PaymentStatus.CANCELLED)
        with pytest.raises(ValidationError):
            resolver.resolve(WHOLESALER, details, Decimal(100))
