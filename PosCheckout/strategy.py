import logging
from decimal import Decimal
from typing import Dict, Optional, Sequence, Tuple

from PosCheckout.enums import CustomerSegment, DiscountMode
from PosCheckout.models import DiscountRange, ZERO, to_decimal

logger = logging.getLogger(__name__)


def _values(*values) -> Tuple[Decimal, ...]:
    return tuple(Decimal(v) for v in values)


WHOLESALE_RANGE = DiscountRange(
    allowed_values=_values(1, 2, 3, 4, 5), cap=Decimal(15), mode=DiscountMode.PERCENTAGE
)

# (lower bound inclusive, upper bound, upper bound inclusive, range); subtotal is tax exclusive
RETAIL_BRACKETS: Tuple[Tuple[Decimal, Decimal, bool, DiscountRange], ...] = (
    (Decimal(10000), Decimal(30000), True,
     DiscountRange(_values(500, 600, 700, 800, 1000), Decimal(1000), DiscountMode.ABSOLUTE_AMOUNT)),
    (Decimal(5000), Decimal(10000), False,
     DiscountRange(_values(200, 300, 350, 400, 500), Decimal(500), DiscountMode.ABSOLUTE_AMOUNT)),
    (Decimal(3000), Decimal(5000), False,
     DiscountRange(_values(50, 60, 75, 85, 100), Decimal(100), DiscountMode.ABSOLUTE_AMOUNT)),
)
RETAIL_DEFAULT_RANGE = DiscountRange(
    _values(25, 35, 40, 45, 50), Decimal(50), DiscountMode.ABSOLUTE_AMOUNT
)


class DiscountStrategy:

    def __init__(self, name: str):
        self.name = name

    def resolve(self, subtotal: Decimal) -> DiscountRange:
        raise NotImplementedError

    def validate_entry(self, value: Decimal, current: Decimal, subtotal: Decimal) -> Decimal:
        """Return the discount value the cart should hold after the operator types ``value``."""
        raise NotImplementedError

    def discount_amount(self, subtotal: Decimal, value: Decimal) -> Decimal:
        raise NotImplementedError


class PercentageDiscountStrategy(DiscountStrategy):
    """Wholesale discounts: a percentage of the subtotal, anything from 0 up to the cap."""

    def __init__(self, name: str, discount_range: DiscountRange = WHOLESALE_RANGE):
        super().__init__(name=name)
        self._range = discount_range

    def resolve(self, subtotal: Decimal) -> DiscountRange:
        return self._range

    def validate_entry(self, value: Decimal, current: Decimal, subtotal: Decimal) -> Decimal:
        if value < 0 or value > self._range.cap:
            logger.info("Ignoring %s discount of %s%%, allowed range is 0-%s%%", self.name, value, self._range.cap)
            return current
        return value

    def discount_amount(self, subtotal: Decimal, value: Decimal) -> Decimal:
        return subtotal * value / 100


class BracketDiscountStrategy(DiscountStrategy):
    """Retail discounts: a fixed amount picked from a menu that depends on the cart value.

    A typed value must be one of the bracket's menu values. Anything above the
    bracket cap is clamped to the cap, and any other value is ignored.
    """

    def __init__(self, name: str,
                 brackets: Sequence[Tuple[Decimal, Decimal, bool, DiscountRange]] = RETAIL_BRACKETS,
                 default: DiscountRange = RETAIL_DEFAULT_RANGE):
        super().__init__(name=name)
        self._brackets = tuple(brackets)
        self._default = default

    def resolve(self, subtotal: Decimal) -> DiscountRange:
        for lower, upper, upper_inclusive, discount_range in self._brackets:
            if subtotal < lower:
                continue
            if subtotal < upper or (upper_inclusive and subtotal == upper):
                return discount_range
        return self._default

    def validate_entry(self, value: Decimal, current: Decimal, subtotal: Decimal) -> Decimal:
        discount_range = self.resolve(subtotal)
        if value > discount_range.cap:
            return discount_range.cap
        if value not in discount_range.allowed_values:
            logger.info("Ignoring %s discount of %s, not in %s", self.name, value,
                        [str(v) for v in discount_range.allowed_values])
            return current
        return value

    def discount_amount(self, subtotal: Decimal, value: Decimal) -> Decimal:
        return min(value, subtotal)


class DiscountPolicy:
    """Maps each customer segment to its discount strategy."""

    def __init__(self, strategies: Optional[Dict[CustomerSegment, DiscountStrategy]] = None):
        self._strategies: Dict[CustomerSegment, DiscountStrategy] = strategies or {
            CustomerSegment.WHOLESALER: PercentageDiscountStrategy(name="WholesaleDiscount"),
            CustomerSegment.RETAILER: BracketDiscountStrategy(name="RetailDiscount"),
        }

    def strategy_for(self, segment: CustomerSegment) -> DiscountStrategy:
        return self._strategies[segment]

    def resolve(self, segment: CustomerSegment, subtotal) -> DiscountRange:
        return self.strategy_for(segment).resolve(to_decimal(subtotal))

    def apply_entry(self, segment: CustomerSegment, value, current, subtotal) -> Decimal:
        return self.strategy_for(segment).validate_entry(
            value=to_decimal(value), current=to_decimal(current), subtotal=to_decimal(subtotal)
        )

    def discount_amount(self, segment: CustomerSegment, subtotal, value) -> Decimal:
        subtotal = to_decimal(subtotal)
        if subtotal <= 0:
            return ZERO
        amount = self.strategy_for(segment).discount_amount(subtotal, to_decimal(value))
        return max(ZERO, min(amount, subtotal))
