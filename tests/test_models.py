from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from PosCheckout.enums import Capability, CustomerSegment, StaffRole
from PosCheckout.models import (
    Cart, LineItem, ProductDescriptor, ROLE_CAPABILITIES, SaleItemSnapshot, StaffMember, money,
)

from conftest import make_product


def test_money_rounds_half_up():
    assert money("2.345") == Decimal("2.35")
    assert money("2.344") == Decimal("2.34")
    assert money(0) == Decimal("0.00")


def test_product_price_for_segment():
    product = make_product(price=5000, wholesale=3500)
    assert product.price_for(CustomerSegment.RETAILER) == 5000
    assert product.price_for(CustomerSegment.WHOLESALER) == 3500


def test_cart_item_count():
    cart = Cart()
    cart.items.append(LineItem(make_product("1"), 2, Decimal(10), Decimal(8)))
    cart.items.append(LineItem(make_product("2"), 3, Decimal(10), Decimal(8)))
    assert cart.item_count == 5
    assert cart.find("2").line_total == 30
    assert cart.find("9") is None


def test_admin_has_every_capability():
    admin = StaffMember.for_role("a1", "Admin", StaffRole.ADMIN)
    assert all(admin.can(capability) for capability in Capability)


def test_role_capabilities():
    packer = StaffMember.for_role("p1", "Packer", StaffRole.PACKAGING)
    assert packer.can(Capability.MANAGE_PACKAGING)
    assert not packer.can(Capability.MANAGE_CUSTOMERS)
    assert Capability.MANAGE_CUSTOMERS in ROLE_CAPABILITIES[StaffRole.MANAGER]


def test_snapshot_item_quantity_must_be_positive():
    descriptor = ProductDescriptor(name="Bangle", sku="BNG-001", manufacturer="Jaipur Crafts", category="BANGLES")
    with pytest.raises(PydanticValidationError):
        SaleItemSnapshot(product_id="1", quantity=0, price=Decimal(10), original_price=Decimal(8),
                         product=descriptor)
