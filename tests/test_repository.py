import asyncio

import pytest

from PosCheckout.enums import CustomerSegment, PaymentStatus, ReceiptChannel
from PosCheckout.exceptions import NotificationError, PersistenceError, ProductNotFound, SaleNotFound


def test_catalog_lookup_by_sku(catalog):
    product = asyncio.run(catalog.lookup(" sku-2 "))
    assert product.id == "2"
    assert asyncio.run(catalog.lookup("SKU-404")) is None


def test_catalog_get_product_missing(catalog):
    with pytest.raises(ProductNotFound):
        asyncio.run(catalog.get_product("404"))


def test_catalog_search_is_bounded(catalog):
    assert len(asyncio.run(catalog.search("product", limit=2))) == 2
    assert asyncio.run(catalog.search("earrings"))[0].id == "2"
    assert asyncio.run(catalog.search("   ")) == []


def test_customer_search_by_name_or_phone(customers):
    assert asyncio.run(customers.search("asha"))[0].id == "c1"
    assert asyncio.run(customers.search("98123"))[0].id == "c1"
    assert asyncio.run(customers.search("nobody")) == []


def test_dispatcher_requires_target(dispatcher):
    with pytest.raises(NotificationError):
        asyncio.run(dispatcher.send_receipt(ReceiptChannel.EMAIL, "", {"quotation_number": "Q1"}))
    asyncio.run(dispatcher.send_receipt(ReceiptChannel.EMAIL, "a@b.in", {"quotation_number": "Q1"}))
    assert dispatcher.sent == [(ReceiptChannel.EMAIL, "a@b.in", {"quotation_number": "Q1"})]


def test_sale_store_is_idempotent_for_identical_snapshot(orchestrator, catalog, store, cash):
    orchestrator.add_product(asyncio.run(catalog.get_product("2")))
    orchestrator.set_payment(status=PaymentStatus.PAID, method=cash)
    asyncio.run(orchestrator.complete())
    snapshot = orchestrator.session.snapshot

    first = asyncio.run(store.get_sale(snapshot.quotation_number)).id
    assert asyncio.run(store.create_sale(snapshot)) == first
    assert len(asyncio.run(store.get_all_sales())) == 1

    altered = snapshot.model_copy(update={"segment": CustomerSegment.WHOLESALER})
    with pytest.raises(PersistenceError):
        asyncio.run(store.create_sale(altered))


def test_sale_store_unknown_quotation_number(store):
    with pytest.raises(SaleNotFound):
        asyncio.run(store.get_sale("Q20261018-9999"))
