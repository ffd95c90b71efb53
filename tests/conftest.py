import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from PosCheckout.config import CheckoutSettings
from PosCheckout.enums import CustomerSegment, PaymentMethod
from PosCheckout.exceptions import NotificationError, PersistenceError
from PosCheckout.models import Customer, Product
from PosCheckout.orchestrator import SaleOrchestrator
from PosCheckout.repository import (
    InMemoryCustomerDirectory, InMemoryProductCatalog, InMemorySaleRepository,
    NotificationDispatcher, PersistenceStore, RecordingNotificationDispatcher,
)

FIXED_NOW = datetime(2026, 10, 18, 11, 30, tzinfo=timezone.utc)


def make_product(id="1", price=5000, stock=10, wholesale=None, category="BANGLES", name=None):
    return Product(
        id=id,
        sku=f"SKU-{id}",
        name=name or f"Product {id}",
        category=category,
        manufacturer="Jaipur Crafts",
        stock_level=stock,
        wholesale_price=Decimal(wholesale if wholesale is not None else price),
        retail_price=Decimal(price),
        description=f"Description {id}",
    )


class FlakyStore(PersistenceStore):
    """Fails the first ``failures`` calls, then stores like the in-memory repository."""

    def __init__(self, failures=1, error=None):
        self.failures = failures
        self.error = error or PersistenceError("database unavailable")
        self.calls = []
        self._inner = InMemorySaleRepository()

    async def create_sale(self, snapshot):
        self.calls.append(snapshot)
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return await self._inner.create_sale(snapshot)


class SlowStore(PersistenceStore):

    async def create_sale(self, snapshot):
        await asyncio.sleep(10)
        return "never"


class StallingStore(PersistenceStore):
    """Hangs on the first ``stalls`` calls, then stores like the in-memory repository."""

    def __init__(self, stalls=1):
        self.stalls = stalls
        self._inner = InMemorySaleRepository()

    async def create_sale(self, snapshot):
        if self.stalls > 0:
            self.stalls -= 1
            await asyncio.sleep(10)
        return await self._inner.create_sale(snapshot)


class FailingDispatcher(NotificationDispatcher):

    def __init__(self, fail_channels):
        self.fail_channels = set(fail_channels)
        self.sent = []

    async def send_receipt(self, channel, target, payload):
        if channel in self.fail_channels:
            raise NotificationError(channel.value, "printer offline")
        self.sent.append((channel, target, payload))


@pytest.fixture
def settings():
    return CheckoutSettings(_env_file=None)


@pytest.fixture
def catalog():
    catalog = InMemoryProductCatalog()
    asyncio.run(catalog.add_products([
        make_product("1", price=5000, stock=10),
        make_product("2", price=1000, stock=2, category="EARRINGS"),
        make_product("3", price=2500, stock=0, category="RINGS"),
    ]))
    return catalog


@pytest.fixture
def customers():
    directory = InMemoryCustomerDirectory()
    asyncio.run(directory.upsert(Customer(
        id="c1", name="Asha Traders", phone="+919812345678",
        segment=CustomerSegment.WHOLESALER, email="accounts@ashatraders.in",
    )))
    return directory


@pytest.fixture
def store():
    return InMemorySaleRepository()


@pytest.fixture
def dispatcher():
    return RecordingNotificationDispatcher()


@pytest.fixture
def make_orchestrator(catalog, customers, store, dispatcher, settings):
    def factory(**overrides):
        kwargs = dict(
            catalog=catalog,
            customers=customers,
            store=store,
            dispatcher=dispatcher,
            settings=settings,
            clock=lambda: FIXED_NOW,
        )
        kwargs.update(overrides)
        return SaleOrchestrator(**kwargs)
    return factory


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


@pytest.fixture
def cash():
    return PaymentMethod.CASH
