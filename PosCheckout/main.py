import asyncio
import logging
from decimal import Decimal

from PosCheckout.config import settings
from PosCheckout.enums import CustomerSegment, PaymentMethod, PaymentStatus, ReceiptPreference, StaffRole
from PosCheckout.models import BuyerDetails, Customer, Product, StaffMember
from PosCheckout.orchestrator import SaleOrchestrator
from PosCheckout.receipt import format_currency
from PosCheckout.repository import (
    InMemoryCustomerDirectory, InMemoryProductCatalog, InMemorySaleRepository,
    RecordingNotificationDispatcher,
)


class CheckoutFactory:

    async def setup(self) -> SaleOrchestrator:

        # catalog-setup
        catalog = InMemoryProductCatalog()
        customers = InMemoryCustomerDirectory()

        p1 = Product(
            id='1', sku='BNG-001', name='Kundan Bangle Set', category='BANGLES',
            manufacturer='Jaipur Crafts', stock_level=10,
            wholesale_price=Decimal(3500), retail_price=Decimal(5000))

        p2 = Product(id='2', sku='EAR-014', name='Jhumka Earrings', category='EARRINGS',
                     manufacturer='Meena Works', stock_level=3,
                     wholesale_price=Decimal(1400), retail_price=Decimal(2000))

        p3 = Product(id='3', sku='NCK-007', name='Temple Necklace', category='NECKLACES',
                     manufacturer='Jaipur Crafts', stock_level=2,
                     wholesale_price=Decimal(7000), retail_price=Decimal(10000))

        await catalog.add_products(products=[p1, p2, p3])
        await customers.upsert(Customer(id='c1', name='Asha Traders', phone='+919812345678',
                                        segment=CustomerSegment.WHOLESALER, email='accounts@ashatraders.in'))

        operator = StaffMember.for_role(id='s1', name='Counter 1', role=StaffRole.SALES)

        return SaleOrchestrator(
            catalog=catalog,
            customers=customers,
            store=InMemorySaleRepository(),
            dispatcher=RecordingNotificationDispatcher(),
            operator=operator,
        )


async def run_demo():
    register = await CheckoutFactory().setup()

    # Retail sale above the buyer details threshold
    await register.scan('BNG-001')
    await register.scan('BNG-001')
    await register.scan('NCK-007')
    register.set_discount(800)
    print(f"Bill #{register.quotation_number}")
    print(f"Subtotal: {format_currency(register.totals.subtotal)}")
    print(f"Final Total: {format_currency(register.totals.final_total)}")

    state = await register.complete()
    print(f"State: {state.value}")
    state = await register.submit_buyer_details(BuyerDetails(
        buyer_name='Priya Sharma', buyer_phone='9876543210', payment_method=PaymentMethod.UPI))
    print(f"State: {state.value}")
    outcome = await register.dispatch_receipt(ReceiptPreference.PRINT)
    print(f"Saved bill #{outcome.quotation_number}, printed: {outcome.receipt.printed}")
    print(f"Next bill #{register.quotation_number}")

    # Wholesale counter sale, partially paid
    register.set_segment(CustomerSegment.WHOLESALER)
    await register.scan('EAR-014')
    register.change_quantity('2', +2)
    register.set_discount(5)
    await register.complete()
    await register.submit_buyer_details(BuyerDetails(
        buyer_name='Ravi Kumar', buyer_phone='9123456780', buyer_categories=frozenset({'EARRINGS'}),
        payment_status=PaymentStatus.PARTIALLY_PAID, paid_amount=Decimal(2000),
        payment_method=PaymentMethod.CASH))
    outcome = await register.dispatch_receipt(ReceiptPreference.NONE)
    payment = outcome.snapshot.payment_details
    print(f"Paid: {format_currency(payment.paid_amount)}, Pending: {format_currency(payment.pending_amount)}")
    for product, remaining in outcome.low_stock_alerts:
        print(f"Low stock: {product.name} ({remaining} remaining)")


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_demo())
