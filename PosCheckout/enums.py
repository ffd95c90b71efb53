from enum import Enum


# Enums for customer segment, payment status/method, receipt options, checkout states, etc


class CustomerSegment(str, Enum):
    WHOLESALER = "wholesaler"
    RETAILER = "retailer"


class DiscountMode(str, Enum):
    PERCENTAGE = "percentage"
    ABSOLUTE_AMOUNT = "absolute_amount"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    UNPAID = "unpaid"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"


class PaymentType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class DeliveryMethod(str, Enum):
    HAND_CARRY = "hand_carry"
    DISPATCH = "dispatch"


class SaleType(str, Enum):
    COUNTER = "counter"
    REMOTE = "remote"


class ReceiptPreference(str, Enum):
    PRINT = "print"
    EMAIL = "email"
    BOTH = "both"
    NONE = "none"


class ReceiptChannel(str, Enum):
    PRINT = "print"
    EMAIL = "email"


class CheckoutState(str, Enum):
    COLLECTING_ITEMS = "collecting_items"
    NEEDS_BUYER_DETAILS = "needs_buyer_details"
    NEEDS_PAYMENT_METHOD = "needs_payment_method"
    READY_TO_PERSIST = "ready_to_persist"
    PERSISTING = "persisting"
    PERSISTED = "persisted"
    DISPATCHING_RECEIPT = "dispatching_receipt"
    COMPLETE = "complete"


class StockOutcomeKind(str, Enum):
    UPDATED = "updated"
    REMOVED = "removed"
    REJECTED = "rejected"


class StaffRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    QC = "qc"
    PACKAGING = "packaging"
    DISPATCH = "dispatch"


class Capability(str, Enum):
    MANAGE_STAFF = "manage_staff"
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_INVENTORY = "manage_inventory"
    VIEW_SENSITIVE_INFO = "view_sensitive_info"
    MANAGE_CUSTOMERS = "manage_customers"
    VIEW_ANALYTICS = "view_analytics"
    VIEW_INVENTORY = "view_inventory"
    MANAGE_QC = "manage_qc"
    MANAGE_PACKAGING = "manage_packaging"
    MANAGE_DISPATCH = "manage_dispatch"
