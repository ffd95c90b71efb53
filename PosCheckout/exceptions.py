from typing import List, Optional, Tuple


class CheckoutException(Exception):
    """Base exception class for all checkout related exceptions.

    This serves as the parent class for all custom exceptions in the checkout engine,
    allowing for catching all checkout specific exceptions in a single except block.
    """
    pass


class ValidationError(CheckoutException):
    """Exception raised when operator input blocks a checkout transition.

    Carries every offending field so the register can report them individually.
    The first error is also available as ``field`` / ``message``.
    """

    def __init__(self, field: str, message: str, errors: Optional[List[Tuple[str, str]]] = None):
        self.errors: List[Tuple[str, str]] = errors or [(field, message)]
        self.field, self.message = self.errors[0]
        super().__init__("; ".join(f"{f}: {m}" for f, m in self.errors))

    @classmethod
    def from_errors(cls, errors: List[Tuple[str, str]]) -> "ValidationError":
        field, message = errors[0]
        return cls(field=field, message=message, errors=errors)


class StockLimitExceeded(CheckoutException):
    """Exception raised when a quantity edit would exceed the product's stock level.

    The cart is left unchanged when this is raised.
    """

    def __init__(self, product):
        self.product = product
        super().__init__(
            f"Cannot add more {product.name}. Maximum stock level ({product.stock_level}) reached."
        )


class EmptyCartError(CheckoutException):
    """Exception raised when a sale is completed with no items in the cart."""

    def __init__(self, message: str = "Please add items to complete the sale"):
        super().__init__(message)


class PersistenceError(CheckoutException):
    """Exception raised when the sale could not be stored.

    The sale is not marked complete; the operator may retry with the identical snapshot.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to save sale: {reason}")


class NotificationError(CheckoutException):
    """Exception raised when a receipt could not be dispatched.

    Non-fatal: the already persisted sale is not affected.
    """

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Could not send {channel} receipt: {reason}")


class ProductNotFound(CheckoutException):
    """Exception raised when a requested product cannot be found in the catalog."""
    pass


class SaleNotFound(CheckoutException):
    """Exception raised when no stored sale has the requested quotation number."""
    pass


class InvalidTransition(CheckoutException):
    """Exception raised when an action is not allowed in the current checkout state."""

    def __init__(self, state, action: str):
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} while checkout is in state {state.value}")


class PermissionDenied(CheckoutException):
    """Exception raised when the session operator lacks a required capability."""

    def __init__(self, capability):
        self.capability = capability
        super().__init__(f"Operator lacks capability {capability.value}")
