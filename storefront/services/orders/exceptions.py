"""
Order service exceptions.

Every exception carries keyword context for structured logging. The API
layer maps each class to an HTTP status code.
"""

from typing import Any


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class OrderValidationError(OrderServiceError):
    """Raised when the order payload is incomplete."""

    pass


class ProductResolutionError(OrderServiceError):
    """Raised when a line item does not resolve to an active product."""

    pass


class InsufficientStockError(OrderServiceError):
    """Raised when a product cannot cover the requested quantity."""

    pass


class OrderNotFoundError(OrderServiceError):
    """Raised when an order does not exist or is not visible to the caller."""

    pass


class OrderCancellationError(OrderServiceError):
    """Raised when a customer cancellation is not allowed."""

    pass


class StateTransitionError(OrderServiceError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, message: str, current_state: str, target_state: str, **context: Any):
        super().__init__(
            message,
            current_state=current_state,
            target_state=target_state,
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state
