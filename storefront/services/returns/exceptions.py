"""Return request exceptions."""

from typing import Any


class ReturnError(Exception):
    """Base exception for return request errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ReturnValidationError(ReturnError):
    """Raised when the returned lines do not match the order."""

    pass


class ReturnNotAllowedError(ReturnError):
    """Raised when the order is not eligible for a return."""

    pass
