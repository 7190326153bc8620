"""Coupon exceptions."""

from typing import Any


class CouponError(Exception):
    """Base exception for coupon errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class CouponNotFoundError(CouponError):
    """Raised when no active coupon matches the code."""

    pass


class CouponRejectedError(CouponError):
    """Raised when a coupon fails one of its validity checks."""

    pass
