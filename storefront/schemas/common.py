"""
Shared response envelope.

Every JSON response carries ``success`` and ``message``; successful
responses add ``data`` and failures add ``error`` (and ``errors`` for
request validation failures).
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Success envelope."""

    success: bool = Field(default=True)
    message: str = Field(default="OK")
    data: Optional[Any] = Field(default=None)


class ErrorResponse(BaseModel):
    """Failure envelope."""

    success: bool = Field(default=False)
    message: str
    error: str
    errors: Optional[dict[str, list[str]]] = None


def ok(data: Any = None, message: str = "OK") -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)
