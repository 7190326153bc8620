"""Return request schemas."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.database.models.return_request import RefundMethod, ReturnReason


class ReturnItemRequest(BaseModel):
    """One returned line, identified by its position in the order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    line: int = Field(..., ge=0, description="Index of the line in the order's items")
    quantity: int = Field(..., ge=1, le=100)
    reason: ReturnReason
    description: Optional[str] = Field(None, max_length=500)


class ReturnCreateRequest(BaseModel):
    order_id: UUID
    items: list[ReturnItemRequest] = Field(..., min_length=1)
    images: list[str] = Field(default_factory=list, max_length=5)
    refund_method: RefundMethod = RefundMethod.ORIGINAL

    def items_payload(self) -> list[dict[str, Any]]:
        return [item.model_dump(mode="json", exclude_none=True) for item in self.items]
