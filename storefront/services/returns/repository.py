"""Return request data access."""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models.return_request import (
    CLOSED_RETURN_STATUSES,
    ReturnRequest,
)


class ReturnRepository:
    """Async lookups and inserts for return requests."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, return_request: ReturnRequest) -> ReturnRequest:
        self.session.add(return_request)
        await self.session.flush()
        return return_request

    async def get_open_for_order(self, order_id: uuid.UUID) -> Optional[ReturnRequest]:
        """First return for the order that is neither rejected nor refunded."""
        result = await self.session.execute(
            select(ReturnRequest)
            .where(
                ReturnRequest.order_id == order_id,
                ReturnRequest.status.not_in(CLOSED_RETURN_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: uuid.UUID) -> Sequence[ReturnRequest]:
        """List a user's returns, newest first."""
        result = await self.session.execute(
            select(ReturnRequest)
            .where(ReturnRequest.user_id == user_id)
            .order_by(ReturnRequest.created_at.desc())
        )
        return result.scalars().all()
