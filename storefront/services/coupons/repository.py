"""Coupon data access."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models.coupon import Coupon


def normalize_code(code: str) -> str:
    """Coupon codes are matched trimmed and upper-cased."""
    return code.strip().upper()


class CouponRepository:
    """Read-only coupon lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(
            select(Coupon).where(
                Coupon.code == normalize_code(code),
                Coupon.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()
