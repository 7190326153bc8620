"""
Product model as seen by the order flow.

Catalog management is handled elsewhere; order intake only reads the
authoritative price and images and decrements stock.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import BaseModel, JSONType


class Product(BaseModel):
    """
    Sellable product.

    Attributes:
        name: Product name
        slug: Unique URL slug, usable as an alternate lookup key
        price: Current unit price
        images: List of image URLs or ``{"url": ...}`` objects
        stock: Units on hand
        track_inventory: When false, stock never blocks an order
        is_active: Inactive products cannot be ordered
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    slug: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        unique=True,
        index=True,
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )

    images: Mapped[list[Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    track_inventory: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def primary_image_url(self) -> str:
        """First image URL, whichever shape it was stored in."""
        if not self.images:
            return ""
        first = self.images[0]
        if isinstance(first, str):
            return first
        if isinstance(first, dict):
            url: Optional[str] = first.get("url")
            return url or ""
        return ""

    def has_stock_for(self, quantity: int) -> bool:
        """Check if the requested quantity can be fulfilled."""
        if not self.track_inventory:
            return True
        return self.stock >= quantity
