"""
API v1 routers.
"""

from storefront.api.v1.admin_orders import router as admin_orders_router
from storefront.api.v1.coupons import router as coupons_router
from storefront.api.v1.orders import router as orders_router
from storefront.api.v1.payments import router as payments_router
from storefront.api.v1.returns import router as returns_router

__all__ = [
    "admin_orders_router",
    "coupons_router",
    "orders_router",
    "payments_router",
    "returns_router",
]
