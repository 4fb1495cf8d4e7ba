"""
API v1 package initialization.
"""

from storefront.api.v1.orders import router as orders_router
from storefront.api.v1.payments import router as payments_router

__all__ = ["orders_router", "payments_router"]
