"""
Database models.

Importing this package registers every table on ``Base.metadata`` for
Alembic and for relationship resolution.
"""

from storefront.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from storefront.database.models.notification import Notification, NotificationType
from storefront.database.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    ShippingSnapshot,
    VisibilityScope,
)
from storefront.database.models.payment import (
    PaymentRecord,
    PaymentStatus,
    PaymentType,
)
from storefront.database.models.product import Product
from storefront.database.models.user import User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Notification",
    "NotificationType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ShippingSnapshot",
    "VisibilityScope",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentType",
    "Product",
    "User",
    "UserRole",
]
