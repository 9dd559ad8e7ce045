# Import every model module so Base.metadata and relationship strings
# resolve no matter which module a caller imports first.

from backend.app.models.audit import AuditLog
from backend.app.models.cash import CashMovement, CashMovementType
from backend.app.models.client import Client
from backend.app.models.inventory import Product
from backend.app.models.invoice import Invoice, InvoiceItem, PaymentMethod
from backend.app.models.order import (
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    PendingAuthorization,
)
from backend.app.models.payment import Payment, PaymentAllocation
from backend.app.models.user import RoleEnum, User

__all__ = [
    "AuditLog",
    "CashMovement",
    "CashMovementType",
    "Client",
    "Invoice",
    "InvoiceItem",
    "Order",
    "OrderItem",
    "OrderPriority",
    "OrderStatus",
    "PaymentMethod",
    "Payment",
    "PaymentAllocation",
    "PendingAuthorization",
    "Product",
    "RoleEnum",
    "User",
]
