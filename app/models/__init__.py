from app.models.database import Base, get_db
from app.models.user import User
from app.models.vendor import Vendor, VendorBalance
from app.models.subscription import VendorSubscription
from app.models.product import Product
from app.models.order import Order, OrderItem
from app.models.transaction import PaymentGatewayTransaction
from app.models.logs import AdminActionLog, AutoProcessLog

__all__ = [
    "Base",
    "get_db",
    "User",
    "Vendor",
    "VendorBalance",
    "VendorSubscription",
    "Product",
    "Order",
    "OrderItem",
    "PaymentGatewayTransaction",
    "AutoProcessLog",
    "AdminActionLog",
]
