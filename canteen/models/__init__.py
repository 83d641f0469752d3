# Import all models here so SQLAlchemy registers them with Base.metadata
from canteen.models.canteen import Canteen
from canteen.models.feedback import Feedback
from canteen.models.menu_item import MenuItem
from canteen.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from canteen.models.user import User, UserRole

__all__ = [
    "Canteen",
    "Feedback",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "User",
    "UserRole",
]
