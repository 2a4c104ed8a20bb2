# Import all models here so SQLAlchemy registers them with Base.metadata
from app.models.category import Category
from app.models.menu_item import MenuItem
from app.models.order import Order, OrderItem
from app.models.restaurant import Restaurant
from app.models.service_request import ServiceRequest

__all__ = [
    "Category",
    "MenuItem",
    "Order",
    "OrderItem",
    "Restaurant",
    "ServiceRequest",
]
