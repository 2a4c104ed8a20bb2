import uuid

from pydantic import BaseModel, Field

from shared.events import OrderWithItems
from shared.lifecycle import OrderStatus, PaymentMethod


class OrderItemCreate(BaseModel):
    menu_item_id: uuid.UUID
    quantity: int = Field(gt=0)
    notes: str | None = None


class OrderCreate(BaseModel):
    table_number: str | None = Field(default=None, max_length=50)
    customer_name: str | None = Field(default=None, max_length=100)
    notes: str | None = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    items: list[OrderItemCreate] = Field(min_length=1)


class StatusUpdate(BaseModel):
    status: OrderStatus


class PaymentConfirmation(BaseModel):
    success: bool
    payment_id: str | None = None


class OrderResponse(OrderWithItems):
    next_action: str | None = None
