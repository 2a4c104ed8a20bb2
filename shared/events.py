"""
Pydantic schemas for the row-level change feed shared by all services.

The store service publishes one ChangeEvent per committed row mutation; the
sync worker consumes them. Like a database change feed, an event carries only
the changed row, never its relations.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from shared.lifecycle import OrderStatus, PaymentMethod


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Table(str, Enum):
    ORDERS = "orders"
    SERVICE_REQUESTS = "service_requests"


class ServiceRequestStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ChangeEvent(BaseModel):
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_version: int = 1
    event_type: ChangeType
    table: Table
    restaurant_id: uuid.UUID
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    correlation_id: str = "unknown"  # carries X-Request-ID from the HTTP layer
    occurred_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"extra": "ignore"}


# ---------------------------------------------------------------------------
# Row snapshots
# ---------------------------------------------------------------------------


class OrderItemRow(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    menu_item_id: uuid.UUID | None = None
    menu_item_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: str | None = None

    model_config = {"extra": "ignore", "from_attributes": True}


class OrderRow(BaseModel):
    id: uuid.UUID
    restaurant_id: uuid.UUID
    table_number: str | None = None
    customer_name: str | None = None
    notes: str | None = None
    status: OrderStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = {"extra": "ignore", "from_attributes": True}


class OrderWithItems(OrderRow):
    items: list[OrderItemRow] = Field(default_factory=list)


class ServiceRequestRow(BaseModel):
    id: uuid.UUID
    restaurant_id: uuid.UUID
    table_no: str
    status: ServiceRequestStatus
    created_at: datetime

    model_config = {"extra": "ignore", "from_attributes": True}


def topic_for(prefix: str, table: Table) -> str:
    """One Kafka topic per table: ``<prefix>.orders``, ``<prefix>.service_requests``."""
    return f"{prefix}.{table.value}"
