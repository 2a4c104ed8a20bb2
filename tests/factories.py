"""Row builders for the sync tests."""

import uuid
from datetime import datetime
from decimal import Decimal

from shared.events import OrderItemRow, OrderWithItems, ServiceRequestRow, ServiceRequestStatus
from shared.lifecycle import OrderStatus, PaymentMethod


def make_order(
    restaurant_id: uuid.UUID,
    status: OrderStatus = OrderStatus.RECEIVED,
    table_number: str = "5",
    total: str = "120.00",
    order_id: uuid.UUID | None = None,
    updated_at: datetime | None = None,
) -> OrderWithItems:
    order_id = order_id or uuid.uuid4()
    stamp = updated_at or datetime(2026, 10, 19, 12, 0, 0)
    return OrderWithItems(
        id=order_id,
        restaurant_id=restaurant_id,
        table_number=table_number,
        status=status,
        payment_method=PaymentMethod.CASH,
        total_amount=Decimal(total),
        created_at=datetime(2026, 10, 19, 12, 0, 0),
        updated_at=stamp,
        items=[
            OrderItemRow(
                id=uuid.uuid4(),
                order_id=order_id,
                menu_item_id=uuid.uuid4(),
                menu_item_name="Latte",
                quantity=1,
                unit_price=Decimal(total),
                total_price=Decimal(total),
            )
        ],
    )


def make_service_request(
    restaurant_id: uuid.UUID,
    table_no: str = "3",
    status: ServiceRequestStatus = ServiceRequestStatus.PENDING,
    request_id: uuid.UUID | None = None,
) -> ServiceRequestRow:
    return ServiceRequestRow(
        id=request_id or uuid.uuid4(),
        restaurant_id=restaurant_id,
        table_no=table_no,
        status=status,
        created_at=datetime(2026, 10, 19, 12, 0, 0),
    )
