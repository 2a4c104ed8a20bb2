import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.routers.deps import get_publisher, request_id, tenant_id
from app.schemas.order import OrderCreate, OrderResponse, PaymentConfirmation, StatusUpdate
from app.services import order_service
from app.services.change_feed import ChangePublisher
from shared import lifecycle

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    logger.info(
        "Received place_order request",
        extra={
            "request_id": req_id,
            "restaurant_id": str(restaurant_id),
            "table_number": body.table_number,
        },
    )
    try:
        return await order_service.create_order(db, restaurant_id, body, req_id, publisher)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.get("/active", response_model=list[OrderResponse])
async def list_active_orders(
    restaurant_id: uuid.UUID = Depends(tenant_id),
    db: AsyncSession = Depends(get_db),
) -> list[OrderResponse]:
    return await order_service.list_active_orders(db, restaurant_id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return await order_service.get_order(db, restaurant_id, order_id)


@router.post("/{order_id}/advance", response_model=OrderResponse)
async def advance_order(
    order_id: uuid.UUID,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Kitchen staff action: move the order one step along the workflow."""
    return await order_service.transition_order(
        db, restaurant_id, order_id, lifecycle.advance, req_id, publisher
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return await order_service.transition_order(
        db, restaurant_id, order_id, lifecycle.cancel, req_id, publisher
    )


@router.post("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(
    order_id: uuid.UUID,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return await order_service.transition_order(
        db, restaurant_id, order_id, lifecycle.reject, req_id, publisher
    )


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    body: StatusUpdate,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return await order_service.update_order_status(
        db, restaurant_id, order_id, body.status, req_id, publisher
    )


@router.post("/{order_id}/payment", response_model=OrderResponse)
async def confirm_payment(
    order_id: uuid.UUID,
    body: PaymentConfirmation,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    logger.info(
        "Received payment confirmation",
        extra={"request_id": req_id, "order_id": str(order_id), "success": body.success},
    )
    return await order_service.confirm_payment(
        db, restaurant_id, order_id, body.success, body.payment_id, req_id, publisher
    )
