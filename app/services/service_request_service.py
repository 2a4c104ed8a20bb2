import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import AlreadyResolvedError, NotFoundError
from app.metrics import SERVICE_REQUESTS
from app.models.service_request import ServiceRequest
from app.services.change_feed import ChangePublisher
from shared.events import ChangeType, ServiceRequestRow, ServiceRequestStatus, Table

logger = logging.getLogger(__name__)


def _to_row(request: ServiceRequest) -> ServiceRequestRow:
    return ServiceRequestRow.model_validate(request)


async def create_service_request(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    table_no: str,
    request_id: str,
    publisher: ChangePublisher,
) -> ServiceRequestRow:
    # Duplicates for the same table are accepted as-is.
    service_request = ServiceRequest(
        restaurant_id=restaurant_id,
        table_no=table_no,
        status=ServiceRequestStatus.PENDING,
    )
    db.add(service_request)
    await db.commit()
    SERVICE_REQUESTS.labels("created").inc()

    row = _to_row(service_request)
    logger.info(
        "Service request created",
        extra={
            "service_request_id": str(row.id),
            "restaurant_id": str(restaurant_id),
            "table_no": table_no,
            "request_id": request_id,
        },
    )
    await publisher.publish(
        Table.SERVICE_REQUESTS,
        ChangeType.INSERT,
        restaurant_id,
        new=row.model_dump(mode="json"),
        correlation_id=request_id,
    )
    return row


async def list_pending_service_requests(
    db: AsyncSession, restaurant_id: uuid.UUID
) -> list[ServiceRequestRow]:
    result = await db.execute(
        select(ServiceRequest)
        .where(
            ServiceRequest.restaurant_id == restaurant_id,
            ServiceRequest.status == ServiceRequestStatus.PENDING,
        )
        .order_by(ServiceRequest.created_at.desc())
    )
    return [_to_row(r) for r in result.scalars().all()]


async def resolve_service_request(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    service_request_id: uuid.UUID,
    request_id: str,
    publisher: ChangePublisher,
) -> ServiceRequestRow:
    """Mark a pending request resolved. A request is resolved exactly once."""
    service_request = (
        await db.execute(
            select(ServiceRequest).where(
                ServiceRequest.id == service_request_id,
                ServiceRequest.restaurant_id == restaurant_id,
            )
        )
    ).scalars().first()
    if service_request is None:
        raise NotFoundError("Service request", service_request_id)

    old = _to_row(service_request)
    result = await db.execute(
        update(ServiceRequest)
        .where(
            ServiceRequest.id == service_request_id,
            ServiceRequest.status == ServiceRequestStatus.PENDING,
        )
        .values(status=ServiceRequestStatus.RESOLVED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise AlreadyResolvedError(service_request_id)
    await db.commit()
    SERVICE_REQUESTS.labels("resolved").inc()

    new = old.model_copy(update={"status": ServiceRequestStatus.RESOLVED})
    logger.info(
        "Service request resolved",
        extra={
            "service_request_id": str(service_request_id),
            "restaurant_id": str(restaurant_id),
            "request_id": request_id,
        },
    )
    await publisher.publish(
        Table.SERVICE_REQUESTS,
        ChangeType.UPDATE,
        restaurant_id,
        new=new.model_dump(mode="json"),
        old=old.model_dump(mode="json"),
        correlation_id=request_id,
    )
    return new
