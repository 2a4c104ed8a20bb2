import logging
from contextlib import asynccontextmanager

from aiokafka import AIOKafkaProducer
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from app.config import settings
from app.database import Base, engine
from app.errors import AlreadyResolvedError, ConcurrentTransitionError, DuplicateSlugError, NotFoundError
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.routers import admin, orders, restaurants, service_requests
from app.services.change_feed import ChangePublisher
from app.utils.logging import setup_logging
from shared.lifecycle import IllegalTransitionError
from shared.tracing import setup_tracing

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

setup_tracing("store-service", settings.otlp_endpoint)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up, creating database tables")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_idempotence=True,
    )
    await producer.start()
    app.state.change_publisher = ChangePublisher(producer, settings.kafka_topic_prefix)
    logger.info("Startup complete")

    yield

    await producer.stop()
    await engine.dispose()
    logger.info("Shutting down")


app = FastAPI(
    title="Table Ordering Platform",
    description="Order lifecycle and live board change feed",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)
app.include_router(restaurants.router, prefix="/restaurants", tags=["restaurants"])
app.include_router(
    orders.router, prefix="/restaurants/{restaurant_id}/orders", tags=["orders"]
)
app.include_router(
    service_requests.router,
    prefix="/restaurants/{restaurant_id}/service-requests",
    tags=["service-requests"],
)
app.include_router(admin.router, prefix="/admin", tags=["admin"])

# Expose Prometheus metrics at /metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(IllegalTransitionError)
async def illegal_transition_handler(request: Request, exc: IllegalTransitionError) -> JSONResponse:
    logger.info(
        "Rejected illegal transition",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "status": exc.status},
    )
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ConcurrentTransitionError)
@app.exception_handler(AlreadyResolvedError)
@app.exception_handler(DuplicateSlugError)
async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
