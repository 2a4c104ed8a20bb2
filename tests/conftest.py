import os

# Point both services at SQLite and keep spans local before their settings load.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OTLP_ENDPOINT", "")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from shared.events import ChangeEvent, ChangeType, Table


class RecordingPublisher:
    """Stands in for ChangePublisher; keeps events instead of sending them to Kafka."""

    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []

    async def publish(self, table, event_type, restaurant_id, new, old=None, correlation_id="unknown"):
        event = ChangeEvent(
            event_type=event_type,
            table=table,
            restaurant_id=restaurant_id,
            new=new,
            old=old,
            correlation_id=correlation_id,
        )
        self.events.append(event)
        return event

    def of(self, table: Table, event_type: ChangeType) -> list[ChangeEvent]:
        return [e for e in self.events if e.table == table and e.event_type == event_type]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest_asyncio.fixture
async def client(session_factory, publisher):
    async def _get_db():
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = _get_db
    app.state.change_publisher = publisher
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def restaurant(client):
    r = await client.post("/restaurants", json={"name": "Kahve Durağı", "slug": "kahve-duragi"})
    assert r.status_code == 201
    return r.json()


@pytest_asyncio.fixture
async def menu(client, restaurant):
    items = {}
    for name, price in [("Latte", "45.00"), ("Cheesecake", "75.00"), ("Water", "10.00")]:
        r = await client.post(
            f"/restaurants/{restaurant['id']}/menu-items", json={"name": name, "price": price}
        )
        assert r.status_code == 201
        items[name] = r.json()
    return items

