"""
Shared fixtures: an in-memory database per test and an HTTP client bound
to the FastAPI app.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from terra_chat import models  # noqa: F401
from terra_chat.client.transport import ChatTransport, normalize_body, COMMAND_PATH
from terra_chat.database import Base, configure_engine, get_db
from terra_chat.exceptions import TransportError
from terra_chat.main import app
from terra_chat.models.asset import MarketplaceAsset
from terra_chat.utils.security import create_access_token


BUYER_ID, BUYER_NAME = "wallet-buyer", "Bruno"
SELLER_ID, SELLER_NAME = "wallet-seller", "Sofia"
OUTSIDER_ID, OUTSIDER_NAME = "wallet-outsider", "Olga"

ASSET_ID = "asset-x"
OWN_ASSET_ID = "asset-own"  # published by the buyer


def auth_headers(user_id: str, name: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, name)}"}


@pytest_asyncio.fixture
async def engine():
    engine = configure_engine(create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    ))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def assets(session_factory):
    published = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    async with session_factory() as session:
        session.add_all([
            MarketplaceAsset(
                id=ASSET_ID,
                title="Lot 7, Quinta Norte",
                seller_id=SELLER_ID,
                seller_name=SELLER_NAME,
                created_at=published
            ),
            MarketplaceAsset(
                id=OWN_ASSET_ID,
                title="Bruno's parcel",
                seller_id=BUYER_ID,
                seller_name=BUYER_NAME,
                created_at=published
            ),
        ])
        await session.commit()
    return {"asset": ASSET_ID, "own": OWN_ASSET_ID}


@pytest_asyncio.fixture
async def client(session_factory, assets):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class InProcessTransport(ChatTransport):
    """ChatTransport over the in-process app; ``offline`` simulates a dead network."""

    def __init__(self, http: AsyncClient, user_id: str, name: str):
        self.http = http
        self.headers = auth_headers(user_id, name)
        self.offline = False

    async def post_command(self, action, payload):
        if self.offline:
            raise TransportError("Connection error: network unreachable")
        response = await self.http.post(COMMAND_PATH, json={"action": action, **payload}, headers=self.headers)
        return normalize_body(response.status_code, response.json())

    async def get(self, path, params=None):
        if self.offline:
            raise TransportError("Connection error: network unreachable")
        response = await self.http.get(path, params=params, headers=self.headers)
        if response.status_code != 200:
            raise TransportError(normalize_body(response.status_code, response.json())["message"])
        return response.json()


@pytest.fixture
def buyer_transport(client):
    return InProcessTransport(client, BUYER_ID, BUYER_NAME)


@pytest.fixture
def seller_transport(client):
    return InProcessTransport(client, SELLER_ID, SELLER_NAME)
