"""
Shared test fixtures.

Settings and the Fernet key are built at import time, so the environment is
prepared before anything from orderhub is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-chars"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-at-least-32-characters"
os.environ["ENVIRONMENT"] = "development"
os.environ["SHOPIFY_API_KEY"] = "test-shopify-key"
os.environ["SHOPIFY_API_SECRET"] = "test-shopify-secret"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["UPS_CLIENT_ID"] = "test-ups-client"
os.environ["UPS_CLIENT_SECRET"] = "test-ups-secret"
os.environ["UPS_REDIRECT_URI"] = "http://test/auth/ups/callback"
os.environ["APP_URL"] = "http://dashboard.test"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import orderhub.models  # noqa: E402,F401
from orderhub.core.database import Base, get_db_session  # noqa: E402
from orderhub.main import app  # noqa: E402
from orderhub.models.integration import Integration, IntegrationStatus, IntegrationType  # noqa: E402
from orderhub.models.store import Store, Warehouse  # noqa: E402
from orderhub.repositories.credential_vault import CredentialVault  # noqa: E402

ACCOUNT_ID = "acct-1"
STORE_ID = "store-1"
SHOP_DOMAIN = "test-shop.myshopify.com"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
async def async_client(session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_db_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def store(session: AsyncSession) -> Store:
    store = Store(id=STORE_ID, account_id=ACCOUNT_ID, name="Test Store", platform="shopify", domain=SHOP_DOMAIN)
    session.add(store)
    await session.commit()
    return store


@pytest.fixture
async def warehouses(session: AsyncSession) -> dict[str, Warehouse]:
    """W1 in California, W2 in New York."""
    created = {
        "W1": Warehouse(id="W1", account_id=ACCOUNT_ID, name="West Coast", state="CA"),
        "W2": Warehouse(id="W2", account_id=ACCOUNT_ID, name="East Coast", state="NY"),
    }
    session.add_all(created.values())
    await session.commit()
    return created


@pytest.fixture
async def shopify_integration(session: AsyncSession, store: Store) -> Integration:
    integration = Integration(
        id="int-shopify",
        name="Shopify",
        type=IntegrationType.ECOMMERCE,
        provider="shopify",
        status=IntegrationStatus.CONNECTED,
        enabled=True,
        store_id=store.id,
        account_id=ACCOUNT_ID,
        config={"provider": "shopify", "shop_domain": SHOP_DOMAIN, "api_version": "2024-01"},
        features=["productSync", "orderSync", "inventorySync"],
    )
    session.add(integration)
    await session.commit()
    await CredentialVault(session).set(ACCOUNT_ID, integration.id, {"access_token": "shpat_test"})
    await session.commit()
    return integration


@pytest.fixture
def sample_order() -> dict:
    return {
        "id": "shopify-1001",
        "external_id": "1001",
        "store_id": STORE_ID,
        "platform": "Shopify",
        "order_number": "#1001",
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "total_amount": 42.5,
        "shipping_province": "NY",
        "shipping_country_code": "US",
    }
