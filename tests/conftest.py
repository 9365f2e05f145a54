import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.db.mongo import create_indexes, get_db
from billing_ledger.main import app
from billing_ledger.models.tenant import PenaltyPolicy, TenantConfig
from billing_ledger.repositories.tenant_repo import TenantConfigRepository

TEST_DATABASE_NAME = "billing_ledger_test"


@pytest_asyncio.fixture
async def test_db() -> AsyncIOMotorDatabase:
    """In-memory Motor-compatible database, fresh for every test."""
    client = AsyncMongoMockClient()
    db = client[TEST_DATABASE_NAME]
    await create_indexes(db)
    yield db
    await client.drop_database(TEST_DATABASE_NAME)


@pytest_asyncio.fixture
async def plain_tenant(test_db):
    """Tenant without a penalty policy; payments never trigger penalty runs."""
    await TenantConfigRepository(test_db).upsert(TenantConfig(tenant_id="plain"))
    return "plain"


@pytest_asyncio.fixture
async def penalty_tenant(test_db):
    """Tenant charging 5% a month, compounding, after a 10 day grace period."""
    await TenantConfigRepository(test_db).upsert(TenantConfig(
        tenant_id="mtc",
        due_day_of_month=1,
        penalty_policy=PenaltyPolicy(rate=0.05, compounding=True, grace_days=10)
    ))
    return "mtc"


@pytest.fixture
def api_db():
    return AsyncMongoMockClient()["billing_ledger_api_test"]


@pytest.fixture
def client(api_db):
    """FastAPI test client bound to an in-memory database.

    Startup hooks are not run, so no MongoDB server is contacted.
    """
    app.dependency_overrides[get_db] = lambda: api_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
