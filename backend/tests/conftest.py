# tests/conftest.py: Shared test fixtures
import os
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError

# Use SQLite for tests
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-unit-tests-only-min-32-chars")
os.environ["ENVIRONMENT"] = "test"

from models import User, Base
from auth import AuthService
from database import Database, get_db_session
from main import app
from organization_service import OrganizationRegistry
from schemas import OrganizationCreate


@pytest_asyncio.fixture(scope="function")
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await db.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(database):
    """HTTP test client with overridden DB dependency"""

    async def override_get_db():
        async with database.session() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(db_session, email: str, name: str) -> User:
    user = User(id=str(uuid.uuid4()), email=email, name=name, email_verified=True)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def owner(db_session):
    """The user who creates and owns organizations"""
    return await _make_user(db_session, "owner@keyvault.dev", "Owner")


@pytest_asyncio.fixture
async def other_user(db_session):
    """A second account that owns nothing of the first"""
    return await _make_user(db_session, "other@keyvault.dev", "Other")


def org_payload(name: str = "Acme", **device_overrides) -> dict:
    device = {
        "deviceName": "Chrome on macOS",
        "deviceFingerprint": "fp1",
        "encryptedDeviceKey": "enc-device-key",
        "encryptionIv": "device-iv",
        "keyDerivationSalt": "device-salt",
        "combinationSalt": "combo-salt",
    }
    device.update(device_overrides)
    return {
        "name": name,
        "publicKey": "org-public-key",
        "encryptedPrivateKey": "org-private-key-encrypted",
        "keyDerivationSalt": "org-salt",
        "encryptionIv": "org-iv",
        "mkdfConfig": {
            "requiredFactors": 2,
            "enabledFactors": ["passphrase", "device"],
        },
        "deviceInfo": device,
    }


@pytest.fixture
def make_org_payload():
    return org_payload


@pytest_asyncio.fixture
async def create_org(db_session):
    """Factory: create an organization through the registry and return the envelope data"""

    async def _create(user: User, name: str = "Acme", **device_overrides):
        payload = OrganizationCreate.model_validate(org_payload(name, **device_overrides))
        result = await OrganizationRegistry.create(db_session, user.id, payload)
        assert result.error is None, result.message
        return result.data

    return _create


@pytest_asyncio.fixture
async def owned_org(create_org, owner):
    return await create_org(owner)


@pytest.fixture
def auth_headers():
    """Factory: bearer headers for a user"""

    def _headers(user: User) -> dict:
        token = AuthService.create_access_token({"sub": user.id, "email": user.email})
        return {"Authorization": f"Bearer {token}"}

    return _headers


class BrokenSession:
    """Session stand-in whose store is unreachable"""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    async def commit(self):
        pass

    async def rollback(self):
        pass


@pytest.fixture
def broken_session():
    return BrokenSession()
