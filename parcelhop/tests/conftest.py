"""
Centralized Test Configuration.
"""

import os

# Background jobs never start under test
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool, Pool

from parcelhop.app.main import app
from parcelhop.app.db.session import get_db, get_session_factory, Base
from parcelhop.app.core.dependencies import get_dispatcher
from parcelhop.app.core.jwt import create_access_token
from parcelhop.app.core.redis_client import get_redis
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.domain.parcels.parcel_service import ParcelService
from parcelhop.app.models.address import Address
from parcelhop.app.models.carrier_profile import CarrierProfile
from parcelhop.app.models.enums import UserRole
from parcelhop.app.models.parcel_enums import ParcelSize, DropoffType, PickupMode
from parcelhop.app.models.user import User
from parcelhop.app.repositories.parcel_repository import SQLAlchemyMissionRepository
from parcelhop.app.schemas.parcel import ParcelCreate
from parcelhop.app.services.notification_service import NotificationDispatcher

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Vendor shop in central Paris; the default carrier waits ~500 m north-east
SHOP_LAT, SHOP_LON = 48.8606, 2.3376
CARRIER_LAT, CARRIER_LON = 48.8640, 2.3420


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiries = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex is not None:
            self.expiries[key] = ex
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if key not in self.store:
            return False
        self.expiries[key] = seconds
        return True

    async def delete(self, key):
        self.expiries.pop(key, None)
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        self.store = {}
        self.expiries = {}


class RecordingDispatcher(NotificationDispatcher):
    """Collects emitted lifecycle events instead of persisting them."""

    def __init__(self):
        self.events = []

    async def emit(self, event_name, payload):
        self.events.append((event_name, payload))

    def names(self):
        return [name for name, _ in self.events]

    def payloads(self, event_name):
        return [payload for name, payload in self.events if name == event_name]


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture(autouse=True)
def apply_overrides(mock_redis, dispatcher):
    """Route the app's database, Redis and event dispatch to test doubles."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.username, "user_id": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


async def create_user(db, username: str, role: UserRole) -> User:
    user = User(email=f"{username}@test.com", username=username, role=role, is_active=True)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_carrier(db, username: str, latitude=CARRIER_LAT, longitude=CARRIER_LON,
                         radius_km: float = 5.0, available: bool = True) -> User:
    user = await create_user(db, username, UserRole.CARRIER)
    db.add(CarrierProfile(
        user_id=user.id,
        is_available=available,
        coverage_radius_km=radius_km,
        current_latitude=latitude,
        current_longitude=longitude,
    ))
    await db.commit()
    return user


async def create_address(db, user: User, latitude=SHOP_LAT, longitude=SHOP_LON) -> Address:
    address = Address(
        user_id=user.id,
        label="Shop",
        street="1 Rue de Rivoli",
        city="Paris",
        postal_code="75001",
        latitude=latitude,
        longitude=longitude,
    )
    db.add(address)
    await db.commit()
    await db.refresh(address)
    return address


def immediate_parcel(address_id: int, size: ParcelSize = ParcelSize.MEDIUM) -> ParcelCreate:
    return ParcelCreate(
        pickup_address_id=address_id,
        dropoff_type=DropoffType.POST_OFFICE,
        dropoff_name="La Poste Louvre",
        dropoff_address="52 Rue du Louvre, 75001 Paris",
        size=size,
        pickup_mode=PickupMode.IMMEDIATE,
    )


@pytest.fixture
async def vendor(db_session):
    return await create_user(db_session, "vendor", UserRole.VENDOR)


@pytest.fixture
async def vendor_address(db_session, vendor):
    return await create_address(db_session, vendor)


@pytest.fixture
async def carrier(db_session):
    return await create_carrier(db_session, "carrier")


@pytest.fixture
async def other_carrier(db_session):
    return await create_carrier(db_session, "other_carrier")


@pytest.fixture
def repository(db_session):
    return SQLAlchemyMissionRepository(db_session)


@pytest.fixture
def mission_service(repository, dispatcher):
    return MissionService(repository, dispatcher)


@pytest.fixture
def parcel_service(repository, dispatcher):
    return ParcelService(repository, dispatcher)


@pytest.fixture
async def pending_parcel(parcel_service, vendor, vendor_address):
    """A MEDIUM parcel waiting for a carrier."""
    return await parcel_service.create_parcel(vendor.id, immediate_parcel(vendor_address.id))


@pytest.fixture
async def arrived_mission(mission_service, pending_parcel, carrier):
    """Parcel accepted by ``carrier``, who has arrived at the pickup address."""
    result = await mission_service.accept(pending_parcel.id, carrier.id)
    return await mission_service.arrived_at_pickup(result.mission.id, carrier.id)


@pytest.fixture
async def packaging_confirmed(mission_service, arrived_mission, vendor, carrier):
    """Packaging submitted by the carrier and approved by the vendor."""
    await mission_service.confirm_packaging(arrived_mission.id, carrier.id, "https://img.test/box.jpg")
    await mission_service.vendor_confirm_packaging(arrived_mission.parcel_id, vendor.id)
    return arrived_mission
