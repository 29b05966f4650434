"""Pytest configuration and fixtures."""

import os

# Tests run against a throwaway SQLite file per test, never DATABASE_URL
os.environ.pop("DATABASE_URL", None)

from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from database import Base, build_engine, get_db
from main import app
from middleware.security import rate_limiter
from models.order import Order, OrderStatus
from models.profile import Profile, UserRole, VehicleType
from services.auth_service import AuthService
from services.change_feed import ChangeFeed, get_change_feed
from utils.security import get_password_hash

PASSWORD = "Passw0rd!"


@pytest.fixture(scope="session")
def password_hash() -> str:
    """Argon2 is slow on purpose; hash the shared test password once."""
    return get_password_hash(PASSWORD)


@pytest.fixture
def engine(tmp_path):
    """Create a fresh SQLite database file with all tables."""
    engine = build_engine(f"sqlite:///{tmp_path / 'dispatch.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def feed() -> ChangeFeed:
    """Create an isolated change feed."""
    return ChangeFeed()


@pytest.fixture
def client(session_factory, feed) -> Generator[TestClient, None, None]:
    """Create a test HTTP client wired to the test database and feed."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_change_feed] = lambda: feed
    default_factory = app.state.session_factory
    app.state.session_factory = session_factory
    rate_limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.session_factory = default_factory


@pytest.fixture
def make_profile(db: Session, password_hash: str) -> Callable[..., Profile]:
    """Factory for accounts with the shared test password."""
    counter = {"n": 0}

    def _make(
        role: UserRole = UserRole.CLIENT,
        full_name: Optional[str] = None,
        is_online: bool = False,
        vehicle_type: Optional[VehicleType] = None,
        last_lat: Optional[float] = None,
        last_lng: Optional[float] = None,
    ) -> Profile:
        counter["n"] += 1
        profile = Profile(
            email=f"{role.value}{counter['n']}@example.com",
            password_hash=password_hash,
            full_name=full_name or f"Test {role.value.title()} {counter['n']}",
            role=role,
            vehicle_type=vehicle_type or (VehicleType.BIKE if role == UserRole.DRIVER else None),
            is_online=is_online,
            last_lat=last_lat,
            last_lng=last_lng,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture
def admin(make_profile) -> Profile:
    return make_profile(UserRole.ADMIN, full_name="Dispatch Admin")


@pytest.fixture
def client_user(make_profile) -> Profile:
    return make_profile(UserRole.CLIENT, full_name="Mwila Banda")


@pytest.fixture
def driver(make_profile) -> Profile:
    """An online driver in central Lusaka."""
    return make_profile(UserRole.DRIVER, full_name="Chanda Phiri", is_online=True, last_lat=-15.4167, last_lng=28.2833)


@pytest.fixture
def make_order(db: Session) -> Callable[..., Order]:
    """Factory for orders inserted directly, bypassing pricing."""

    def _make(
        status: OrderStatus = OrderStatus.PENDING,
        client_id: Optional[int] = None,
        assigned_driver_id: Optional[int] = None,
        price: float = 40,
    ) -> Order:
        order = Order(
            client_id=client_id,
            customer_name="Mwila Banda",
            assigned_driver_id=assigned_driver_id,
            pickup_address="Cairo Road, Lusaka",
            pickup_lat=-15.4167,
            pickup_lng=28.2833,
            dropoff_address="Manda Hill, Lusaka",
            dropoff_lat=-15.3982,
            dropoff_lng=28.3070,
            distance_km=3.2,
            price=price,
            status=status,
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


def _bearer(profile: Profile) -> dict:
    token = AuthService.generate_tokens(profile)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[Profile], dict]:
    """Bearer header builder for a profile."""
    return _bearer
