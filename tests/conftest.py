"""
Pytest configuration and fixtures for the session service tests.
"""

import os

# Settings are read at import time, so the environment goes first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EVENTS_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SEED_ON_STARTUP", "false")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")
os.environ.setdefault("SESSION_SWEEPER_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-length-for-hs256")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import Roles, TableStatus
from shared.infrastructure.db import get_db
from shared.infrastructure.events import get_event_publisher
from shared.security.password import hash_password
from session_api.main import app
from session_api.models import (
    Base,
    MenuItem,
    MenuItemVariation,
    Restaurant,
    RestaurantTable,
    StaffUser,
)
from session_api.services.domain import CartService, SessionLifecycleService

API = "/api/v1"
STAFF_PASSWORD = "staffpass123"

# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database session override.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def publisher():
    """The in-memory event publisher, emptied around each test."""
    events = get_event_publisher()
    events.clear()
    yield events
    events.clear()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_restaurant(db_session):
    """Restaurant with 8% tax and 10% service charge."""
    restaurant = Restaurant(
        name="Test Bistro",
        slug="test-bistro",
        currency_code="USD",
        tax_rate=Decimal("0.0800"),
        service_charge_rate=Decimal("0.1000"),
    )
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db_session):
    restaurant = Restaurant(name="Other Place", slug="other-place", tax_rate=Decimal("0"))
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def seed_menu(db_session, seed_restaurant):
    """
    Menu items keyed by short name:
    burger 8.99, pizza 14.00 (variations regular +0 and large +4.00),
    soup 6.50 (unavailable).
    """
    burger = MenuItem(restaurant_id=seed_restaurant.id, name="Burger", category="Mains", price=Decimal("8.99"))
    pizza = MenuItem(restaurant_id=seed_restaurant.id, name="Pizza", category="Mains", price=Decimal("14.00"))
    soup = MenuItem(
        restaurant_id=seed_restaurant.id,
        name="Soup",
        category="Starters",
        price=Decimal("6.50"),
        is_available=False,
    )
    db_session.add_all([burger, pizza, soup])
    db_session.flush()

    regular = MenuItemVariation(menu_item_id=pizza.id, name="Regular", price_adjustment=Decimal("0"), is_default=True)
    large = MenuItemVariation(menu_item_id=pizza.id, name="Large", price_adjustment=Decimal("4.00"))
    db_session.add_all([regular, large])
    db_session.commit()

    return {
        "burger": burger,
        "pizza": pizza,
        "soup": soup,
        "pizza_regular": regular,
        "pizza_large": large,
    }


def make_table(db_session, restaurant, number="1", qr_code=None, **kwargs):
    table = RestaurantTable(
        restaurant_id=restaurant.id,
        table_number=number,
        capacity=kwargs.pop("capacity", 4),
        qr_code=qr_code or f"qr-{restaurant.slug}-{number}",
        status=kwargs.pop("status", TableStatus.AVAILABLE),
        **kwargs,
    )
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def seed_table(db_session, seed_restaurant):
    return make_table(db_session, seed_restaurant, "1")


@pytest.fixture
def second_table(db_session, seed_restaurant):
    return make_table(db_session, seed_restaurant, "2")


def make_staff(db_session, restaurant, email, role):
    user = StaffUser(
        restaurant_id=restaurant.id,
        email=email,
        password_hash=hash_password(STAFF_PASSWORD),
        full_name=f"Test {role.title()}",
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def seed_admin_user(db_session, seed_restaurant):
    return make_staff(db_session, seed_restaurant, "admin@bistro.com", Roles.ADMIN)


@pytest.fixture
def seed_waiter_user(db_session, seed_restaurant):
    return make_staff(db_session, seed_restaurant, "waiter@bistro.com", Roles.WAITER)


@pytest.fixture
def other_manager_user(db_session, other_restaurant):
    return make_staff(db_session, other_restaurant, "manager@other.com", Roles.MANAGER)


def login(client, email):
    response = client.post(f"{API}/auth/login", json={"email": email, "password": STAFF_PASSWORD})
    assert response.status_code == 200, f"Login failed: {response.json()}"
    return response.json()


@pytest.fixture
def auth_headers(client, seed_admin_user):
    """Get authentication headers for an ADMIN of the test restaurant."""
    token = login(client, seed_admin_user.email)["accessToken"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def waiter_auth_headers(client, seed_waiter_user):
    token = login(client, seed_waiter_user.email)["accessToken"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(client, other_manager_user):
    token = login(client, other_manager_user.email)["accessToken"]
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def lifecycle(db_session):
    return SessionLifecycleService(db_session)


@pytest.fixture
def cart(db_session):
    return CartService(db_session)


@pytest.fixture
def open_session(lifecycle, seed_table, seed_menu):
    """A fresh session on table 1 with Alice as host."""
    return lifecycle.create_or_join(seed_table.id, "Alice")


def join_guest(client, guest_name, table_qr_code=None, session_code=None):
    body = {"guestName": guest_name}
    if table_qr_code:
        body["tableQrCode"] = table_qr_code
    if session_code:
        body["sessionCode"] = session_code
    response = client.post(f"{API}/guest/sessions/join", json=body)
    assert response.status_code == 200, response.json()
    return response.json()


def guest_headers(joined):
    return {"X-Guest-Token": joined["guestToken"]}
