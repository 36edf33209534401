"""
Pytest fixtures for the asset tracker test suite.

Provides:
- An in-memory SQLite database per test (StaticPool, tables from the models)
- A FastAPI TestClient wired to that database
- Factories for locations, users, holding assets and assets
- Structured log capture
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO

# Must be set before any itam module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from itam import config
from itam.auth import create_access_token
from itam.db import Base, get_db
from itam.logging_config import LogContext, StructuredFormatter, configure_logging, reset_logging
from itam.main import app
from itam.models import (
    Asset, AssetState, AssetStatus, AssetType, HoldingAsset, Location, User, UserRole, utcnow,
)
from itam.routers.reports import inventory_chart_cache


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """Capture itam logs as parsed JSON dicts."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("itam")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _reset_chart_cache():
    inventory_chart_cache.invalidate()
    yield
    inventory_chart_cache.invalidate()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def fallback_location(db):
    loc = Location(name=config.IMPORT_FALLBACK_LOCATION)
    db.add(loc)
    db.commit()
    return loc


@pytest.fixture
def make_location(db):
    def _make(name: str = "HQ") -> Location:
        loc = Location(name=name)
        db.add(loc)
        db.commit()
        return loc
    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name: str = "Test User", role: UserRole = UserRole.USER, **kwargs) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name,
            email=kwargs.pop("email", f"user{n}@example.com"),
            employee_id=kwargs.pop("employee_id", f"EMP{n:05d}"),
            role=role,
            **kwargs,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("Ada Admin", role=UserRole.ADMIN, email="admin@example.com")


@pytest.fixture
def make_holding(db, fallback_location):
    def _make(serial: str = "SN-1", description: str = "Dell Latitude 5440", **kwargs) -> HoldingAsset:
        holding = HoldingAsset(
            serial_number=serial,
            description=description,
            purchase_price=kwargs.pop("purchase_price", Decimal("1200.00")),
            location_id=fallback_location.id,
            status=AssetStatus.HOLDING,
            **kwargs,
        )
        db.add(holding)
        db.commit()
        return holding
    return _make


@pytest.fixture
def make_asset(db, fallback_location):
    def _make(
        asset_number: str,
        type: AssetType = AssetType.LAPTOP,
        state: AssetState = AssetState.AVAILABLE,
        serial: str | None = None,
        **kwargs,
    ) -> Asset:
        now = utcnow()
        asset = Asset(
            asset_number=asset_number,
            type=type,
            state=state,
            status=kwargs.pop("status", AssetStatus.STOCK),
            serial_number=serial or f"SER-{asset_number}",
            description=kwargs.pop("description", f"{type.value.title()} {asset_number}"),
            purchase_price=kwargs.pop("purchase_price", Decimal("1000.00")),
            location_id=kwargs.pop("location_id", fallback_location.id),
            created_at=kwargs.pop("created_at", now),
            updated_at=now,
            **kwargs,
        )
        db.add(asset)
        db.commit()
        return asset
    return _make


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    # Unhandled errors should come back as the 500 envelope, not be re-raised
    with_client = TestClient(app, raise_server_exceptions=False)
    yield with_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(subject=user.email)}"}
    return _headers
