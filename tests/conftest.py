"""
conftest.py — Shared Test Fixtures for agencyops

Provides an in-memory SQLite database, a FastAPI TestClient with auth
overrides, and factory fixtures for users of every role, clients and the
task boards the delay scan reads.

Business Rules:
- All tests run against an isolated in-memory DB
- Auth is overridden; client.login_as(user) switches the current user
- Each test function gets fresh tables

Called by: all test files via pytest autodiscovery
Depends on: agencyops.models (Base), agencyops.database (get_db), agencyops.dependencies
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agencyops import roles
from agencyops.models import (
    ActiveClientBilling,
    AdsTask,
    Base,
    Client,
    ClientOnboarding,
    ClientProductValue,
    User,
)

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_conn, _):
    """FKs on; let SQLAlchemy own BEGIN so SAVEPOINTs behave."""
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


# Fixed clock: 2026-03-10 12:00 in São Paulo (UTC-3)
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def make_user(db_session: Session):
    """Factory: make_user(role, name=...) → committed User."""
    counter = {"n": 0}

    def _make(role: str, name: str | None = None, email: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@agencia.com.br",
            name=name if name is not None else f"{role.title()} {counter['n']}",
            role=role,
            is_active=True,
            created_at=NOW,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def ceo_user(make_user) -> User:
    return make_user(roles.CEO, name="Ana CEO")


@pytest.fixture()
def pm_user(make_user) -> User:
    return make_user(roles.PROJECT_MANAGER, name="Paula Projetos")


@pytest.fixture()
def ads_user(make_user) -> User:
    return make_user(roles.ADS_MANAGER, name="Bruno Ads")


@pytest.fixture()
def other_ads_user(make_user) -> User:
    return make_user(roles.ADS_MANAGER, name="Carla Ads")


@pytest.fixture()
def cs_user(make_user) -> User:
    return make_user(roles.CLIENT_SUCCESS, name="Diego Sucesso")


@pytest.fixture()
def design_user(make_user) -> User:
    return make_user(roles.DESIGN, name="Elisa Design")


@pytest.fixture()
def make_client(db_session: Session):
    """Factory: make_client(name, products={slug: value}, ...) → committed Client.

    Also writes the per-product values and one active billing row per product.
    """

    def _make(
        name: str = "Acme Ltda",
        products: dict | None = None,
        status: str = "active",
        ads_manager: User | None = None,
    ) -> Client:
        products = products or {}
        client = Client(
            name=name,
            status=status,
            contracted_products=list(products),
            assigned_ads_manager_id=ads_manager.id if ads_manager else None,
            archived=False,
            created_at=NOW - timedelta(days=90),
        )
        db_session.add(client)
        db_session.flush()
        for slug, value in products.items():
            db_session.add(
                ClientProductValue(
                    client_id=client.id, product_slug=slug, product_name=slug.upper(),
                    monthly_value=value,
                )
            )
            db_session.add(
                ActiveClientBilling(client_id=client.id, product_slug=slug, monthly_value=value)
            )
        db_session.commit()
        db_session.refresh(client)
        return client

    return _make


@pytest.fixture()
def onboarding_client(db_session: Session, make_client, ads_user):
    """Factory: a client sitting on `milestone` for `days` days as of NOW."""

    def _make(milestone: int = 1, days: int = 0, ads_manager: User | None = ads_user,
              name: str = "Onboarding Co") -> Client:
        client = make_client(name=name, status="onboarding", ads_manager=ads_manager)
        db_session.add(
            ClientOnboarding(
                client_id=client.id,
                current_milestone=milestone,
                milestone_started_at=NOW - timedelta(days=days),
                created_at=NOW - timedelta(days=days),
            )
        )
        db_session.commit()
        return client

    return _make


@pytest.fixture()
def make_ads_task(db_session: Session, ads_user):
    def _make(due: datetime | None, owner: User | None = None, status: str = "todo",
              archived: bool | None = None, title: str = "Subir campanha") -> AdsTask:
        task = AdsTask(
            ads_manager_id=(owner or ads_user).id,
            title=title,
            status=status,
            due_date=due,
            archived=archived,
        )
        db_session.add(task)
        db_session.commit()
        return task

    return _make


@pytest.fixture()
def client(db_session: Session, ceo_user: User) -> TestClient:
    """FastAPI TestClient with auth overridden.

    Starts logged in as the CEO; call client.login_as(user) to switch.
    """
    from agencyops.database import get_db
    from agencyops.dependencies import require_user
    from agencyops.main import app

    current = {"user": ceo_user}

    def _override_db():
        yield db_session

    def _override_user():
        return current["user"]

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[require_user] = _override_user

    with TestClient(app) as c:
        c.login_as = lambda u: current.__setitem__("user", u)
        yield c

    app.dependency_overrides.clear()
