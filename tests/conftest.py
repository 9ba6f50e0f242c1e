# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "letterpress-test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from letterpress.core.security import create_access_token
from letterpress.db.session import Base
from letterpress.db.session import get_db as app_get_session
from letterpress.main import app as fastapi_app
from letterpress.models import IssueDeliveryTask, Subscription, User
from letterpress.models.subscription import (
    SUBSCRIPTION_STATUS_CONFIRMED,
    SUBSCRIPTION_STATUS_PENDING,
)
from letterpress.services.email_client import EmailClient


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    # Services commit their own transactions and workers open their own
    # sessions, so every test gets a fresh on-disk database.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'letterpress.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(
    app: FastAPI,
    session_factory: sessionmaker[Session],
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test", follow_redirects=False) as test_client:
        yield test_client


def _create_user(db_session: Session, username: str) -> User:
    user = User(username=username)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def test_user(db_session: Session) -> User:
    """Create and return a persisted operator."""
    return _create_user(db_session, "operator")


@pytest.fixture()
def other_user(db_session: Session) -> User:
    """Create and return a second persisted operator."""
    return _create_user(db_session, "other-operator")


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary operator."""
    token = create_access_token(test_user.user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary operator."""
    token = create_access_token(other_user.user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def add_subscriber(db_session: Session) -> Callable[..., Subscription]:
    """Return a factory persisting a subscription row."""

    def _add(email: str, *, confirmed: bool = True, name: str = "Subscriber") -> Subscription:
        subscription = Subscription(
            email=email,
            name=name,
            status=SUBSCRIPTION_STATUS_CONFIRMED if confirmed else SUBSCRIPTION_STATUS_PENDING,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _add


@pytest.fixture()
def mock_email_client() -> AsyncMock:
    """Email gateway double that accepts every message."""
    client = AsyncMock(spec=EmailClient)
    client.send_email.return_value = None
    return client


@pytest.fixture()
def newsletter_form() -> dict[str, str]:
    return {
        "title": "Issue #1",
        "content_text": "Plain text body",
        "content_html": "<p>HTML body</p>",
        "idempotency_key": "3f1a3c2e-8b4f-4d7a-9a57-0f1c2b3d4e5f",
    }


def count_rows(session: Session, model: type[Base]) -> int:
    """Count rows of ``model`` as currently committed."""
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def queued_emails(session: Session) -> set[str]:
    return set(session.execute(select(IssueDeliveryTask.subscriber_email)).scalars())
