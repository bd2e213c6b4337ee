"""
Shared fixtures: in-memory SQLite schema, session, users, FastAPI client.
Settings are read from the environment at import time, so defaults go in first.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CELERY_BROKER_URL", "redis://localhost:6379/1")
os.environ.setdefault("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("TELEGRAM_GROUP_ID", "-1002451832857")
os.environ.setdefault("TELEGRAM_AUX_CHAT_ID", "-1002000000002")
os.environ.setdefault("CLOUDPAYMENTS_PUBLIC_ID", "pk_test")
os.environ.setdefault("CLOUDPAYMENTS_API_SECRET", "cp_secret")
os.environ.setdefault("SIGNED_GATEWAY_URL", "https://pay.example.com/checkout")
os.environ.setdefault("SIGNED_GATEWAY_MERCHANT_ID", "merchant-1")
os.environ.setdefault("SIGNED_GATEWAY_SECRET", "gw_secret")
os.environ.setdefault("ADMIN_API_KEY", "")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models import audit_log, material, payment, subscription, user  # noqa: F401
from app.models.user import User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(telegram_id: str = "5001", **kwargs) -> User:
        user = User(telegram_id=telegram_id, **kwargs)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(session_factory):
    """TestClient without lifespan: schema comes from the engine fixture."""
    from fastapi.testclient import TestClient

    from app.db.session import get_db
    from app.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()
