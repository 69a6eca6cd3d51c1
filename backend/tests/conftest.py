import os

# Settings are read once at import time; point them at throwaway values first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_INIT_MODE", "off")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-session-suite-0123456789")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from authsessions.core.database import Base
from authsessions.services.rate_limiter import rate_limiter
from authsessions.services.user_service import user_service

PASSWORD = "correct-horse-battery"


@pytest.fixture
def db_engine(tmp_path):
    # File-backed so every ORM session gets its own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sessions.db'}",
        connect_args={"check_same_thread": False, "timeout": 5},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def user(db):
    return user_service.create_user(db, "alice@example.com", PASSWORD)


@pytest.fixture
def other_user(db):
    return user_service.create_user(db, "bob@example.com", PASSWORD)
