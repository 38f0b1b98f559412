import os

# Point the app at an in-memory database before database.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.pop("REDIS_URL", None)

import fnmatch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import Base
from database.models import PYQ


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
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
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def add_pyq(db):
    """Insert a raw PYQ row and return its id."""
    def _add(**fields):
        record = PYQ(**fields)
        db.add(record)
        db.commit()
        return record.id
    return _add


class FakeRedis:
    """Dict-backed stand-in for the few redis commands the project uses."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    def get(self, key):
        return self.store.get(key)

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    def scan_iter(self, match="*"):
        return [key for key in list(self.store) if fnmatch.fnmatchcase(key, match)]


@pytest.fixture
def fake_redis():
    return FakeRedis()
