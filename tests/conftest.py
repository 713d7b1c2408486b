"""
Shared fixtures: a throwaway SQLite database per test, a controllable
clock and an API client wired to that database.
"""
import os
import tempfile
from datetime import datetime, timedelta

# Must be set before any loyalty_ledger module builds the global engine.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), 'loyalty_ledger_test.db')}",
)
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi.testclient import TestClient

from loyalty_ledger.api.app import app
from loyalty_ledger.lib.db import build_engine, build_session_factory, get_db, init_db
from loyalty_ledger.lib.metrics import get_metrics_collector, reset_metrics


class FixedClock:
    """Clock returning a settable instant."""
    
    def __init__(self, now: datetime):
        self.now = now
    
    def __call__(self) -> datetime:
        return self.now
    
    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine(tmp_path):
    """Engine over a fresh SQLite file with the schema created."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Get database session for tests."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 15, 12, 0, 0))


@pytest.fixture(autouse=True)
def metrics():
    """Fresh global metrics for each test."""
    reset_metrics()
    yield get_metrics_collector()
    reset_metrics()


@pytest.fixture
def client(session_factory):
    """Test client for the FastAPI app bound to the test database."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()
    
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
