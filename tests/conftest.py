"""Pytest configuration: in-memory SQLite store, a controllable clock and a TestClient."""

import os
from datetime import datetime, timedelta

import pytest

# Set before any app import so the module-level engine never points at Postgres
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import AdmissionSettings, get_settings
from app.db.base import Base
from app.db.session import get_db
import app.models  # noqa: F401 - register all models with Base
from app.services.analysis_engine import AnalysisResult, get_video_analyzer


class FixedClock:
    """Callable clock the services accept in place of utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeAnalyzer:
    """Stands in for frame extraction and the vision model."""

    def __init__(self):
        self.result = AnalysisResult(
            verdict="Clean",
            confidence="87%",
            reasoning="Aim movement is consistent with a controller.",
            raw={"verdict": "Clean", "confidence": "87%", "reasoning": "Aim movement is consistent with a controller."},
        )
        self.error = None
        self.calls = []

    def analyze_video(self, video_path: str) -> AnalysisResult:
        self.calls.append(video_path)
        if self.error is not None:
            raise self.error
        return self.result


def _raise_store_down(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is unavailable"))


@pytest.fixture
def store_down():
    """Drop-in for Session.query / Session.commit that behaves like a lost database."""
    return _raise_store_down


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 14, 12, 0, 0))


@pytest.fixture
def settings():
    # No probabilistic sweeps during request tests
    return AdmissionSettings(log_cleanup_probability=0.0)


@pytest.fixture
def fake_analyzer():
    return FakeAnalyzer()


@pytest.fixture
def admin_payload():
    return {"sub": "user_admin", "email": "ops@aimalyze.com"}


@pytest.fixture
def test_client(session_factory, settings, fake_analyzer, admin_payload):
    """FastAPI TestClient wired to the in-memory store and the fake analyzer."""
    from fastapi.testclient import TestClient

    from app.dependencies.auth import require_admin
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_video_analyzer] = lambda: fake_analyzer
    app.dependency_overrides[require_admin] = lambda: admin_payload

    # Not used as a context manager: startup (migrations, create_all) stays out of tests
    yield TestClient(app)

    app.dependency_overrides.clear()
