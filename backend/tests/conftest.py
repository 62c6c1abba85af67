import os
import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ.setdefault("STORAGE_BACKEND", "file")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="deletion-requests-"))
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("SUPPORT_EMAIL", "support@example.com")
os.environ.setdefault("FROM_EMAIL", "no-reply@example.com")
os.environ.setdefault("BASE_URL", "https://delete.example.com")
os.environ.setdefault("ENVIRONMENT", "test")

from app.database import Base
from app.dependencies.services import (
    get_deletion_service,
    get_notification_service,
    get_rate_limiter,
)
from app.limiter import limiter
from app.main import app
from app.services.deletion_request_service import DeletionRequestService
from app.services.notification_service import NotificationService
from app.services.rate_limiter import RateLimitResult
from app.services.request_store import FileRequestStore, SqlRequestStore

START_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable replacement for utc_now"""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def file_store(tmp_path) -> FileRequestStore:
    """Request store writing into a per-test directory"""
    return FileRequestStore(tmp_path / "requests")


@pytest.fixture
def sql_store() -> Generator[SqlRequestStore, None, None]:
    """Request store on a fresh in-memory SQLite database"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield SqlRequestStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(params=["file", "sql"])
def store(request):
    """Runs a test once against each storage backend"""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def service(store, clock: FakeClock) -> DeletionRequestService:
    return DeletionRequestService(store=store, clock=clock)


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock(spec=NotificationService)


@pytest.fixture
def submission_limiter() -> MagicMock:
    mock = MagicMock()
    mock.check_limit.return_value = RateLimitResult(allowed=True, remaining=4, retry_after=3600)
    return mock


@pytest.fixture
def api_service(file_store: FileRequestStore, clock: FakeClock) -> DeletionRequestService:
    return DeletionRequestService(store=file_store, clock=clock)


@pytest.fixture
def client(
    api_service: DeletionRequestService, notifier: MagicMock, submission_limiter: MagicMock
) -> Generator[TestClient, None, None]:
    """Create a test client with service overrides"""
    app.dependency_overrides[get_deletion_service] = lambda: api_service
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_rate_limiter] = lambda: submission_limiter
    limiter.enabled = False
    with TestClient(app) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()
