import os
import secrets
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure project root on sys.path so 'adserver' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from adserver.main import app  # type: ignore
from adserver.database import Base  # type: ignore
from adserver.api import deps  # type: ignore
"""Pytest fixtures and factories.

Important: SQLAlchemy relationship configuration requires all model modules to be imported
before Base.metadata.create_all(), otherwise back_populates targets might not exist yet.
"""
from adserver.models.db import (
    User, Campaign, CampaignSegment, PaymentEvent, NotificationLog,
)
from adserver.models.db.enums import CampaignStatus, Placement, UserRole
from adserver.models.segmentation import Segmentation
from adserver.services.notifications import Message, NotificationService
from adserver.utils.ratelimiter import rate_limiter

# File-based SQLite so threaded tests (concurrent tracking) get real separate connections.
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_adserver.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Health checks open their own session through adserver.database.SessionLocal
import adserver.database as _adserver_database  # noqa: E402
_adserver_database.SessionLocal = TestingSessionLocal  # type: ignore

@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_adserver.db")
    except OSError:
        pass

@pytest.fixture(autouse=True)
def _isolate_test_state(create_test_db):
    """Empty every table and the in-memory rate limiter around each test."""
    rate_limiter.reset()
    yield
    rate_limiter.reset()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db

@pytest.fixture()
def client():
    return TestClient(app)

# ---------- Notification capture ----------

class RecordingTransport:
    def __init__(self):
        self.sent: list[Message] = []
        self.fail = False

    async def send(self, message: Message) -> None:
        if self.fail:
            raise RuntimeError("relay down")
        self.sent.append(message)

@pytest.fixture()
def transport():
    return RecordingTransport()

@pytest.fixture()
def outbox(transport):
    """Route API notifications into a RecordingTransport for the duration of a test."""
    def _override_notifier(db: Session = Depends(deps.get_db)) -> NotificationService:
        return NotificationService(db, transport=transport)
    app.dependency_overrides[deps.get_notifier] = _override_notifier
    yield transport
    app.dependency_overrides.pop(deps.get_notifier, None)

# ---------- Data factory helpers ----------

@pytest.fixture()
def user_factory(db_session):
    def _create(role: UserRole = UserRole.ADVERTISER, name: str | None = None) -> User:
        token = secrets.token_hex(4)
        u = User(
            name=name or f"User {token}",
            email=f"{token}@example.com",
            api_key=f"key_{secrets.token_hex(12)}",
            role=role,
        )
        db_session.add(u)
        db_session.commit()
        db_session.refresh(u)
        return u
    return _create

@pytest.fixture()
def advertiser(user_factory):
    return user_factory(UserRole.ADVERTISER, name="Advertiser")

@pytest.fixture()
def admin(user_factory):
    return user_factory(UserRole.ADMIN, name="Admin")

@pytest.fixture()
def auth():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {user.api_key}"}
    return _headers

@pytest.fixture()
def campaign_factory(db_session, advertiser):
    """Insert a campaign directly, bypassing the lifecycle (for serving and tracking tests)."""
    def _create(
        *,
        title: str | None = None,
        placement: Placement = Placement.HOME_TOP,
        status: CampaignStatus = CampaignStatus.ACTIVE,
        is_active: bool | None = None,
        owner: User | None = None,
        segmentation: Segmentation | None = None,
        created_at: datetime | None = None,
        **fields,
    ) -> Campaign:
        if is_active is None:
            is_active = status == CampaignStatus.ACTIVE
        c = Campaign(
            title=title or f"Campaign {secrets.token_hex(2)}",
            placement=placement,
            status=status,
            is_active=is_active,
            redirect_url="https://example.org/landing",
            image_url="https://cdn.example.org/banner.png",
            created_by=(owner or advertiser).id,
            **fields,
        )
        if created_at is not None:
            c.created_at = created_at
        if segmentation is not None:
            c.set_segmentation(segmentation)
        db_session.add(c)
        db_session.commit()
        db_session.refresh(c)
        return c
    return _create

@pytest.fixture()
def now():
    return datetime.now(timezone.utc)

@pytest.fixture()
def ordered_times(now):
    """Strictly increasing creation timestamps (SQLite CURRENT_TIMESTAMP has 1s resolution)."""
    return [now - timedelta(minutes=10 - i) for i in range(10)]
