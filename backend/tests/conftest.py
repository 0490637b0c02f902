"""Pytest configuration and fixtures."""

import asyncio
import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional
from uuid import UUID, uuid4

# Set test env vars before any app import
os.environ.setdefault("SECRET_KEY", "testsecretkey_for_unit_tests_only_1234567890")
os.environ.setdefault("ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALERT_POLLING_ENABLED", "false")
os.environ.setdefault("EXPO_PUSH_ENABLED", "false")

import asyncpg
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from starlette.websockets import WebSocketState

from app.api.deps import get_alert_store, get_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import limiter
from app.main import app
from app.models import Base
from app.models.alert import Alert, AlertType
from app.models.alert_history import AlertHistory
from app.models.user import User
from app.services.alert_service import AlertService
from app.services.alert_store import AlertStore, AlertStoreError, TriggerEvent, UserAlerts

# Rate limits are backed by Redis; not under test here
limiter.enabled = False

# Test database URL
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    settings.DATABASE_URL.rsplit("/", 1)[0] + f"/{settings.POSTGRES_DB}_test",
)

# No pooling: each test runs on its own event loop
test_engine = create_async_engine(
    TEST_DATABASE_URL, echo=False, poolclass=NullPool, connect_args={"timeout": 5}
)

TestSessionLocal = sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def build_alert(
    user_id: UUID,
    token_id: Optional[str] = "bitcoin",
    threshold=50000,
    alert_type: AlertType = AlertType.PRICE_ABOVE,
    is_active: bool = True,
    symbol: Optional[str] = None,
) -> Alert:
    now = datetime.now(timezone.utc)
    return Alert(
        id=uuid4(),
        user_id=user_id,
        token_id=token_id,
        token_symbol=symbol or (token_id.upper() if token_id else None),
        token_name=token_id.title() if token_id else None,
        price_threshold=threshold,
        alert_type=alert_type,
        is_active=is_active,
        last_triggered=None,
        triggered_count=0,
        created_at=now,
        updated_at=now,
    )


class FakeAlertStore:
    """In-memory alert store with switchable write failures."""

    def __init__(self):
        self.alerts: Dict[UUID, List[Alert]] = {}
        self.push_tokens: Dict[UUID, str] = {}
        self.history: List[AlertHistory] = []
        self.trigger_calls: List[tuple] = []
        self.fail_list = False
        self.fail_apply = False
        self.fail_history = False

    def add(self, alert: Alert) -> Alert:
        self.alerts.setdefault(alert.user_id, []).append(alert)
        return alert

    def _find(self, user_id, alert_id) -> Optional[Alert]:
        for alert in self.alerts.get(user_id, []):
            if alert.id == alert_id:
                return alert
        return None

    async def list_users_with_alerts(self) -> List[UserAlerts]:
        if self.fail_list:
            raise AlertStoreError("database unreachable")
        return [
            UserAlerts(user_id=uid, alerts=list(alerts), expo_push_token=self.push_tokens.get(uid))
            for uid, alerts in self.alerts.items()
            if alerts
        ]

    async def apply_trigger(self, user_id, alert_id, timestamp) -> bool:
        self.trigger_calls.append((user_id, alert_id, timestamp))
        if self.fail_apply:
            raise AlertStoreError("write failed")
        alert = self._find(user_id, alert_id)
        if alert is None:
            return False
        alert.triggered_count += 1
        alert.last_triggered = timestamp
        alert.updated_at = timestamp
        return True

    async def append_history(self, event: TriggerEvent) -> bool:
        if self.fail_history:
            raise AlertStoreError("insert failed")
        event.id = uuid4()
        self.history.append(
            AlertHistory(
                id=event.id,
                user_id=event.user_id,
                alert_id=event.alert_id,
                alert=event.alert,
                price=event.price,
                triggered_at=event.triggered_at,
            )
        )
        return True

    async def list_alerts(self, user_id, active_only: bool = False) -> List[Alert]:
        alerts = self.alerts.get(user_id, [])
        return [a for a in alerts if a.is_active or not active_only]

    async def get_alert(self, user_id, alert_id) -> Optional[Alert]:
        return self._find(user_id, alert_id)

    async def create_alert(self, user_id, data) -> Alert:
        alert = build_alert(
            user_id,
            token_id=data.token_id,
            threshold=data.price_threshold,
            alert_type=data.alert_type,
            symbol=data.token_symbol,
        )
        alert.token_name = data.token_name
        return self.add(alert)

    async def update_alert(self, user_id, alert_id, changes) -> Optional[Alert]:
        alert = self._find(user_id, alert_id)
        if alert is None:
            return None
        for key, value in changes.items():
            setattr(alert, key, value)
        alert.updated_at = datetime.now(timezone.utc)
        return alert

    async def delete_alert(self, user_id, alert_id) -> bool:
        alert = self._find(user_id, alert_id)
        if alert is None:
            return False
        self.alerts[user_id].remove(alert)
        return True

    async def delete_alerts_by_token(self, user_id, token_id) -> int:
        alerts = self.alerts.get(user_id, [])
        keep = [a for a in alerts if a.token_id != token_id]
        self.alerts[user_id] = keep
        return len(alerts) - len(keep)

    async def list_history(self, user_id, limit: int = 50, offset: int = 0):
        rows = [h for h in self.history if h.user_id == user_id]
        rows.sort(key=lambda h: h.triggered_at, reverse=True)
        return rows[offset:offset + limit]

    async def get_alert_summary(self, user_id) -> Dict[str, int]:
        alerts = self.alerts.get(user_id, [])
        return {
            "total_alerts": len(alerts),
            "active_alerts": sum(1 for a in alerts if a.is_active),
            "triggered_today": sum(1 for a in alerts if a.last_triggered),
            "total_triggers": sum(1 for h in self.history if h.user_id == user_id),
        }


class FakePriceSource:
    """Returns canned prices and records every requested id set."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices = dict(prices or {})
        self.calls: List[set] = []

    async def fetch_prices(self, token_ids):
        ids = set(token_ids)
        self.calls.append(ids)
        return {t: p for t, p in self.prices.items() if t in ids}


class FakeDispatcher:
    def __init__(self, delivered: bool = True):
        self.delivered = delivered
        self.notified: List[tuple] = []

    async def notify(self, user_id, event) -> bool:
        self.notified.append((user_id, event))
        return self.delivered


class FakePush:
    def __init__(self):
        self.sent: List[tuple] = []

    async def send_alert_push(self, push_token, event) -> bool:
        self.sent.append((push_token, event))
        return True


class FakeChannel:
    """Stand-in for a connected WebSocket."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.client_state = WebSocketState.CONNECTED
        self.sent: List[str] = []
        self.fail = fail
        self.delay = delay
        self.closed_with: Optional[int] = None

    async def send_text(self, text: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket broken")
        self.sent.append(text)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code
        self.client_state = WebSocketState.DISCONNECTED


class FakeSession:
    """Enough of AsyncSession for endpoints that only add and commit."""

    def __init__(self):
        self.added = []
        self.commits = 0

    def add(self, obj):
        self.added.append(obj)

    async def commit(self):
        self.commits += 1

    async def refresh(self, obj):
        if getattr(obj, "id", None) is None:
            obj.id = uuid4()
        if getattr(obj, "created_at", None) is None:
            obj.created_at = datetime.now(timezone.utc)

    async def rollback(self):
        pass


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def store() -> FakeAlertStore:
    return FakeAlertStore()


@pytest.fixture
def prices() -> FakePriceSource:
    return FakePriceSource()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def push() -> FakePush:
    return FakePush()


@pytest.fixture
def service(store, prices, dispatcher) -> AlertService:
    return AlertService(store=store, prices=prices, dispatcher=dispatcher, push=None)


@pytest.fixture
def make_alert():
    return build_alert


@pytest.fixture
def channel_factory():
    return FakeChannel


@pytest.fixture
def current_user() -> User:
    return User(
        id=uuid4(),
        email="user@test.com",
        password_hash="not-used",
        display_name="Test User",
        expo_push_token=None,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest_asyncio.fixture
async def client(
    store: FakeAlertStore, current_user: User, fake_session: FakeSession
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client backed by the in-memory store."""

    async def override_get_db():
        yield fake_session

    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_alert_store] = lambda: store
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anonymous_client() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh schema on the test database for each test; skipped when it is unreachable."""
    try:
        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, SQLAlchemyError) as e:
        pytest.skip(f"Test database unavailable: {type(e).__name__}: {e}")

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def sql_store(db_session: AsyncSession) -> AlertStore:
    """AlertStore bound to the test database."""
    return AlertStore(session_factory=TestSessionLocal)
