"""Pytest configuration and fixtures for ParkSpot tests."""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Логи и файлы данных тестов - во временную папку, до импорта parkspot
_TMP_DIR = tempfile.mkdtemp(prefix="parkspot-tests-")
os.environ.setdefault("DATA_DIR", os.path.join(_TMP_DIR, "data"))
os.environ.setdefault("LOGS_DIR", os.path.join(_TMP_DIR, "logs"))
os.environ.setdefault("CREATE_DEFAULT_ADMIN", "false")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from parkspot.client.api_client import ParkSpotAPI
from parkspot.client.app import ParkSpotClientApp
from parkspot.client.notifications import LocalNotifier
from parkspot.client.session import AuthSession
from parkspot.client.storage import LocalStore
from parkspot.client.ticker import Ticker
from parkspot.core.database import Base, get_db
from parkspot.main import app


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class ManualTicker(Ticker):
    """Ticker driven by the test: fire() runs one tick."""

    def __init__(self):
        self.callback = None
        self.interval = None
        self.starts = 0

    def start(self, callback, interval):
        self.stop()
        self.callback = callback
        self.interval = interval
        self.starts += 1

    def stop(self):
        self.callback = None

    @property
    def running(self):
        return self.callback is not None

    def fire(self, times=1):
        for _ in range(times):
            if self.callback is None:
                return
            self.callback()


class RecordingNotifier(LocalNotifier):
    """LocalNotifier that keeps every alert for assertions."""

    def __init__(self, clock):
        super().__init__(clock=clock)
        self.alerts = []

    def alert(self, title, body):
        self.alerts.append((title, body))

    @property
    def alert_titles(self):
        return [title for title, _ in self.alerts]


@pytest.fixture
def db_engine():
    """In-memory SQLite shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def client(db_engine):
    """Test client for the FastAPI app with get_db pointing at the test engine."""
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    """Register a user and return bearer headers for it."""

    def make(username="alice", password="pw123", email=None):
        response = client.post(
            "/api/users/register",
            json={"username": username, "password": password, "email": email},
        )
        assert response.status_code == 201, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ticker():
    return ManualTicker()


@pytest.fixture
def notifier(clock):
    return RecordingNotifier(clock)


@pytest.fixture
def store():
    return LocalStore()


@pytest.fixture
def api(client, store):
    """API client talking to the test app, without real sleeping between retries."""
    return ParkSpotAPI(AuthSession(store), http_client=client, sleep=lambda seconds: None)


@pytest.fixture
def client_app(client, store, notifier, ticker, clock):
    parkspot_app = ParkSpotClientApp(
        store=store,
        http_client=client,
        notifier=notifier,
        ticker=ticker,
        clock=clock,
        is_network_reachable=lambda: True,
        sleep=lambda seconds: None,
    )
    yield parkspot_app
    parkspot_app.timer.ticker.stop()
