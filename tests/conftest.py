from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List

import pytest

from plodlog import create_app
from plodlog.dao.document_store import DocumentStore
from plodlog.services.app_state import AppState
from plodlog.services.login_flow import LoginFlow
from plodlog.services.remote_store import RemoteStoreAdapter
from plodlog.services.tracker import ActivityTracker

BACKEND = {
    "apiKey": "test-key",
    "appId": "1:123:web:abc",
    "messagingSenderId": "123",
    "projectId": "plodlog-test",
    "ownerId": "owner-test",
}
T0 = datetime(2025, 3, 3, 6, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ManualTicker:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.callback()


class TickerFactory:
    def __init__(self) -> None:
        self.created: List[ManualTicker] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> ManualTicker:
        ticker = ManualTicker(interval, callback)
        self.created.append(ticker)
        return ticker

    @property
    def last(self) -> ManualTicker:
        return self.created[-1]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def tickers() -> TickerFactory:
    return TickerFactory()


@pytest.fixture()
def store(tmp_path: Path) -> DocumentStore:
    return DocumentStore(tmp_path / "store.sqlite")


@pytest.fixture()
def adapter(store: DocumentStore) -> RemoteStoreAdapter:
    return RemoteStoreAdapter(store, "test_app", "owner-test")


@pytest.fixture()
def state(adapter: RemoteStoreAdapter):
    app_state = AppState(adapter)
    yield app_state
    app_state.close()


@pytest.fixture()
def login_flow(state: AppState) -> LoginFlow:
    return LoginFlow(state)


@pytest.fixture()
def tracker(state: AppState, clock: FakeClock, tickers: TickerFactory):
    activity_tracker = ActivityTracker(state, clock=clock, ticker_factory=tickers, tick_seconds=1.0)
    yield activity_tracker
    activity_tracker.close()


@pytest.fixture()
def app(tmp_path: Path, clock: FakeClock, tickers: TickerFactory):
    flask_app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "DATABASE": str(tmp_path / "app.sqlite"),
        "BACKEND_CONFIG": BACKEND,
        "BACKEND_SETTINGS_PATH": str(tmp_path / "backend_config.json"),
        "CLOCK": clock,
        "TICKER_FACTORY": tickers,
        "REPORT_BLOCKS_PER_PAGE": 2,
    })
    yield flask_app
    from plodlog.dao.db import stop_runtime

    stop_runtime(flask_app)


@pytest.fixture()
def client(app):
    with app.test_client() as test_client:
        yield test_client


def login(client, user_id: str = "admin", pin: str = "12345"):
    return client.post("/api/auth/login", json={"user_id": user_id, "pin": pin})


@pytest.fixture()
def admin_client(client):
    response = login(client)
    assert response.status_code == 200
    assert response.get_json()["state"] == "logged_in"
    return client
