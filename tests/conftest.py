"""Shared fixtures: a fresh SQLite file per test and fake WebSocket peers."""

from __future__ import annotations

from typing import List

import pytest

from Config import Settings
from DB import ReadingStore

WEBHOOK_URL = "https://hooks.example.test/alert"


class FakeConnection:
    """Stands in for a Starlette WebSocket: records what the hub sends."""

    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.fail = fail
        self.sent: List[str] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(text)


class FakeResponse:
    def __init__(self, status_code: int = 204, text: str = "") -> None:
        self.status_code = status_code
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400


@pytest.fixture()
def db_path(tmp_path) -> str:
    return str(tmp_path / "data" / "weather.db")


@pytest.fixture()
def store(db_path) -> ReadingStore:
    s = ReadingStore(db_path)
    s.init_db()
    return s


@pytest.fixture()
def settings(db_path) -> Settings:
    return Settings(db_path=db_path, webhook_url=WEBHOOK_URL, alert_threshold_c=30.0)


@pytest.fixture()
def webhook_calls(monkeypatch) -> list:
    """Capture outbound webhook posts instead of hitting the network."""
    import Alerts

    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        return FakeResponse()

    monkeypatch.setattr(Alerts.requests, "post", fake_post)
    return calls
