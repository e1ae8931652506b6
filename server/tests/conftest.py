import json
import os
import sys
from datetime import datetime, timezone

import pytest

# Keep the app off the filesystem unless a test asks for a FileStore
os.environ.setdefault("STORE_MODE", "local")

# Ensure the server root (containing the modules) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
SERVER_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if SERVER_ROOT not in sys.path:
    sys.path.insert(0, SERVER_ROOT)

from fastapi.testclient import TestClient  # noqa: E402

from main import create_app  # noqa: E402
from store import LocalStore  # noqa: E402

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeWebSocket:
    """Records frames sent to it; optionally fails every send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    def of_type(self, type_: str) -> list[dict]:
        return [m["payload"] for m in self.sent if m["type"] == type_]


class Clock:
    """Settable clock for handlers and reapers."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def store():
    return LocalStore()


@pytest.fixture()
def app(store):
    return create_app(store=store, run_reaper=False)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_room(client):
    def _make(name="Sprint 42", private=False, access_code=None):
        body = {"name": name, "private": private}
        if access_code is not None:
            body["accessCode"] = access_code
        res = client.post('/api/rooms', json=body)
        assert res.status_code == 201
        return res.json()['slug']
    return _make
