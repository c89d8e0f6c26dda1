import os
import sys
from pathlib import Path
from urllib.parse import urlsplit

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("SECRET_KEY", "test")
os.environ.setdefault("API_BASE_URL", "http://backend.test")

from api_client import ApiClient  # noqa: E402
from app import app  # noqa: E402
from routes.booking_routes import wizard_store  # noqa: E402

USER = {"id": "u1", "email": "alice@example.com"}


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeBackend:
    """Stands in for the requests.Session the API client talks to."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, status=200, body=None, error=None, hook=None):
        self.routes[(method, path)] = (status, body, error, hook)

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append({"method": method, "path": path, "json": json, "headers": headers or {}})
        if (method, path) not in self.routes:
            return FakeResponse(404, {"message": "Not found"})
        status, body, error, hook = self.routes[(method, path)]
        if hook is not None:
            hook()
        if error is not None:
            raise error
        return FakeResponse(status, body)

    def paths(self, method=None):
        return [c["path"] for c in self.calls if method is None or c["method"] == method]


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def api(backend):
    return ApiClient("http://backend.test", http=backend)


@pytest.fixture()
def client(backend, monkeypatch):
    monkeypatch.setitem(app.config, "TESTING", True)
    monkeypatch.setitem(app.config, "API_BASE_URL", "http://backend.test")
    monkeypatch.setitem(app.config, "API_TRANSPORT", backend)
    monkeypatch.setitem(app.config, "DEMO_MODE", False)
    monkeypatch.setitem(app.config, "PAGE_SIZE", 6)
    yield app.test_client()
    wizard_store.clear()


@pytest.fixture()
def signed_in(client, backend):
    backend.add("GET", "/api/auth/verify-token", body={"success": True, "user": USER})
    with client.session_transaction() as sess:
        sess["token"] = "tok-123"
    return client