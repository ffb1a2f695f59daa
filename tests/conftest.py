import json

import pytest
import requests


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeSession(requests.Session):
    """Serves canned responses by url; a list of responses is consumed in order."""

    def __init__(self, routes=None):
        super().__init__()
        self.routes = dict(routes or {})
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, text="not found")
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("METRICS_ENABLED", "0")


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def response():
    return FakeResponse
