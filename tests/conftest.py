"""Shared fixtures for the ssam-replicate tests"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from models.options import ReplicateOptions


class FakeClient:
    """Stands in for a browser connection and records what was sent"""

    def __init__(self):
        self.sent = []

    async def send(self, event, data=None):
        self.sent.append((event, data))

    @property
    def events(self):
        return [event for event, _ in self.sent]

    def payloads(self, event):
        return [data for name, data in self.sent if name == event]


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "output"


@pytest.fixture
def options(out_dir):
    return ReplicateOptions(api_key="r8_test", test_output=("a.png", "b.png"), out_dir=str(out_dir))


@pytest.fixture
def replicate_client():
    remote = MagicMock()
    remote.predict = AsyncMock()
    remote.run = AsyncMock()
    return remote


def make_response(status_code=200, json_data=None, chunks=None, text=""):
    """Build a fake requests.Response"""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = json_data if json_data is not None else {}
    if chunks is not None:
        response.iter_content.return_value = chunks
    return response


def route_session(routes):
    """Fake requests.Session answering by (method, path suffix)"""
    session = MagicMock()

    def request(method, url, **kwargs):
        for (route_method, suffix), json_data in routes.items():
            if method == route_method and url.endswith(suffix):
                return make_response(200, json_data)
        return make_response(404, text=f"no route for {method} {url}")

    session.request.side_effect = request
    return session
