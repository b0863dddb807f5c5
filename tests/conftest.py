import json
from typing import Dict, Optional, Union

import pytest
import requests

from leadform import MemoryStorage, QuotaTracker


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSession:
    """Records POSTs and hands back canned responses or raises canned errors."""

    def __init__(self, result: Union[requests.Response, Exception]):
        self.result = result
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def make_response(
    status: int = 200,
    body: Union[bytes, str, dict, list] = b"",
    headers: Optional[Dict[str, str]] = None,
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Error"
    if isinstance(body, (dict, list)):
        body = json.dumps(body)
        resp.headers["Content-Type"] = "application/json"
    if isinstance(body, str):
        body = body.encode("utf-8")
    resp._content = body
    resp.headers.update(headers or {})
    return resp


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def quota(storage):
    return QuotaTracker(storage, max_runs=3)


@pytest.fixture
def clock():
    return FakeClock()
