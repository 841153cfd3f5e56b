"""Fakes for the aiohttp session used by BackendClient."""

import json
from typing import Any, Optional, Union

import pytest

from tunebase.backend.api_client import BackendClient


class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside ``async with``."""

    def __init__(
        self,
        status: int = 200,
        body: Union[bytes, Any] = b"",
        headers: Optional[dict[str, str]] = None,
    ):
        self.status = status
        self.headers = headers or {}
        if isinstance(body, bytes):
            self._body = body
        else:
            self._body = json.dumps(body).encode()

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None


class FakeSession:
    """Records requests and replays queued responses."""

    def __init__(self, *responses: Union[FakeResponse, BaseException]):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def queue(self, *responses: Union[FakeResponse, BaseException]) -> None:
        self.responses.extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True

    @property
    def last(self) -> dict[str, Any]:
        return self.calls[-1]


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(session: FakeSession) -> BackendClient:
    """Client wired to the fake session."""
    c = BackendClient("https://proj.example.co/", "anon-key", timeout=5.0)
    c._session = session  # type: ignore[assignment]
    return c
