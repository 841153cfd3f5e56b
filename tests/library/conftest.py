"""Shared mocks for library tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def client() -> MagicMock:
    """BackendClient double with awaitable table operations."""
    c = MagicMock()
    c.url = "https://proj.example.co"
    c.select = AsyncMock(return_value=[])
    c.insert = AsyncMock(return_value=None)
    c.update = AsyncMock(return_value=None)
    c.delete = AsyncMock(return_value=None)
    c.count = AsyncMock(return_value=0)
    c.invoke = AsyncMock(return_value=None)
    return c


@pytest.fixture
def storage() -> MagicMock:
    """StorageBucket double; public URLs live under /public/musicfiles/."""
    s = MagicMock()
    s.upload = AsyncMock(side_effect=lambda path, data, content_type: path)
    s.remove = AsyncMock()
    s.public_url = MagicMock(side_effect=lambda path: f"https://cdn.test/musicfiles/{path}")

    def path_from_url(url):  # type: ignore[no-untyped-def]
        prefix = "https://cdn.test/musicfiles/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    s.path_from_url = MagicMock(side_effect=path_from_url)
    return s
