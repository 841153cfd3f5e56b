"""
Hosted backend API client.

Wraps the REST (table), RPC and edge function endpoints of the backend
project behind one aiohttp session.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import aiohttp

from .exceptions import BackendError

logger = logging.getLogger(__name__)


# =============================================================================
# Filter helpers (PostgREST operator syntax)
# =============================================================================


def eq(value: Any) -> str:
    """Equality filter."""
    return f"eq.{value}"


def ilike(pattern: str) -> str:
    """Case-insensitive pattern filter (``*`` is the wildcard)."""
    return f"ilike.{pattern}"


def literal(value: Any) -> str:
    """Filter value, double-quoted when it holds reserved characters."""
    text = str(value)
    if any(c in text for c in ',():."') or not text:
        text = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{text}"'
    return text


def in_(values: Iterable[Any]) -> str:
    """Membership filter."""
    return "in.(" + ",".join(literal(v) for v in values) + ")"


def or_(*conditions: str) -> str:
    """Disjunction of ``column.operator.value`` conditions."""
    return "(" + ",".join(conditions) + ")"


def and_(*conditions: str) -> str:
    """Conjunction nested inside an ``or_`` list."""
    return "and(" + ",".join(conditions) + ")"


def contains(text: str) -> str:
    """Wildcard pattern matching ``text`` anywhere."""
    return f"*{text}*"


@dataclass
class BackendResponse:
    """Raw response from the backend."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        """
        Decode JSON body (None when empty).

        Raises:
            BackendError: If the body is not valid JSON
        """
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise BackendError(f"Malformed response body: {e}", status=self.status) from e


class BackendClient:
    """REST/RPC/functions client for the hosted backend."""

    REST_PATH = "/rest/v1"
    FUNCTIONS_PATH = "/functions/v1"

    def __init__(self, url: str, anon_key: str, timeout: float = 10.0):
        """
        Initialize API client.

        Args:
            url: Project base URL (e.g. https://xyz.supabase.co)
            anon_key: Public anon API key
            timeout: Per-request timeout in seconds
        """
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.access_token: Optional[str] = None
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "BackendClient":
        """Async context manager entry."""
        self._get_session()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def set_access_token(self, token: Optional[str]) -> None:
        """Set (or clear) the user access token sent as bearer."""
        self.access_token = token

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"apikey": self.anon_key, "User-Agent": "tunebase"}
            )
        return self._session

    def _auth_headers(self) -> dict[str, str]:
        token = self.access_token or self.anon_key
        return {"apikey": self.anon_key, "Authorization": f"Bearer {token}"}

    # =========================================================================
    # Transport
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json_body: Any = None,
        data: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> BackendResponse:
        """
        Send a request and return the raw response.

        Raises:
            BackendError: On any non-2xx status, network error or timeout
        """
        url = f"{self.url}{path}"
        merged = self._auth_headers()
        if headers:
            merged.update(headers)

        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=merged,
                timeout=timeout,
            ) as resp:
                body = await resp.read()
                response = BackendResponse(
                    status=resp.status,
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    body=body,
                )
        except asyncio.TimeoutError:
            logger.error(f"{method} {path} timed out")
            raise BackendError(f"Request timed out: {method} {path}")
        except aiohttp.ClientError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise BackendError(f"Network error: {e}")

        if not 200 <= response.status < 300:
            message = self._error_message(response)
            logger.debug(f"{method} {path} -> {response.status}: {message}")
            raise BackendError(message, status=response.status)

        return response

    @staticmethod
    def _error_message(response: BackendResponse) -> str:
        """Extract the most useful error text from a failed response."""
        try:
            data = response.json()
        except BackendError:
            data = None
        if isinstance(data, dict):
            for key in ("message", "error_description", "msg", "error"):
                if data.get(key):
                    return str(data[key])
        text = response.body.decode("utf-8", errors="replace").strip()
        return text or f"HTTP {response.status}"

    # =========================================================================
    # Tables
    # =========================================================================

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, str]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        single: bool = False,
    ) -> Any:
        """
        Read rows from a table.

        Args:
            table: Table name
            filters: Column -> operator filter (see eq/ilike/in_/or_)
            columns: Select expression, may embed related tables
            order: Order expression, e.g. "position.asc"
            single: Return exactly one row as an object

        Returns:
            List of rows, or a single row dict when single=True
        """
        params = {"select": columns}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        headers = {"Accept": "application/vnd.pgrst.object+json"} if single else None

        response = await self.request(
            "GET", f"{self.REST_PATH}/{table}", params=params, headers=headers
        )
        result = response.json()
        if result is None and not single:
            return []
        return result

    async def insert(self, table: str, rows: Any, returning: bool = False) -> Any:
        """Insert one row (dict) or many (list of dicts)."""
        prefer = "return=representation" if returning else "return=minimal"
        response = await self.request(
            "POST",
            f"{self.REST_PATH}/{table}",
            json_body=rows,
            headers={"Prefer": prefer},
        )
        return response.json() if returning else None

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: dict[str, str],
        returning: bool = False,
    ) -> Any:
        """Update rows matching filters."""
        if not filters:
            raise ValueError("update() requires at least one filter")
        prefer = "return=representation" if returning else "return=minimal"
        response = await self.request(
            "PATCH",
            f"{self.REST_PATH}/{table}",
            params=dict(filters),
            json_body=values,
            headers={"Prefer": prefer},
        )
        return response.json() if returning else None

    async def delete(self, table: str, filters: dict[str, str]) -> None:
        """Delete rows matching filters."""
        if not filters:
            raise ValueError("delete() requires at least one filter")
        await self.request(
            "DELETE",
            f"{self.REST_PATH}/{table}",
            params=dict(filters),
            headers={"Prefer": "return=minimal"},
        )

    async def count(self, table: str, filters: Optional[dict[str, str]] = None) -> int:
        """Exact number of rows matching filters."""
        params = {"select": "*"}
        if filters:
            params.update(filters)
        response = await self.request(
            "HEAD",
            f"{self.REST_PATH}/{table}",
            params=params,
            headers={"Prefer": "count=exact"},
        )
        content_range = response.headers.get("content-range", "")
        _, _, total = content_range.partition("/")
        try:
            return int(total)
        except ValueError:
            logger.warning(f"Unexpected Content-Range for {table}: {content_range!r}")
            return 0

    # =========================================================================
    # Procedures
    # =========================================================================

    async def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Call a database function."""
        response = await self.request(
            "POST", f"{self.REST_PATH}/rpc/{name}", json_body=params or {}
        )
        return response.json()

    async def invoke(self, function_name: str, body: Optional[dict[str, Any]] = None) -> Any:
        """
        Invoke an edge function.

        Any non-2xx response raises BackendError.
        """
        logger.debug(f"Invoking function {function_name}")
        response = await self.request(
            "POST", f"{self.FUNCTIONS_PATH}/{function_name}", json_body=body or {}
        )
        try:
            return response.json()
        except BackendError:
            return response.body.decode("utf-8", errors="replace")
