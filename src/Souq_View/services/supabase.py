"""PostgREST client for the community tables (comments, stock votes).

A thin async wrapper around Supabase's REST surface: ``select``, ``insert``,
``update`` and ``upsert`` against ``/rest/v1/<table>``, plus the signed-in
user lookup via ``/auth/v1/user``. Filters are passed as PostgREST operator
strings (``{"stock_symbol": "eq.AAPL"}``). Failures are mapped onto the
``DataFetchError`` hierarchy with ``source="supabase"``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any, Final, Protocol

import httpx

from Souq_View.config import DEFAULT_TIMEOUT_SECONDS, Settings
from Souq_View.services._helpers import SUPABASE_SOURCE, sanitized_url
from Souq_View.services.http_client import CONNECT_TIMEOUT_SECONDS, raise_for_status
from Souq_View.utils.exceptions import (
    BackendHTTPError,
    DataSourceUnavailableError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REST_PREFIX: Final[str] = "/rest/v1"
AUTH_USER_PATH: Final[str] = "/auth/v1/user"

PREFER_REPRESENTATION: Final[str] = "return=representation"
PREFER_MERGE_DUPLICATES: Final[str] = "resolution=merge-duplicates,return=minimal"

HTTP_UNAUTHORIZED: Final[int] = 401
HTTP_FORBIDDEN: Final[int] = 403


class UserIdResolver(Protocol):
    """Anything that can name the signed-in user (``None`` when anonymous)."""

    async def current_user_id(self) -> str | None: ...


class SupabaseClient:
    """Async PostgREST client bound to one project and one session.

    Usage::

        async with SupabaseClient(url, anon_key, access_token=token) as db:
            rows = await db.select(
                "comments",
                filters={"stock_symbol": "eq.AAPL", "parent_id": "is.null"},
                order="created_at.desc",
                limit=100,
            )
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        access_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=self._url,
            timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT_SECONDS),
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {access_token or anon_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )
        logger.debug(
            "SupabaseClient initialized: url=%s, session=%s",
            self._url,
            "user" if access_token else "anonymous",
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SupabaseClient:
        """Build a client from ``Settings``.

        Raises:
            ValueError: When the Supabase URL or anon key is not configured.
        """
        if not settings.supabase_url or not settings.supabase_anon_key:
            msg = "SUPABASE_URL and SUPABASE_ANON_KEY must be set for community features"
            raise ValueError(msg)
        return cls(
            settings.supabase_url,
            settings.supabase_anon_key,
            access_token=settings.supabase_access_token,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def anon_key(self) -> str:
        return self._anon_key

    @property
    def access_token(self) -> str | None:
        return self._access_token

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> SupabaseClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Table operations
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, str] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return the rows of *table* matching *filters*."""
        params: dict[str, Any] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        body = await self._request("GET", f"{REST_PREFIX}/{table}", params=params, label=table)
        return _rows(body)

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored (ids and defaults filled in).

        Raises:
            DataSourceUnavailableError: When the server returns no row.
        """
        body = await self._request(
            "POST",
            f"{REST_PREFIX}/{table}",
            json_body=dict(row),
            prefer=PREFER_REPRESENTATION,
            label=table,
        )
        rows = _rows(body)
        if not rows:
            raise DataSourceUnavailableError(
                f"insert into {table} returned no row",
                ticker=table,
                source=SUPABASE_SOURCE,
            )
        return rows[0]

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, str],
    ) -> list[dict[str, Any]]:
        """PATCH the rows matching *filters*; returns the updated rows.

        An empty list means no row matched, which is how a lost
        compare-and-set shows up.
        """
        body = await self._request(
            "PATCH",
            f"{REST_PREFIX}/{table}",
            params=dict(filters),
            json_body=dict(values),
            prefer=PREFER_REPRESENTATION,
            label=table,
        )
        return _rows(body)

    async def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        *,
        on_conflict: str,
    ) -> None:
        """Insert *row*, merging into the existing row on *on_conflict* columns."""
        await self._request(
            "POST",
            f"{REST_PREFIX}/{table}",
            params={"on_conflict": on_conflict},
            json_body=dict(row),
            prefer=PREFER_MERGE_DUPLICATES,
            label=table,
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def current_user_id(self) -> str | None:
        """Id of the signed-in user, or None for an anonymous session.

        An expired or rejected token is treated as anonymous; other
        failures propagate.
        """
        if not self._access_token:
            return None
        try:
            body = await self._request("GET", AUTH_USER_PATH, label="auth-user")
        except BackendHTTPError as exc:
            if exc.http_status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
                logger.info("Access token rejected; continuing anonymously")
                return None
            raise
        user_id = body.get("id") if isinstance(body, Mapping) else None
        return str(user_id) if user_id else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        label: str,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        log_url = sanitized_url(self._url, path, params)
        logger.debug("%s %s", method, log_url)

        try:
            response = await self._client.request(
                method,
                path,
                params=dict(params) if params else None,
                json=json_body,
                headers={"Prefer": prefer} if prefer else None,
            )
        except httpx.HTTPError as exc:
            logger.warning("Supabase request failed: %s %s (%s)", method, log_url, exc)
            raise DataSourceUnavailableError(
                f"{label} request failed: {exc}",
                ticker=label,
                source=SUPABASE_SOURCE,
            ) from exc

        raise_for_status(response, label=label, log_url=log_url, source=SUPABASE_SOURCE)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DataSourceUnavailableError(
                f"{label} returned a body that is not JSON",
                ticker=label,
                source=SUPABASE_SOURCE,
                http_status=response.status_code,
            ) from exc


def _rows(body: object) -> list[dict[str, Any]]:
    """PostgREST answers with a list of rows; anything else counts as none."""
    if isinstance(body, list):
        return [dict(row) for row in body if isinstance(row, Mapping)]
    if isinstance(body, Mapping):
        return [dict(body)]
    return []
