"""HTTP client for the SouqView market-data backend.

One ``BackendClient`` is created by the entry point and injected into every
service that talks to the backend. It owns the shared ``httpx.AsyncClient``,
gates requests through ``RateLimiter`` (with automatic retry on HTTP 429),
logs sanitized request URLs, and maps every failure onto the
``DataFetchError`` hierarchy so callers can classify it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any, Final

import httpx

from Souq_View.config import DEFAULT_API_URL, DEFAULT_TIMEOUT_SECONDS
from Souq_View.services._helpers import BACKEND_SOURCE, sanitized_url
from Souq_View.services.rate_limiter import RateLimiter
from Souq_View.utils.exceptions import (
    BackendHTTPError,
    DataSourceUnavailableError,
    RateLimitExceededError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONNECT_TIMEOUT_SECONDS: Final[float] = 5.0
HTTP_TOO_MANY_REQUESTS: Final[int] = 429
HTTP_BAD_GATEWAY: Final[int] = 502


class BackendClient:
    """Async JSON client for the backend REST API.

    Usage::

        async with BackendClient("http://localhost:5000/api") as client:
            payload = await client.get_json(
                "/stock/market-snapshot", {"symbols": "AAPL,TSLA"}
            )
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT_SECONDS),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        logger.debug("BackendClient initialized: base_url=%s", self._base_url)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        """Close the shared httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_json(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        label: str | None = None,
    ) -> Any:
        """GET *path* and return the decoded JSON body.

        Raises:
            UpstreamUnavailableError: On HTTP 502.
            BackendHTTPError: On any other non-success status.
            RateLimitExceededError: When HTTP 429 persists after retries.
            DataSourceUnavailableError: On timeouts, transport errors, or
                a body that is not valid JSON.
        """
        resolved_label = label or path
        return await self._rate_limiter.execute(
            lambda: self._request("GET", path, params=params, label=resolved_label),
            label=resolved_label,
        )

    async def post_json(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        *,
        label: str | None = None,
    ) -> Any:
        """POST a JSON *body* to *path* and return the decoded JSON body."""
        resolved_label = label or path
        return await self._rate_limiter.execute(
            lambda: self._request("POST", path, json_body=body, label=resolved_label),
            label=resolved_label,
        )

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
        json_body: Mapping[str, Any] | None = None,
    ) -> Any:
        log_url = sanitized_url(self._base_url, path, params)
        logger.debug("%s %s", method, log_url)

        query = (
            {k: v for k, v in params.items() if v is not None and v != ""} if params else None
        )
        try:
            response = await self._client.request(
                method,
                path,
                params=query,
                json=dict(json_body) if json_body is not None else None,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Request timed out: %s %s", method, log_url)
            raise DataSourceUnavailableError(
                f"{label} timed out",
                ticker=label,
                source=BACKEND_SOURCE,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Request failed: %s %s (%s)", method, log_url, exc)
            raise DataSourceUnavailableError(
                f"{label} failed: {exc}",
                ticker=label,
                source=BACKEND_SOURCE,
            ) from exc

        raise_for_status(response, label=label, log_url=log_url)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DataSourceUnavailableError(
                f"{label} returned a body that is not JSON",
                ticker=label,
                source=BACKEND_SOURCE,
                http_status=response.status_code,
            ) from exc


def raise_for_status(
    response: httpx.Response,
    *,
    label: str,
    log_url: str,
    source: str = BACKEND_SOURCE,
) -> None:
    """Map a non-success response onto the exception hierarchy."""
    status = response.status_code
    if status < 400:  # noqa: PLR2004
        return

    logger.info("Failed request URL: %s (HTTP %d)", log_url, status)
    if status == HTTP_TOO_MANY_REQUESTS:
        raise RateLimitExceededError(
            f"{label} rate limited",
            ticker=label,
            source=source,
            http_status=status,
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if status == HTTP_BAD_GATEWAY:
        raise UpstreamUnavailableError(
            f"{label}: upstream data source failed (HTTP 502)",
            ticker=label,
            source=source,
            http_status=status,
        )
    raise BackendHTTPError(
        f"{label} returned HTTP {status}",
        ticker=label,
        source=source,
        http_status=status,
    )


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a delta-seconds ``Retry-After`` header; HTTP-dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None
