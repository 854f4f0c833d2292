"""Batched market snapshot fetching with failure classification.

One HTTP call covers the whole watchlist (never one call per symbol) so the
upstream provider's rate limits are respected. The payload may arrive in any
of several shapes; it is flattened to a list of entries, each entry goes
through the shape normalizer, and the result is filtered to the supported
universe. ``fetch_snapshot`` never raises: every failure is encoded in the
``SnapshotResult`` flags.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Final

from Souq_View.models.market_data import MarketItem, SnapshotResult
from Souq_View.services.fallback import fallback_result, upstream_failed_result
from Souq_View.services.http_client import BackendClient
from Souq_View.services.normalizer import normalize_snapshot_item
from Souq_View.services.symbols import (
    DEFAULT_US_WATCHLIST_SYMBOLS,
    filter_us_stocks_only,
    prepare_batch,
)
from Souq_View.utils.exceptions import DataFetchError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SNAPSHOT_PATH: Final[str] = "/stock/market-snapshot"

# Keys that wrap the entry list (or a keyed-by-symbol object), by precedence
WRAPPER_KEYS: Final[tuple[str, ...]] = (
    "marketSnapshot",
    "quotes",
    "result",
    "results",
    "data",
    "list",
)

# A top-level wrapper plus one nested wrapper
MAX_WRAPPER_DEPTH: Final[int] = 2

STALE_CACHE_FLAG: Final[str] = "fromStaleCache"


class SnapshotFetcher:
    """Fetch and normalize the watchlist snapshot.

    Usage::

        async with BackendClient(settings.api_url) as client:
            fetcher = SnapshotFetcher(client)
            result = await fetcher.fetch_snapshot(["AAPL", "TSLA"])
            if result.error_502:
                ...  # "data source down"
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        default_symbols: Sequence[str] = DEFAULT_US_WATCHLIST_SYMBOLS,
    ) -> None:
        self._client = client
        self._default_symbols = tuple(default_symbols)

    async def fetch_snapshot(self, symbols: Sequence[str] | None = None) -> SnapshotResult:
        """Fetch the snapshot for *symbols* (default: the configured watchlist).

        Returns:
            Fresh or stale-cache items when any survive normalization and
            filtering; the placeholder set flagged ``from_fallback`` when the
            payload is empty, malformed, or the request failed; an empty
            result flagged ``error_502`` when the upstream source failed.
        """
        batch = prepare_batch(self._default_symbols if symbols is None else symbols)
        if not batch:
            logger.warning("No symbols to fetch; using placeholder watchlist")
            return fallback_result(self._default_symbols)

        try:
            payload = await self._request(batch)
        except UpstreamUnavailableError:
            logger.warning("Snapshot request failed (502 - data source failed)")
            return upstream_failed_result()
        except DataFetchError as exc:
            logger.warning("Snapshot request failed: %s", exc)
            return fallback_result(self._default_symbols)

        items = filter_us_stocks_only(normalize_snapshot_payload(payload))
        logger.debug(
            "Snapshot payload: %s | after filter: %d",
            describe_payload(payload),
            len(items),
        )
        if not items:
            logger.warning("No items after normalize/filter; using placeholder watchlist")
            return fallback_result(self._default_symbols)

        first = items[0]
        logger.debug(
            "First normalized item: %s last=%s pct=%s",
            first.symbol,
            first.last_price,
            first.percent_change,
        )
        return SnapshotResult(items=items, from_stale_cache=is_stale_cache(payload))

    async def fetch_symbols(self, symbols: Sequence[str]) -> list[MarketItem]:
        """Raw batch lookup used by search screens: no fallback, errors propagate.

        Raises:
            DataFetchError: On any request failure.
        """
        batch = prepare_batch(symbols)
        if not batch:
            return []
        payload = await self._request(batch)
        return filter_us_stocks_only(normalize_snapshot_payload(payload))

    async def _request(self, batch: list[str]) -> Any:
        logger.info("Fetching snapshot for %d symbols (single batch)", len(batch))
        return await self._client.get_json(
            SNAPSHOT_PATH,
            {"symbols": ",".join(batch)},
            label="market-snapshot",
        )


# ---------------------------------------------------------------------------
# Payload flattening
# ---------------------------------------------------------------------------


def normalize_snapshot_payload(payload: object) -> list[MarketItem]:
    """Flatten any supported payload shape and normalize every entry."""
    return [normalize_snapshot_item(entry) for entry in extract_entries(payload)]


def extract_entries(payload: object, depth: int = 0) -> list[Mapping[str, Any]]:
    """Flatten a snapshot payload into a list of entry mappings.

    Accepts a bare list, a wrapper object (``marketSnapshot``, ``data``, ...)
    holding a list or a keyed-by-symbol object, and a keyed-by-symbol object
    itself. Wrappers may nest one level. Anything else yields ``[]``.
    """
    if isinstance(payload, list):
        return [entry for entry in payload if isinstance(entry, Mapping)]
    if not isinstance(payload, Mapping):
        return []

    if depth < MAX_WRAPPER_DEPTH:
        for key in WRAPPER_KEYS:
            inner = payload.get(key)
            if isinstance(inner, list | Mapping):
                return extract_entries(inner, depth + 1)

    return keyed_by_symbol_to_entries(payload)


def keyed_by_symbol_to_entries(by_symbol: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Turn ``{"AAPL": {...}}`` into ``[{..., "symbol": "AAPL"}]``.

    Only mapping values are kept; the key always wins over an inner symbol.
    """
    return [
        {**value, "symbol": str(symbol)}
        for symbol, value in by_symbol.items()
        if isinstance(value, Mapping)
    ]


def is_stale_cache(payload: object) -> bool:
    """True when the backend marked the payload as served from its own cache."""
    return isinstance(payload, Mapping) and payload.get(STALE_CACHE_FLAG) is True


def describe_payload(payload: object) -> str:
    """Short shape description for debug logs."""
    if payload is None:
        return "null"
    if isinstance(payload, list):
        return f"array({len(payload)})"
    if isinstance(payload, Mapping):
        return f"object({len(payload)} keys)"
    return type(payload).__name__
