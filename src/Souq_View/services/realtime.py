"""Realtime comment events over the Supabase Realtime websocket.

Supabase Realtime speaks the Phoenix channel protocol: JSON frames of
``{"topic", "event", "payload", "ref"}``. A subscription joins
``realtime:comments:<SYMBOL>`` asking for INSERT and UPDATE changes on the
``comments`` table filtered to that symbol, keeps the socket alive with a
heartbeat on the ``phoenix`` topic, and hands each change to the caller as a
``CommentEvent``.

Consumers depend on the ``CommentChannel`` protocol, not on this module, so
tests and other transports can be injected.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import itertools
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, Final, Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from pydantic import ValidationError

from Souq_View.config import Settings
from Souq_View.models.comments import CommentEvent
from Souq_View.models.enums import CommentEventType
from Souq_View.services._helpers import SUPABASE_SOURCE
from Souq_View.utils.exceptions import DataSourceUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REALTIME_PATH: Final[str] = "/realtime/v1/websocket"
PROTOCOL_VERSION: Final[str] = "1.0.0"
HEARTBEAT_INTERVAL_SECONDS: Final[float] = 25.0
HEARTBEAT_TOPIC: Final[str] = "phoenix"

EVENT_JOIN: Final[str] = "phx_join"
EVENT_LEAVE: Final[str] = "phx_leave"
EVENT_HEARTBEAT: Final[str] = "heartbeat"
EVENT_POSTGRES_CHANGES: Final[str] = "postgres_changes"

COMMENTS_TABLE: Final[str] = "comments"

# Wire change type -> event type; DELETE is not subscribed
CHANGE_TYPES: Final[dict[str, CommentEventType]] = {
    "INSERT": CommentEventType.INSERT,
    "UPDATE": CommentEventType.UPDATE,
}

CommentHandler = Callable[[CommentEvent], None]


class WebSocketLike(Protocol):
    """The slice of a websockets client connection used here."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[WebSocketLike]]


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class CommentChannel(Protocol):
    """Push channel delivering comment changes for one symbol at a time."""

    async def subscribe(self, symbol: str, handler: CommentHandler) -> Subscription: ...


# ---------------------------------------------------------------------------
# Supabase implementation
# ---------------------------------------------------------------------------


class SupabaseRealtimeChannel:
    """``CommentChannel`` backed by one websocket per subscription.

    Usage::

        channel = SupabaseRealtimeChannel.from_settings(settings)
        subscription = await channel.subscribe("AAPL", session.on_event)
        ...
        await subscription.unsubscribe()
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        access_token: str | None = None,
        connector: Connector | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self._socket_url = realtime_url(url, anon_key)
        self._access_token = access_token or anon_key
        self._connector: Connector = connector if connector is not None else _connect
        self._heartbeat_interval = heartbeat_interval

    @classmethod
    def from_settings(cls, settings: Settings) -> SupabaseRealtimeChannel:
        """Build a channel from ``Settings``.

        Raises:
            ValueError: When the Supabase URL or anon key is not configured.
        """
        if not settings.supabase_url or not settings.supabase_anon_key:
            msg = "SUPABASE_URL and SUPABASE_ANON_KEY must be set for realtime comments"
            raise ValueError(msg)
        return cls(
            settings.supabase_url,
            settings.supabase_anon_key,
            access_token=settings.supabase_access_token,
        )

    async def subscribe(self, symbol: str, handler: CommentHandler) -> RealtimeSubscription:
        """Open a socket, join the symbol's topic, and start delivering events.

        Raises:
            DataSourceUnavailableError: When the socket cannot be opened.
        """
        symbol = symbol.upper().strip()
        try:
            socket = await self._connector(self._socket_url)
        except (OSError, WebSocketException) as exc:
            raise DataSourceUnavailableError(
                f"realtime connection failed: {exc}",
                ticker=symbol,
                source=SUPABASE_SOURCE,
            ) from exc

        subscription = RealtimeSubscription(
            socket,
            topic=comments_topic(symbol),
            symbol=symbol,
            handler=handler,
            heartbeat_interval=self._heartbeat_interval,
        )
        try:
            await subscription.join(self._access_token)
        except (OSError, WebSocketException) as exc:
            with contextlib.suppress(ConnectionClosed, OSError):
                await socket.close()
            raise DataSourceUnavailableError(
                f"realtime join failed: {exc}",
                ticker=symbol,
                source=SUPABASE_SOURCE,
            ) from exc
        return subscription


class RealtimeSubscription:
    """One joined topic on one socket; ``unsubscribe`` leaves and closes."""

    def __init__(
        self,
        socket: WebSocketLike,
        *,
        topic: str,
        symbol: str,
        handler: CommentHandler,
        heartbeat_interval: float,
    ) -> None:
        self._socket = socket
        self._topic = topic
        self._symbol = symbol
        self._handler = handler
        self._heartbeat_interval = heartbeat_interval
        self._refs = itertools.count(1)
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def closed(self) -> bool:
        return self._closed

    async def join(self, access_token: str) -> None:
        await self._send(self._topic, EVENT_JOIN, join_payload(self._symbol, access_token))
        self._tasks = [
            asyncio.create_task(self._read_loop(), name=f"realtime-read:{self._symbol}"),
            asyncio.create_task(self._heartbeat_loop(), name=f"realtime-beat:{self._symbol}"),
        ]
        logger.info("Subscribed to realtime comments for %s", self._symbol)

    async def unsubscribe(self) -> None:
        """Leave the topic and close the socket; safe to call twice."""
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        with contextlib.suppress(ConnectionClosed, OSError):
            await self._send(self._topic, EVENT_LEAVE, {})
        with contextlib.suppress(ConnectionClosed, OSError):
            await self._socket.close()
        logger.info("Unsubscribed from realtime comments for %s", self._symbol)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        frame = {"topic": topic, "event": event, "payload": dict(payload), "ref": str(next(self._refs))}
        await self._socket.send(json.dumps(frame))

    async def _read_loop(self) -> None:
        try:
            async for raw in self._socket:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON realtime frame")
                    continue
                if not isinstance(message, dict) or message.get("topic") != self._topic:
                    continue
                event = parse_postgres_change(message)
                if event is None:
                    continue
                try:
                    self._handler(event)
                except Exception:
                    logger.exception("Realtime handler failed for %s", self._symbol)
        except ConnectionClosed as exc:
            if not self._closed:
                logger.warning("Realtime connection for %s closed: %s", self._symbol, exc)

    async def _heartbeat_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._heartbeat_interval)
                await self._send(HEARTBEAT_TOPIC, EVENT_HEARTBEAT, {})
        except ConnectionClosed:
            logger.debug("Heartbeat stopped for %s: connection closed", self._symbol)


# ---------------------------------------------------------------------------
# Protocol helpers
# ---------------------------------------------------------------------------


def realtime_url(url: str, anon_key: str) -> str:
    """``https://x.supabase.co`` -> ``wss://x.supabase.co/realtime/v1/websocket?...``."""
    parts = urlsplit(url.rstrip("/"))
    scheme = "ws" if parts.scheme == "http" else "wss"
    query = urlencode({"apikey": anon_key, "vsn": PROTOCOL_VERSION})
    return urlunsplit((scheme, parts.netloc, parts.path + REALTIME_PATH, query, ""))


def comments_topic(symbol: str) -> str:
    return f"realtime:comments:{symbol.upper().strip()}"


def join_payload(symbol: str, access_token: str) -> dict[str, Any]:
    """Join request for INSERT and UPDATE changes on this symbol's comments."""
    row_filter = f"stock_symbol=eq.{symbol.upper().strip()}"
    return {
        "config": {
            "broadcast": {"self": False},
            "presence": {"key": ""},
            "postgres_changes": [
                {"event": change, "schema": "public", "table": COMMENTS_TABLE, "filter": row_filter}
                for change in CHANGE_TYPES
            ],
        },
        "access_token": access_token,
    }


def parse_postgres_change(message: Mapping[str, Any]) -> CommentEvent | None:
    """Turn a ``postgres_changes`` frame into a ``CommentEvent``.

    Other frames (join replies, heartbeats, presence) and changes of a kind
    that is not subscribed yield None.
    """
    if message.get("event") != EVENT_POSTGRES_CHANGES:
        return None
    payload = message.get("payload")
    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, Mapping):
        return None

    event_type = CHANGE_TYPES.get(str(data.get("type", "")).upper())
    record = data.get("record")
    if event_type is None or not isinstance(record, Mapping):
        return None
    try:
        return CommentEvent(
            type=event_type,
            record=dict(record),
            commit_timestamp=_parse_timestamp(data.get("commit_timestamp")),
        )
    except ValidationError:
        logger.debug("Ignoring malformed realtime change")
        return None


def _parse_timestamp(value: object) -> datetime.datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        return None


async def _connect(url: str) -> WebSocketLike:
    return await websockets.connect(url)
