"""AIRLOG — Protocol Fetchers.

One strategy per connection type. A fetch performs exactly one network
exchange and either returns a FetchResult or raises a typed IngestError.
There are no retries here: the next scheduled tick is the retry.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, Hashable, Optional, Set

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)

from airlog.config import settings
from airlog.connectors.headers import request_headers, subscribe_message
from airlog.core.errors import IngestError, ProtocolError, TransportError
from airlog.core.logging import get_logger
from airlog.models.normalized_models import FetchResult

logger = get_logger("connectors.fetcher")

HTTP_TYPES = {"http_json", "http_xml", "http_text", "rss"}
WS_TYPES = {"ws_json"}


def fetch_timeout(
    poll_interval_seconds: float,
    cap: Optional[float] = None,
    ratio: Optional[float] = None,
) -> float:
    """Network timeout for a connection, always strictly below its interval."""
    cap = settings.fetch_timeout_cap_seconds if cap is None else cap
    ratio = settings.fetch_timeout_ratio if ratio is None else ratio
    ratio = min(max(ratio, 0.05), 0.95)
    return min(cap, max(poll_interval_seconds, 1) * ratio)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


# ── HTTP ──


class HttpFetcher:
    """Single GET over httpx. Non-2xx is returned, not raised."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: Optional[str] = None,
    ):
        self.transport = transport
        self.user_agent = user_agent or settings.http_user_agent
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self.transport,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch(
        self, url: str, headers: Dict[str, str], timeout: float
    ) -> FetchResult:
        """GET ``url``; ``timeout`` bounds the whole request, body included."""
        client = await self._get_client()
        try:
            # httpx applies its timeout per phase, so a trickling body needs
            # an overall deadline on top
            resp = await asyncio.wait_for(
                client.get(url, headers=request_headers(headers), timeout=timeout),
                timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise TransportError(f"Timed out after {timeout:.1f}s fetching {url}") from e
        except httpx.RequestError as e:
            raise TransportError(f"{type(e).__name__}: {_describe(e)}") from e
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL '{url}': {_describe(e)}") from e

        return FetchResult(
            body=resp.text,
            http_status=resp.status_code,
            content_type=resp.headers.get("content-type"),
            fetched_at=_utc_now(),
        )


# ── WebSocket ──


class WebSocketFetcher:
    """Returns the first JSON message received on a WebSocket.

    By default the socket is closed after one message. In persistent mode the
    socket is kept per connection id and the next tick reads the next message.
    Handshake and receive share a single deadline.
    """

    def __init__(self, persistent: Optional[bool] = None, user_agent: Optional[str] = None):
        self.persistent = settings.ws_persistent if persistent is None else persistent
        self.user_agent = user_agent or settings.http_user_agent
        self._sockets: Dict[Hashable, ClientConnection] = {}
        self._closing: Set[asyncio.Task] = set()

    def _close_later(self, ws: ClientConnection) -> None:
        # The closing handshake may take a while; it must not eat into a fetch
        task = asyncio.get_running_loop().create_task(ws.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _open(
        self, url: str, headers: Dict[str, str], timeout: float
    ) -> ClientConnection:
        try:
            ws = await connect(
                url,
                additional_headers=request_headers(headers),
                user_agent_header=self.user_agent,
                open_timeout=timeout,
            )
        except InvalidStatus as e:
            status = e.response.status_code
            raise ProtocolError(
                f"WebSocket handshake rejected with HTTP {status}", http_status=status
            ) from e
        except InvalidHandshake as e:
            raise ProtocolError(f"WebSocket handshake failed: {_describe(e)}") from e
        except InvalidURI as e:
            raise TransportError(f"Invalid WebSocket URL '{url}': {_describe(e)}") from e
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"WebSocket connect to {url} failed: {type(e).__name__}: {_describe(e)}"
            ) from e

        subscription = subscribe_message(headers)
        if subscription is not None:
            try:
                await ws.send(subscription)
            except ConnectionClosed as e:
                self._close_later(ws)
                raise TransportError("WebSocket closed while sending subscription") from e
        return ws

    async def _first_json_message(
        self, ws: ClientConnection, deadline: float, timeout: float
    ) -> FetchResult:
        loop = asyncio.get_running_loop()
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TransportError(f"No JSON message received within {timeout:.1f}s")
            try:
                message = await asyncio.wait_for(ws.recv(), remaining)
            except asyncio.TimeoutError as e:
                raise TransportError(
                    f"No JSON message received within {timeout:.1f}s"
                ) from e
            except ConnectionClosed as e:
                raise TransportError(
                    "WebSocket closed before a JSON message arrived"
                ) from e

            text = (
                message.decode("utf-8", errors="replace")
                if isinstance(message, bytes)
                else message
            )
            try:
                json.loads(text)
            except ValueError:
                logger.debug("Ignoring non-JSON WebSocket frame")
                continue
            return FetchResult(
                body=text,
                http_status=None,
                content_type="application/json",
                fetched_at=_utc_now(),
            )

    async def fetch(
        self,
        url: str,
        headers: Dict[str, str],
        timeout: float,
        connection_id: Optional[Hashable] = None,
    ) -> FetchResult:
        """Read one JSON message. Persistence needs a ``connection_id``."""
        deadline = asyncio.get_running_loop().time() + timeout
        if self.persistent and connection_id is not None:
            return await self._fetch_persistent(connection_id, url, headers, deadline, timeout)

        ws = await self._open(url, headers, timeout)
        try:
            return await self._first_json_message(ws, deadline, timeout)
        finally:
            self._close_later(ws)

    async def _fetch_persistent(
        self,
        key: Hashable,
        url: str,
        headers: Dict[str, str],
        deadline: float,
        timeout: float,
    ) -> FetchResult:
        ws = self._sockets.get(key)
        if ws is None:
            ws = await self._open(url, headers, timeout)
            self._sockets[key] = ws
        try:
            return await self._first_json_message(ws, deadline, timeout)
        except IngestError:
            self._sockets.pop(key, None)
            self._close_later(ws)
            raise

    async def release(self, connection_id: Hashable) -> None:
        """Close the persistent socket held for ``connection_id``, if any."""
        ws = self._sockets.pop(connection_id, None)
        if ws is not None:
            await ws.close()

    async def close(self) -> None:
        sockets = list(self._sockets.values())
        self._sockets.clear()
        for ws in sockets:
            await ws.close()
        if self._closing:
            await asyncio.gather(*self._closing)


# ── Dispatch ──


class ProtocolFetcher:
    """Routes a fetch to the strategy for its connection type.

    ``timeout`` is a hard deadline for the whole strategy call; exceeding it
    is a TransportError.
    """

    def __init__(
        self,
        http: Optional[HttpFetcher] = None,
        websocket: Optional[WebSocketFetcher] = None,
    ):
        self.http = http or HttpFetcher()
        self.websocket = websocket or WebSocketFetcher()

    async def fetch(
        self,
        url: str,
        headers: Dict[str, str],
        connection_type: str,
        timeout: float,
        connection_id: Optional[Hashable] = None,
    ) -> FetchResult:
        ctype = connection_type.lower()
        if ctype in HTTP_TYPES:
            call = self.http.fetch(url, headers, timeout)
        elif ctype in WS_TYPES:
            call = self.websocket.fetch(url, headers, timeout, connection_id=connection_id)
        else:
            raise ProtocolError(f"Unsupported connection type '{connection_type}'")

        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Fetch of {url} exceeded {timeout:.1f}s") from e

    async def release(self, connection_id: Hashable) -> None:
        await self.websocket.release(connection_id)

    async def close(self) -> None:
        await self.http.close()
        await self.websocket.close()
