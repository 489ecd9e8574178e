"""
Venue Transport - JSON WebSocket Base.

============================================================
PURPOSE
============================================================
Keeps one JSON WebSocket to a venue alive and hands every
decoded frame to a subclass.

LIFECYCLE:
    IDLE ──start()──► CONNECTING ──► OPEN ──(lost / silent)──► BACKOFF
                          ▲                                      │
                          └──────────── retry ◄──────────────────┘
    stop() from any state ──► CLOSED

- One supervisor task owns the socket: connect, read, back off
- Silence longer than the configured timeout counts as a drop
- Floats are decoded as Decimal so prices never pick up drift

============================================================
USAGE
============================================================
```python
class VenueSocket(JsonWebSocket):
    async def _on_frame(self, frame):
        ...

socket = VenueSocket(SocketConfig(url="wss://api.bitfinex.com/ws/2"))
await socket.start()
await socket.send_json({"event": "ping"})
await socket.stop()
```

============================================================
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

import aiohttp


logger = logging.getLogger(__name__)


# ============================================================
# SOCKET STATE
# ============================================================

class SocketState(Enum):
    """Supervisor states."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    BACKOFF = "BACKOFF"
    CLOSED = "CLOSED"


@dataclass
class SocketConfig:
    """Connection and retry settings."""

    url: str

    reconnect: bool = True
    """Reconnect after a drop or a failed attempt."""

    max_reconnect_attempts: int = 10
    """Consecutive failed attempts before giving up."""

    reconnect_interval_ms: int = 1000
    max_reconnect_interval_ms: int = 30000

    heartbeat_seconds: float = 20.0
    """Protocol-level ping interval, handled by aiohttp."""

    silence_timeout_seconds: float = 60.0
    """A socket that delivers nothing for this long is treated as dead."""


def backoff_delay(attempt: int, base_ms: int, max_ms: int) -> float:
    """Seconds to wait before retry number ``attempt`` (1-based)."""
    return min(base_ms * (2 ** (attempt - 1)), max_ms) / 1000


# ============================================================
# JSON WEBSOCKET
# ============================================================

class JsonWebSocket(ABC):
    """
    Supervised JSON WebSocket.

    Subclasses implement _on_frame() and may override the
    _on_open / _on_lost / _on_give_up hooks.
    """

    def __init__(self, config: SocketConfig):
        self._socket_config = config
        self._state = SocketState.IDLE
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._first_attempt: Optional[asyncio.Future] = None
        self._failed_attempts = 0

    @property
    def socket_state(self) -> SocketState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SocketState.OPEN and self._ws is not None and not self._ws.closed

    @property
    def url(self) -> str:
        return self._socket_config.url

    # --------------------------------------------------------
    # START / STOP
    # --------------------------------------------------------

    async def start(self) -> None:
        """
        Start the supervisor and wait for the first connection attempt.

        Raises:
            ConnectionError: If the first attempt fails and reconnecting is off
        """
        if self._supervisor is not None and not self._supervisor.done():
            return

        loop = asyncio.get_running_loop()
        self._first_attempt = loop.create_future()
        self._failed_attempts = 0
        self._supervisor = loop.create_task(self._supervise())
        await asyncio.shield(self._first_attempt)

    async def stop(self) -> None:
        """Close the socket and stop reconnecting."""
        self._state = SocketState.CLOSED

        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None and supervisor is not asyncio.current_task():
            supervisor.cancel()
            try:
                await supervisor
            except asyncio.CancelledError:
                pass

        await self._close_socket()
        logger.info(f"Socket to {self.url} stopped")

    # --------------------------------------------------------
    # SUPERVISOR
    # --------------------------------------------------------

    async def _supervise(self) -> None:
        config = self._socket_config
        while self._state != SocketState.CLOSED:
            self._state = SocketState.CONNECTING
            try:
                await self._open_socket()
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                self._failed_attempts += 1
                logger.error(f"Connection to {self.url} failed: {e}")
                self._settle_first_attempt(e)
            else:
                self._failed_attempts = 0
                self._state = SocketState.OPEN
                logger.info(f"Socket open: {self.url}")
                self._settle_first_attempt(None)

                await self._on_open()
                await self._read_until_closed()
                await self._close_socket()

                if self._state == SocketState.CLOSED:
                    return
                await self._on_lost()

            if not config.reconnect:
                self._state = SocketState.IDLE
                return
            if self._failed_attempts >= config.max_reconnect_attempts:
                logger.error(f"Giving up on {self.url} after {self._failed_attempts} attempts")
                self._state = SocketState.IDLE
                await self._on_give_up()
                return

            delay = backoff_delay(
                self._failed_attempts + 1,
                config.reconnect_interval_ms,
                config.max_reconnect_interval_ms,
            )
            self._state = SocketState.BACKOFF
            logger.info(f"Reconnecting in {delay:.1f}s")
            await asyncio.sleep(delay)

    def _settle_first_attempt(self, error: Optional[BaseException]) -> None:
        future = self._first_attempt
        if future is None or future.done():
            return
        if error is not None and not self._socket_config.reconnect:
            future.set_exception(ConnectionError(f"Cannot connect to {self.url}: {error}"))
        else:
            future.set_result(None)

    async def _open_socket(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._ws = await self._session.ws_connect(
            self.url,
            heartbeat=self._socket_config.heartbeat_seconds,
        )

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        if self._state == SocketState.CLOSED and self._session is not None:
            await self._session.close()
            self._session = None

    async def _read_until_closed(self) -> None:
        """Deliver frames until the socket closes, errors or goes silent."""
        while True:
            try:
                msg = await self._ws.receive(timeout=self._socket_config.silence_timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"No data from {self.url} for {self._socket_config.silence_timeout_seconds}s")
                return

            if msg.type == aiohttp.WSMsgType.TEXT:
                await self.handle_text(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"Socket error: {self._ws.exception()}")
                return
            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                logger.warning(f"Socket closed by peer: {msg.extra or msg.data}")
                return

    # --------------------------------------------------------
    # FRAMES
    # --------------------------------------------------------

    async def handle_text(self, data: str) -> None:
        """Decode one text frame and pass it to _on_frame()."""
        try:
            frame = json.loads(data, parse_float=Decimal)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON frame: {data[:100]}")
            return

        try:
            await self._on_frame(frame)
        except Exception as e:
            # one bad frame must not kill the reader
            logger.error(f"Error handling frame: {e}", exc_info=True)

    async def send_json(self, message: Any) -> None:
        """
        Raises:
            ConnectionError: If the socket is not open
        """
        if not self.is_open:
            raise ConnectionError(f"Socket to {self.url} is not open")
        await self._ws.send_str(json.dumps(message))

    # --------------------------------------------------------
    # HOOKS
    # --------------------------------------------------------

    @abstractmethod
    async def _on_frame(self, frame: Any) -> None:
        """Handle one decoded frame."""

    async def _on_open(self) -> None:
        """Called after every successful connection."""

    async def _on_lost(self) -> None:
        """Called when an open socket drops without stop()."""

    async def _on_give_up(self) -> None:
        """Called when reconnect attempts are exhausted."""
