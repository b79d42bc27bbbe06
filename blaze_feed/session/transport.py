"""
Transport layer: the raw socket underneath a session.
The session only needs connect/send/disconnect and four signals: open, message, close, error.
"""
import abc
import asyncio
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional
from websockets.asyncio.client import connect as ws_connect, ClientConnection
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake
from blaze_feed.config import settings
from blaze_feed.errors import NotConnectedError, TransportConnectError
from blaze_feed.utils.logging import get_logger

logger = get_logger("session.transport")

SIGNALS = ("open", "message", "close", "error")

SignalHandler = Callable[[Any], Any]

# Managed by the websocket library during the opening handshake
HANDSHAKE_HEADERS = {
    "host",
    "upgrade",
    "connection",
    "sec-websocket-key",
    "sec-websocket-version",
    "sec-websocket-extensions",
}


class Transport(abc.ABC):
    """
    A persistent bidirectional connection.

    Signals are delivered in order to handlers registered with ``on``:
    - ``open``: after connect() succeeds, before any ``message``
    - ``message``: one inbound frame (str or bytes)
    - ``close``: close code; only when the remote side or network ends the
      connection, never for a local disconnect()
    - ``error``: an exception describing an abnormal end
    """

    def __init__(self):
        self._handlers: Dict[str, List[SignalHandler]] = {signal: [] for signal in SIGNALS}

    def on(self, signal: str, handler: SignalHandler):
        if signal not in self._handlers:
            raise ValueError(f"Unknown signal: {signal}")
        self._handlers[signal].append(handler)

    async def _signal(self, signal: str, data: Any = None):
        for handler in self._handlers[signal]:
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Handler for {signal} failed: {e}", exc_info=True)

    @property
    @abc.abstractmethod
    def connected(self) -> bool:
        ...

    @abc.abstractmethod
    async def connect(self, address: str, headers: Mapping[str, str]):
        """Open the connection, then signal ``open``. Raises on failure."""

    @abc.abstractmethod
    async def send(self, frame: str):
        """Send one text frame. Raises NotConnectedError without a connection."""

    @abc.abstractmethod
    async def disconnect(self):
        """Close the connection. Raises NotConnectedError if already closed."""


class WebSocketTransport(Transport):
    """
    Transport over the ``websockets`` asyncio client.
    Library-level pings are disabled; the session's keepalive owns liveness.
    """

    def __init__(self, connect_timeout: Optional[float] = None, max_size: int = 10 * 1024 * 1024):
        super().__init__()
        self.connect_timeout = connect_timeout or settings.BLAZE_CONNECT_TIMEOUT
        self.max_size = max_size

        self._ws: Optional[ClientConnection] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self, address: str, headers: Mapping[str, str]):
        if self._ws is not None:
            await self.disconnect()

        extra = {}
        user_agent = None
        origin = None
        for key, value in headers.items():
            lowered = key.lower()
            if lowered == "user-agent":
                user_agent = value
            elif lowered == "origin":
                origin = value
            elif lowered in HANDSHAKE_HEADERS:
                logger.debug(f"Dropping handshake header {key}")
            else:
                extra[key] = value

        logger.info(f"Connecting to {address}")
        try:
            self._ws = await ws_connect(
                address,
                additional_headers=extra,
                user_agent_header=user_agent,
                origin=origin,
                open_timeout=self.connect_timeout,
                ping_interval=None,  # keepalive is handled by the session
                ping_timeout=None,
                close_timeout=5.0,
                max_size=self.max_size,
            )
        except (OSError, InvalidHandshake, asyncio.TimeoutError) as e:
            raise TransportConnectError(f"Could not connect to {address}: {e}") from e

        logger.info(f"Connected to {address}")
        ws = self._ws
        await self._signal("open")
        # An open handler may have disconnected already
        if self._ws is ws:
            self._listener_task = asyncio.create_task(self._listen(ws))

    async def _listen(self, ws: ClientConnection):
        try:
            async for message in ws:
                await self._signal("message", message)
        except ConnectionClosedError as e:
            logger.warning(f"Connection closed while listening: {e}")
            await self._signal("error", e)
        except ConnectionClosed as e:
            logger.info(f"Connection closed: {e}")
        except asyncio.CancelledError:
            # Local disconnect(); no close signal
            raise

        if self._ws is ws:
            self._ws = None
            self._listener_task = None
            await self._signal("close", ws.close_code)

    async def send(self, frame: str):
        ws = self._ws
        if ws is None:
            raise NotConnectedError()
        async with self._send_lock:
            await ws.send(frame)

    async def disconnect(self):
        ws, self._ws = self._ws, None
        if ws is None:
            raise NotConnectedError()

        task, self._listener_task = self._listener_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"Error while closing socket: {e}")
        logger.info("Disconnected")
