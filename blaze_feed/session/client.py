"""
Session controller for the replication feed.
Drives connect -> handshake -> open -> close -> (reconnect) and routes frames to callbacks.
"""
import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from blaze_feed.config import Settings, settings as default_settings
from blaze_feed.errors import (
    BlazeFeedError,
    MissingAddressError,
    NotConnectedError,
    TransportConnectError,
    UnknownRoomError,
)
from blaze_feed.protocol.frames import (
    CHAT_ROOM,
    authenticate_frames,
    decode_frame,
    raw_channel,
    resolve_room,
    resolve_url,
    subscribe_frame,
)
from blaze_feed.protocol.models import CloseEvent
from blaze_feed.session.dedup import DedupCache
from blaze_feed.session.dispatcher import EventCallback, EventDispatcher
from blaze_feed.session.keepalive import Keepalive
from blaze_feed.session.transport import Transport, WebSocketTransport
from blaze_feed.utils.logging import get_logger

logger = get_logger("session.client")

NORMAL_CLOSURE = 1000

BASE_HEADERS = {
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
    "Accept-Encoding": "gzip, deflate, br",
}


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class ConnectOptions(BaseModel):
    """
    Parameters of one logical session. Kept as-is for reconnects.

    ``ping_interval`` is in seconds.
    """
    url: Optional[str] = None
    mode: str = "crash"
    token: Optional[str] = None
    reconnect: bool = False
    ping_interval: Optional[float] = Field(default=None, gt=0)
    headers: Dict[str, str] = Field(default_factory=dict)
    host: Optional[str] = None
    origin: Optional[str] = None


class BlazeClient:
    """
    Client for the games feed (crash and double rooms).

    Events emitted:
    - server event names, e.g. ``crash.tick``, ``double.tick``
    - ``CB:<name>`` for every payload of ``<name>`` when dedup is on
    - ``subscriptions`` (list of rooms), ``close`` (CloseEvent), ``error`` (exception)
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        dedup: Optional[bool] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self._transport = transport or WebSocketTransport()
        self._dispatcher = EventDispatcher(
            workers=self.settings.DISPATCH_WORKERS,
            queue_size=self.settings.DISPATCH_QUEUE_SIZE,
            callback_timeout=self.settings.DISPATCH_CALLBACK_TIMEOUT,
        )

        if dedup is None:
            dedup = self.settings.DEDUP_ENABLED
        # Lives as long as the client, across reconnects
        self._dedup: Optional[DedupCache] = DedupCache(self.settings.DEDUP_MAX_ENTRIES) if dedup else None

        # Session state
        self._state = SessionState.DISCONNECTED
        self._options: Optional[ConnectOptions] = None
        self._keepalive: Optional[Keepalive] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._subscriptions: List[str] = []

        # Stats
        self._messages_received = 0
        self._events_decoded = 0
        self._reconnect_count = 0
        self._last_message_time = 0.0

        self._transport.on("open", self._on_open)
        self._transport.on("message", self._on_message)
        self._transport.on("close", self._on_close)
        self._transport.on("error", self._on_error)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.OPEN

    @property
    def dedup_enabled(self) -> bool:
        return self._dedup is not None

    @property
    def subscriptions(self) -> List[str]:
        return list(self._subscriptions)

    @property
    def keepalive(self) -> Optional[Keepalive]:
        return self._keepalive

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on(self, event: str, callback: EventCallback):
        """Register a callback (sync or async) for ``event``."""
        self._dispatcher.on(event, callback)

    def emit(self, event: str, data: Any = None):
        self._dispatcher.emit(event, data)

    async def connect(self, options: Optional[ConnectOptions] = None, **kwargs):
        """
        Open a session.

        Raises MissingAddressError without a url and TransportConnectError when
        the socket cannot be opened. Everything after that is reported through
        ``error`` and ``close`` events.
        """
        if options is None:
            options = ConnectOptions(**kwargs)
        elif kwargs:
            options = options.model_copy(update=kwargs)

        if not options.url:
            raise MissingAddressError()

        if self._state is not SessionState.DISCONNECTED:
            logger.warning(f"Client already {self._state.value}")
            return

        self._cancel_reconnect()
        self._options = options
        await self._open_session(options)

    async def disconnect(self) -> bool:
        """
        Close the session without reconnecting.
        Returns False if there was nothing to close.
        """
        reconnect_pending = self._cancel_reconnect()

        if self._state is SessionState.DISCONNECTED:
            if not reconnect_pending:
                logger.warning("Client already disconnected")
            return reconnect_pending

        if self._state is SessionState.CLOSING:
            logger.warning("Client already closing")
            return False

        await self._teardown(NORMAL_CLOSURE, reconnect=False)
        return True

    async def send(self, frame: str):
        await self._transport.send(frame)

    async def flush(self):
        """Wait until callbacks for events emitted so far have run."""
        await self._dispatcher.join()

    async def aclose(self):
        """Disconnect and wait for pending callbacks. Not for use inside a callback."""
        await self.disconnect()
        await self._dispatcher.stop(drain=True)

    async def __aenter__(self) -> "BlazeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "mode": self._options.mode if self._options else None,
            "subscriptions": self.subscriptions,
            "messages_received": self._messages_received,
            "events_decoded": self._events_decoded,
            "reconnect_count": self._reconnect_count,
            "heartbeats": self._keepalive.beats if self._keepalive else 0,
            "dedup_entries": len(self._dedup) if self._dedup is not None else None,
            "last_message_ago": time.time() - self._last_message_time if self._last_message_time else None,
            "dispatch": self._dispatcher.get_stats(),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _build_headers(self, options: ConnectOptions) -> Dict[str, str]:
        headers = dict(BASE_HEADERS)
        headers["Host"] = options.host or self.settings.BLAZE_HOST
        headers["Origin"] = options.origin or self.settings.BLAZE_ORIGIN
        headers.update(options.headers)
        if not any(key.lower() == "user-agent" for key in headers):
            headers["User-Agent"] = self.settings.BLAZE_USER_AGENT
        return headers

    async def _open_session(self, options: ConnectOptions):
        self._state = SessionState.CONNECTING
        try:
            await self._transport.connect(options.url, self._build_headers(options))
        except (TransportConnectError, asyncio.CancelledError):
            self._state = SessionState.DISCONNECTED
            raise
        except Exception as e:
            self._state = SessionState.DISCONNECTED
            raise TransportConnectError(str(e)) from e

    async def _on_open(self, _data: Any = None):
        options = self._options
        if options is None:
            return

        if self._state is not SessionState.CONNECTING:
            # disconnect() ran while the socket was opening
            logger.info("Connect aborted by disconnect, closing socket")
            try:
                await self._transport.disconnect()
            except NotConnectedError:
                pass
            return

        await self._handshake(options)
        if self._state is not SessionState.CONNECTING:
            return

        self._keepalive = Keepalive(
            self._transport.send,
            interval=options.ping_interval or self.settings.BLAZE_PING_INTERVAL,
            timeout=self.settings.BLAZE_PING_TIMEOUT,
        )
        self._keepalive.start()
        self._state = SessionState.OPEN
        logger.info(f"Session open (mode={options.mode})")

    async def _handshake(self, options: ConnectOptions):
        room = resolve_room(options.mode)
        if room is None:
            logger.error(f"Unknown mode {options.mode!r}, not subscribing")
            self.emit("error", UnknownRoomError(options.mode))
            return

        await self._safe_send(subscribe_frame(room))
        self._subscriptions = [room]

        if options.token:
            for frame in authenticate_frames(options.token):
                await self._safe_send(frame)

        self.emit("subscriptions", self.subscriptions)

    async def _safe_send(self, frame: str):
        try:
            await self._transport.send(frame)
        except Exception as e:
            logger.warning(f"Send failed: {e}")

    def _on_message(self, raw: Any):
        self._messages_received += 1
        self._last_message_time = time.time()

        event = decode_frame(raw)
        if event is None:
            return
        self._events_decoded += 1

        if self._dedup is None:
            self.emit(event.event_id, event.payload)
            return

        decision = self._dedup.observe(event.payload)
        if decision.emit_raw:
            self.emit(raw_channel(event.event_id), event.payload)
        if decision.emit_named:
            self.emit(event.event_id, event.payload)

    def _on_error(self, error: Any):
        self.emit("error", error)

    async def _on_close(self, code: Any):
        if self._state in (SessionState.CLOSING, SessionState.DISCONNECTED):
            return
        reconnect = bool(self._options and self._options.reconnect)
        logger.warning(f"Connection lost (code={code}, reconnect={reconnect})")
        await self._teardown(code, reconnect=reconnect)

    async def _teardown(self, code: Any, reconnect: bool):
        self._state = SessionState.CLOSING

        # Timer first, so no heartbeat races the socket going away
        if self._keepalive is not None:
            await self._keepalive.stop()

        try:
            await self._transport.disconnect()
        except NotConnectedError:
            logger.debug("Transport already disconnected")

        self._state = SessionState.DISCONNECTED
        self._subscriptions = []

        close_code = code if isinstance(code, int) else NORMAL_CLOSURE
        self.emit("close", CloseEvent(code=close_code, reconnect=reconnect))

        if reconnect:
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _cancel_reconnect(self) -> bool:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            return True
        return False

    async def _reconnect_loop(self):
        """Retry the original options: a short fixed delay, then exponential backoff."""
        delay = self.settings.BLAZE_RECONNECT_DELAY
        while self._state is SessionState.DISCONNECTED and self._options is not None:
            await asyncio.sleep(delay)
            self._reconnect_count += 1
            logger.info(f"Reconnecting (attempt {self._reconnect_count})")
            try:
                await self._open_session(self._options)
                return
            except BlazeFeedError as e:
                logger.warning(f"Reconnect failed: {e}")
                self.emit("error", e)
            delay = min(
                max(delay, 0.5) * self.settings.BLAZE_RECONNECT_DELAY_MULTIPLIER,
                self.settings.BLAZE_RECONNECT_DELAY_MAX,
            )


class BlazeChatClient(BlazeClient):
    """Client for the public chat room. No dedup and no authentication."""

    def __init__(self, transport: Optional[Transport] = None, settings: Optional[Settings] = None):
        super().__init__(transport=transport, dedup=False, settings=settings)

    async def _handshake(self, options: ConnectOptions):
        await self._safe_send(subscribe_frame(CHAT_ROOM))
        self._subscriptions = [CHAT_ROOM]
        self.emit("subscriptions", self.subscriptions)


async def make_connection(
    web: str = "blaze",
    game_type: str = "crash",
    transport: Optional[Transport] = None,
    dedup: Optional[bool] = None,
    **kwargs,
) -> BlazeClient:
    """
    Build and connect a client.

    ``web="blaze"`` joins the game room for ``game_type``; ``web="blaze-chat"``
    joins the chat room. Remaining kwargs are ConnectOptions fields.
    """
    if web == "blaze":
        client = BlazeClient(transport=transport, dedup=dedup)
        kwargs["url"] = kwargs.get("url") or resolve_url("games")
    elif web == "blaze-chat":
        client = BlazeChatClient(transport=transport)
        kwargs["url"] = kwargs.get("url") or resolve_url("general")
    else:
        raise ValueError("missing web")

    kwargs.setdefault("mode", game_type)
    await client.connect(**kwargs)
    return client
