"""Session package: transport, keepalive, dedup, dispatch and the controller."""
from .client import BlazeClient, BlazeChatClient, ConnectOptions, SessionState, make_connection
from .dedup import DedupCache, DedupDecision
from .dispatcher import EventDispatcher
from .keepalive import Keepalive
from .transport import Transport, WebSocketTransport

__all__ = [
    "BlazeClient",
    "BlazeChatClient",
    "ConnectOptions",
    "SessionState",
    "make_connection",
    "DedupCache",
    "DedupDecision",
    "EventDispatcher",
    "Keepalive",
    "Transport",
    "WebSocketTransport",
]
