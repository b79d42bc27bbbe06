"""Client for the Blaze replication feed."""
from .errors import (
    BlazeFeedError,
    MissingAddressError,
    TransportConnectError,
    NotConnectedError,
    UnknownRoomError,
    RoundAbortedError,
)
from .protocol import CloseEvent, DecodedEvent, parse_event
from .session import BlazeClient, BlazeChatClient, ConnectOptions, SessionState, make_connection
from .rounds import next_round

__version__ = "1.0.0"

__all__ = [
    "BlazeFeedError",
    "MissingAddressError",
    "TransportConnectError",
    "NotConnectedError",
    "UnknownRoomError",
    "RoundAbortedError",
    "CloseEvent",
    "DecodedEvent",
    "parse_event",
    "BlazeClient",
    "BlazeChatClient",
    "ConnectOptions",
    "SessionState",
    "make_connection",
    "next_round",
]
