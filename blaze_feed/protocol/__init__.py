"""Protocol package: frame codec and event models."""
from .models import (
    DecodedEvent,
    CloseEvent,
    StringOrNumber,
    Bet,
    CrashTickEvent,
    CrashTickBetsEvent,
    DoubleTickEvent,
    ChatUser,
    ChatMessageEvent,
    UnrecognizedEvent,
    FeedEvent,
    parse_event,
)
from .frames import (
    HEARTBEAT_FRAME,
    ROOMS,
    CHAT_ROOM,
    decode_frame,
    resolve_room,
    resolve_url,
    raw_channel,
    subscribe_frame,
    authenticate_frames,
)

__all__ = [
    "DecodedEvent",
    "CloseEvent",
    "StringOrNumber",
    "Bet",
    "CrashTickEvent",
    "CrashTickBetsEvent",
    "DoubleTickEvent",
    "ChatUser",
    "ChatMessageEvent",
    "UnrecognizedEvent",
    "FeedEvent",
    "parse_event",
    "HEARTBEAT_FRAME",
    "ROOMS",
    "CHAT_ROOM",
    "decode_frame",
    "resolve_room",
    "resolve_url",
    "raw_channel",
    "subscribe_frame",
    "authenticate_frames",
]
