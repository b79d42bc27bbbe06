"""
Wire format of the replication socket.
Decodes inbound data frames and builds the few outbound frames the client sends.

Inbound data frames look like:

    42["data",{"id":"double.tick","payload":{"id":"E1","status":"waiting"}}]

Everything else on the channel (open packets, pongs, acks) is ignored.
"""
import json
import re
from typing import Any, Dict, List, Optional
from blaze_feed.config import settings
from blaze_feed.protocol.models import DecodedEvent
from blaze_feed.utils.logging import get_logger

logger = get_logger("protocol.frames")

DATA_FRAME_RE = re.compile(r'^\d+\["data",\s*({.*})]$', re.DOTALL)

HEARTBEAT_FRAME = "2"

# Server variants disagree on which packet prefix carries auth, so all are sent
AUTH_PREFIXES = ("423", "422", "420")

RAW_CHANNEL_PREFIX = "CB:"

ROOMS: Dict[str, str] = {
    "crash": "crash_room_4",
    "doubles": "double_room_1",
    "crash_2": "crash_room_1",
    "crash_neymarjr": "crash_room_3",
}

CHAT_ROOM = "chat_room_2"


def decode_frame(raw: Any) -> Optional[DecodedEvent]:
    """
    Decode one inbound frame.

    Returns None for anything that is not a well-formed data frame:
    wrong type, wrong shape, invalid JSON, or a body without ``id``/``payload``.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return None
    elif not isinstance(raw, str):
        return None

    match = DATA_FRAME_RE.match(raw)
    if match is None:
        return None

    try:
        body = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.debug(f"Data frame with invalid JSON: {raw[:200]}")
        return None

    if not isinstance(body, dict):
        return None

    event_id = body.get("id")
    payload = body.get("payload")
    if not isinstance(event_id, str) or not event_id or payload is None:
        return None

    return DecodedEvent(event_id=event_id, payload=payload)


def resolve_room(mode: str) -> Optional[str]:
    """Room for a game mode, or None when the mode is unknown."""
    return ROOMS.get(mode)


def resolve_url(kind: str) -> str:
    """
    Default address for a URL kind.
    ``games`` serves the crash/double rooms, ``general`` serves chat.
    """
    url_map = {
        "games": settings.BLAZE_GAMES_URL,
        "general": settings.BLAZE_GENERAL_URL,
    }
    return url_map.get(kind, "")


def raw_channel(event_id: str) -> str:
    """Name of the channel that receives every payload for ``event_id``."""
    return f"{RAW_CHANNEL_PREFIX}{event_id}"


def _command_frame(prefix: str, command: str, payload: Dict[str, Any]) -> str:
    body = json.dumps({"id": command, "payload": payload}, separators=(",", ":"))
    return f'{prefix}["cmd",{body}]'


def subscribe_frame(room: str) -> str:
    """``420["cmd",{"id":"subscribe","payload":{"room":"<room>"}}]``"""
    return _command_frame("420", "subscribe", {"room": room})


def authenticate_frames(token: str) -> List[str]:
    """The three authenticate frames, in send order."""
    return [_command_frame(prefix, "authenticate", {"token": token}) for prefix in AUTH_PREFIXES]
