"""
Event models for the replication feed.
Typed views of the payloads the server pushes, plus the events the client itself emits.
"""
from dataclasses import dataclass
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, RootModel, StrictFloat, StrictInt, StrictStr, ValidationError
from typing import Annotated, Any, Dict, List, Optional, Type, Union


# =============================================================================
# Client-side events
# =============================================================================

@dataclass(frozen=True)
class DecodedEvent:
    """A data frame's event name and its untouched payload."""
    event_id: str
    payload: Any


@dataclass(frozen=True)
class CloseEvent:
    """Emitted on ``close``; ``reconnect`` tells consumers whether the client will retry."""
    code: int = 1000
    reconnect: bool = False


# =============================================================================
# Polymorphic scalars
# =============================================================================

class StringOrNumber(RootModel[Union[StrictStr, StrictInt, StrictFloat]]):
    """
    A field the server sends either as ``"1"`` or ``1`` (double colour and roll).
    Use ``.text`` to read it.
    """

    @property
    def text(self) -> str:
        value = self.root
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def __str__(self) -> str:
        return self.text


def _float_or_string(value: Any) -> Any:
    if isinstance(value, str):
        return float(value) if value.strip() else 0.0
    return value


FloatOrString = Annotated[float, BeforeValidator(_float_or_string)]


# =============================================================================
# Server payloads
# =============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Bet(_Payload):
    id: str
    cashed_out_at: Optional[float] = None
    amount: float = 0.0
    currency_type: Optional[str] = None
    win_amount: Optional[str] = None
    status: Optional[str] = None  # "win", "created"


class CrashTickEvent(_Payload):
    """``crash.tick``"""
    id: str
    updated_at: Optional[str] = None
    status: str
    crash_point: Optional[FloatOrString] = None
    is_bonus_round: bool = False


class CrashTickBetsEvent(_Payload):
    """``crash.tick-bets``; only crash_2 publishes it."""
    id: str
    room_id: Optional[int] = Field(default=None, alias="roomId")
    total_eur_bet: float = 0.0
    total_bets_placed: Optional[str] = None
    total_eur_won: float = 0.0
    bets: List[Bet] = []


class DoubleTickEvent(_Payload):
    """``double.tick``"""
    id: str
    color: Optional[StringOrNumber] = None
    roll: Optional[StringOrNumber] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    status: str  # "waiting", "rolling", "complete"
    total_red_eur_bet: float = 0.0
    total_red_bets_placed: int = 0
    total_white_eur_bet: float = 0.0
    total_white_bets_placed: int = 0
    total_black_eur_bet: float = 0.0
    total_black_bets_placed: int = 0
    bets: List[Bet] = []


class ChatUser(_Payload):
    id: str
    username: str
    rank: Optional[str] = None
    label: Optional[str] = None
    level: int = 0


class ChatMessageEvent(_Payload):
    """``chat.message``"""
    id: str
    text: str
    available: bool = True
    created_at: Optional[str] = None
    user: ChatUser


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Fallback for event names without a model, or payloads that do not fit one."""
    name: str
    data: Any


FeedEvent = Union[CrashTickEvent, CrashTickBetsEvent, DoubleTickEvent, ChatMessageEvent, UnrecognizedEvent]

EVENT_MODELS: Dict[str, Type[BaseModel]] = {
    "crash.tick": CrashTickEvent,
    "crash.tick-bets": CrashTickBetsEvent,
    "double.tick": DoubleTickEvent,
    "chat.message": ChatMessageEvent,
}


def parse_event(name: str, data: Any) -> FeedEvent:
    """
    Typed view of a payload.

    Names with a raw-channel prefix resolve to the same model as the bare name.
    Unknown names and payloads that fail validation come back as UnrecognizedEvent.
    """
    model = EVENT_MODELS.get(name.split(":", 1)[-1])
    if model is None or not isinstance(data, dict):
        return UnrecognizedEvent(name=name, data=data)
    try:
        return model.model_validate(data)
    except ValidationError:
        return UnrecognizedEvent(name=name, data=data)
