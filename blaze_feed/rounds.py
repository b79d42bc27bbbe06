"""
Follow one full game round.
A consumer of the client's public events: nothing here touches session internals.
"""
import asyncio
from typing import AsyncIterator, Optional, Union
from blaze_feed.errors import RoundAbortedError, UnknownRoomError
from blaze_feed.protocol.frames import resolve_url
from blaze_feed.protocol.models import CloseEvent, CrashTickEvent, DoubleTickEvent, UnrecognizedEvent, parse_event
from blaze_feed.session.client import BlazeClient
from blaze_feed.session.transport import Transport
from blaze_feed.utils.logging import get_logger

logger = get_logger("rounds")

RoundTick = Union[CrashTickEvent, DoubleTickEvent]


def tick_event_for(game_type: str) -> str:
    """Server event that carries round ticks for a game mode."""
    return "double.tick" if game_type == "doubles" else "crash.tick"


async def next_round(
    game_type: str = "crash",
    url: Optional[str] = None,
    token: Optional[str] = None,
    reconnect: bool = False,
    transport: Optional[Transport] = None,
) -> AsyncIterator[RoundTick]:
    """
    Yield the ticks of the next complete round.

    Ticks are skipped until one with status ``waiting`` marks the start of a
    round; iteration ends after the ``complete`` tick. The connection is closed
    when the iterator finishes or is closed early. A close that the client will
    not recover from raises RoundAbortedError.

    Usage:
        async for tick in next_round("doubles"):
            print(tick.status, tick.roll)
    """
    event_name = tick_event_for(game_type)
    queue: asyncio.Queue = asyncio.Queue()

    client = BlazeClient(transport=transport)
    client.on(event_name, lambda data: queue.put_nowait((event_name, data)))
    client.on("close", lambda event: queue.put_nowait(("close", event)))
    client.on("error", lambda error: queue.put_nowait(("error", error)))

    started = False
    try:
        await client.connect(url=url or resolve_url("games"), mode=game_type, token=token, reconnect=reconnect)

        while True:
            kind, data = await queue.get()

            if kind == "close":
                if isinstance(data, CloseEvent) and data.reconnect:
                    logger.info("Connection dropped, waiting for reconnect")
                    continue
                if not started:
                    raise RoundAbortedError("connection closed before game started")
                raise RoundAbortedError("connection closed before game completed")

            if kind == "error":
                if isinstance(data, UnknownRoomError):
                    raise RoundAbortedError(f"no room for game type {game_type!r}") from data
                logger.warning(f"Error while waiting for round: {data}")
                continue

            tick = parse_event(kind, data)
            if isinstance(tick, UnrecognizedEvent):
                logger.debug(f"Skipping unparseable tick: {data!r}")
                continue

            if not started:
                if tick.status != "waiting":
                    continue
                started = True
                logger.info(f"Round {tick.id} started")

            yield tick

            if tick.status == "complete":
                logger.info(f"Round {tick.id} complete")
                return
    finally:
        await client.aclose()
