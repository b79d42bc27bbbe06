#!/usr/bin/env python3
"""
Terminal client: follow the Blaze replication feed and print events.
Usage:
  python scripts/watch_feed.py
  python scripts/watch_feed.py --mode doubles
  python scripts/watch_feed.py --web blaze-chat
  python scripts/watch_feed.py --mode crash --no-dedup --raw
  python scripts/watch_feed.py --relay double.tick   # also publish to Redis
"""
import argparse
import asyncio
import signal

from blaze_feed.protocol import ROOMS, parse_event
from blaze_feed.protocol.frames import resolve_url
from blaze_feed.relay import RedisRelay, close_redis
from blaze_feed.session import BlazeChatClient, BlazeClient
from blaze_feed.utils.logging import setup_logging

GAME_EVENTS = ["crash.tick", "crash.tick-bets", "double.tick"]
CHAT_EVENTS = ["chat.message"]


def print_event(name: str):
    def _print(data):
        event = parse_event(name, data)
        status = getattr(event, "status", None)
        if status is not None:
            print(f"[{name}] id={event.id} status={status}", flush=True)
        elif name == "chat.message":
            print(f"[chat] {event.user.username}: {event.text}", flush=True)
        else:
            print(f"[{name}]", str(data)[:200], flush=True)
    return _print


async def run(args) -> None:
    if args.web == "blaze-chat":
        client = BlazeChatClient()
        events = CHAT_EVENTS
        url = args.url or resolve_url("general")
    else:
        client = BlazeClient(dedup=args.dedup)
        events = GAME_EVENTS
        url = args.url or resolve_url("games")

    for name in events:
        client.on(name, print_event(name))
        if args.raw and client.dedup_enabled:
            client.on(f"CB:{name}", print_event(f"CB:{name}"))

    client.on("subscriptions", lambda rooms: print("[SUBSCRIBED]", rooms, flush=True))
    client.on("error", lambda err: print("[ERROR]", err, flush=True))

    stop = asyncio.Event()

    def on_close(event):
        print(f"[CLOSE] code={event.code} reconnect={event.reconnect}", flush=True)
        if not event.reconnect:
            stop.set()

    client.on("close", on_close)

    if args.relay:
        RedisRelay(client).attach(*args.relay)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    await client.connect(url=url, mode=args.mode, token=args.token, reconnect=args.reconnect)
    try:
        await stop.wait()
    finally:
        await client.aclose()
        if args.relay:
            await close_redis()


def main():
    p = argparse.ArgumentParser(description="Blaze replication feed terminal client")
    p.add_argument("--web", choices=["blaze", "blaze-chat"], default="blaze", help="Games feed or chat feed")
    p.add_argument("--mode", choices=sorted(ROOMS), default="crash", help="Game room to join")
    p.add_argument("--url", default=None, help="Override the socket address")
    p.add_argument("--token", default=None, help="Auth token for private events")
    p.add_argument("--no-dedup", action="store_false", dest="dedup", help="Emit every tick, not only status changes")
    p.add_argument("--raw", action="store_true", help="Also print the CB:<event> channel")
    p.add_argument("--reconnect", action="store_true", default=True, help="Reconnect when the server drops us (default)")
    p.add_argument("--no-reconnect", action="store_false", dest="reconnect", help="Exit on the first close")
    p.add_argument("--relay", action="append", metavar="EVENT", help="Publish EVENT to Redis (repeatable)")
    args = p.parse_args()
    setup_logging()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
