"""
Republish feed events on Redis channels.
Lets other processes follow the feed without opening their own socket.
"""
import dataclasses
import json
from typing import Any, Dict, Optional
import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError
from blaze_feed.config import settings
from blaze_feed.relay.client import get_redis
from blaze_feed.session.client import BlazeClient
from blaze_feed.utils.logging import get_logger

logger = get_logger("relay.publisher")


def to_jsonable(data: Any) -> Any:
    """JSON-ready form of anything the client emits."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.asdict(data)
    if isinstance(data, BaseException):
        return {"error": type(data).__name__, "message": str(data)}
    return data


class RedisRelay:
    """
    Publishes selected client events to ``<prefix><event>``.

    Message body:
    {
        "event": "double.tick",
        "data": { ... },
    }
    """

    def __init__(
        self,
        client: BlazeClient,
        redis: Optional[aioredis.Redis] = None,
        prefix: Optional[str] = None,
    ):
        self.client = client
        self.prefix = prefix or settings.REDIS_CHANNEL_PREFIX
        self._redis = redis
        self._attached: set = set()

        # Stats
        self._published = 0
        self._failed = 0

    def channel_for(self, event: str) -> str:
        return f"{self.prefix}{event}"

    def attach(self, *events: str):
        """Start relaying ``events``. Attaching an event twice is a no-op."""
        for event in events:
            if event in self._attached:
                continue
            self._attached.add(event)
            self.client.on(event, self._make_forwarder(event))
            logger.info(f"Relaying {event} -> {self.channel_for(event)}")

    def _make_forwarder(self, event: str):
        async def forward(data: Any):
            await self.publish(event, data)
        forward.__qualname__ = f"RedisRelay.forward[{event}]"
        return forward

    async def publish(self, event: str, data: Any):
        channel = self.channel_for(event)
        try:
            if self._redis is None:
                self._redis = await get_redis()
            message = json.dumps({"event": event, "data": to_jsonable(data)})
            await self._redis.publish(channel, message)
            self._published += 1
        except (RedisError, TypeError) as e:
            self._failed += 1
            logger.error(f"Failed to publish to {channel}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "events": sorted(self._attached),
            "published": self._published,
            "failed": self._failed,
        }
