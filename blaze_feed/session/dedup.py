"""
Status dedup for tick events.
The server repeats a round's tick many times per status; consumers usually want the transitions.
"""
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional
from blaze_feed.utils.logging import get_logger

logger = get_logger("session.dedup")


@dataclass(frozen=True)
class DedupDecision:
    """Which channels an observed payload should go out on."""
    emit_named: bool
    emit_raw: bool = True


EMIT = DedupDecision(emit_named=True)
SUPPRESS = DedupDecision(emit_named=False)


class DedupCache:
    """
    Last seen status per entity id.

    Owned by one client and kept across its reconnects, so a round that keeps
    ticking through a short drop is still deduplicated against what came before.
    With ``max_entries`` set, the least recently observed ids are evicted first.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self._statuses: "OrderedDict[str, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def observe(self, payload: Any) -> DedupDecision:
        """
        Record ``payload`` and decide whether the named event should fire.

        Payloads without both ``id`` and ``status`` always fire (bet lists, chat).
        Ids are compared as text, so ``7`` and ``"7"`` are the same round.
        """
        if not isinstance(payload, dict):
            return EMIT

        entity_id = payload.get("id")
        if entity_id is None or "status" not in payload:
            return EMIT

        key = str(entity_id)
        status = payload["status"]

        with self._lock:
            if key in self._statuses:
                self._statuses.move_to_end(key)
                if self._statuses[key] == status:
                    return SUPPRESS
            self._statuses[key] = status
            self._evict()

        return EMIT

    def _evict(self):
        if self.max_entries is None:
            return
        while len(self._statuses) > self.max_entries:
            evicted, _ = self._statuses.popitem(last=False)
            logger.debug(f"Evicted dedup entry {evicted}")

    def status_of(self, entity_id: str) -> Any:
        with self._lock:
            return self._statuses.get(entity_id)

    def clear(self):
        with self._lock:
            self._statuses.clear()

    def __len__(self) -> int:
        return len(self._statuses)
