"""
Invalidation sink: cache eviction + client broadcast after every content state change.
Fire-and-forget: failures are logged and counted, never raised to the caller.
Broadcast goes to a Redis channel; the SSE gateway relays it to browsers.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any

import redis

from novelhub.core.config import settings
from novelhub.services.cache import ContentCache
from novelhub.services.circuit_breaker import get_circuit_breaker
from novelhub.utils.metrics import invalidation_failures_total

logger = logging.getLogger(__name__)

EVENTS_BREAKER = "events_broadcast"

# scope -> cache key prefixes to evict
SCOPE_PREFIXES = {
    "chapter": ("chapter:",),
    "module": ("module:", "chapter:"),
    "novel": ("novel:", "module:", "chapter:"),
}


def chapter_key(chapter_id: str) -> str:
    return f"chapter:{chapter_id}"


def module_key(module_id: str) -> str:
    return f"module:{module_id}"


def novel_key(novel_id: str) -> str:
    return f"novel:{novel_id}"


class InvalidationSink:
    def __init__(
        self,
        cache: ContentCache | None = None,
        client: redis.Redis | None = None,
        channel: str | None = None,
    ) -> None:
        self.cache = cache
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.channel = channel or settings.events_channel
        self._breaker = None

    @property
    def breaker(self):
        # storage читает состояние из Redis уже в конструкторе breaker'а
        if self._breaker is None:
            self._breaker = get_circuit_breaker(EVENTS_BREAKER)
        return self._breaker

    def invalidate(self, scope: str, payload: dict[str, Any], event: str | None = None) -> None:
        """
        Evict cached snapshots for scope ("chapter" | "module" | "novel") and broadcast event.
        payload carries ids: chapter_id / module_id / novel_id.
        """
        try:
            self._evict(scope, payload)
        except Exception as e:
            invalidation_failures_total.inc()
            logger.warning("cache_eviction_failed", extra={"scope": scope, "error": str(e)})
        self.broadcast(event or f"{scope}_updated", payload)

    def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps(
            {"event": event, "payload": payload, "ts": datetime.now(timezone.utc).isoformat()},
            ensure_ascii=False,
            default=str,
        )
        try:
            self.breaker.call(self.client.publish, self.channel, message)
        except Exception as e:
            # fail-open: readers still converge via cache TTL
            invalidation_failures_total.inc()
            logger.warning("event_broadcast_failed", extra={"event": event, "error": str(e)})

    def _evict(self, scope: str, payload: dict[str, Any]) -> None:
        if self.cache is None:
            return
        if scope == "chapter" and payload.get("chapter_id"):
            self.cache.delete(chapter_key(payload["chapter_id"]))
            return
        if scope == "module" and payload.get("module_id"):
            self.cache.delete(module_key(payload["module_id"]))
            # главы тома несут режим тома в своих снимках
            self.cache.delete_prefix("chapter:")
            return
        if scope == "novel" and payload.get("novel_id"):
            self.cache.delete(novel_key(payload["novel_id"]))
        for prefix in SCOPE_PREFIXES.get(scope, ()):
            self.cache.delete_prefix(prefix)
