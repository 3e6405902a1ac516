from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import NamedTuple

from opentelemetry import trace

from jobchat.core.auth import PartyKind
from jobchat.core.config import get_settings
from jobchat.services.repository import ConversationContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AccessCacheKey(NamedTuple):
    conversation_id: str
    requester_id: str
    party_kind: PartyKind


@dataclass(slots=True, frozen=True)
class AccessDecision:
    granted: bool
    context: ConversationContext
    inserted_at: float


class AccessCache:
    """TTL memo of conversation access decisions.

    Entries are an optimisation only: clearing the cache changes latency, never
    outcomes. A conversation deleted after a grant stays reachable through the
    cache until its entry expires; the bound applies per process.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = max(0.0, ttl_seconds)
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[AccessCacheKey, AccessDecision] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: AccessCacheKey) -> AccessDecision | None:
        if not self.enabled:
            return None
        entry = self._entries.get(key)
        if entry is None or self._expired(entry, self._clock()):
            return None
        return entry

    def put(self, key: AccessCacheKey, *, granted: bool, context: ConversationContext) -> AccessDecision:
        entry = AccessDecision(granted=granted, context=context, inserted_at=self._clock())
        if self.enabled:
            with self._lock:
                self._entries[key] = entry
        return entry

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            snapshot = list(self._entries.items())
        expired = [(key, entry.inserted_at) for key, entry in snapshot if self._expired(entry, now)]
        removed = 0
        with self._lock:
            for key, inserted_at in expired:
                current = self._entries.get(key)
                # Skip keys re-put since the scan.
                if current is not None and current.inserted_at == inserted_at:
                    del self._entries[key]
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _expired(self, entry: AccessDecision, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds


async def run_access_cache_sweeper(cache: AccessCache, interval_seconds: float) -> None:
    interval = max(0.01, interval_seconds)
    while True:
        await asyncio.sleep(interval)
        try:
            with tracer.start_as_current_span("access_cache.sweep") as span:
                removed = cache.sweep()
                span.set_attribute("access_cache.removed", removed)
                if removed:
                    logger.info("swept expired access cache entries: %s", removed)
        except Exception as exc:  # pragma: no cover - sweep robustness
            logger.exception("access cache sweep failed: %s", exc)


@lru_cache
def get_access_cache() -> AccessCache:
    settings = get_settings()
    return AccessCache(
        ttl_seconds=settings.access_cache_ttl_seconds,
        enabled=settings.access_cache_enabled,
    )
