from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any

from jobchat.core.auth import PartyKind

logger = logging.getLogger(__name__)


class ReadStateTracker:
    """Marks a recipient's messages read in the background.

    Tasks are held until they finish so the event loop cannot drop them. A
    failed update is only logged: mark-read is idempotent and the next fetch
    of the conversation retries it.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task[int]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(
        self,
        repository: Any,
        *,
        conversation_id: str,
        recipient_id: str,
        recipient_kind: PartyKind,
    ) -> asyncio.Task[int]:
        task = asyncio.create_task(
            self._mark_read(
                repository,
                conversation_id=conversation_id,
                recipient_id=recipient_id,
                recipient_kind=recipient_kind,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _mark_read(
        self,
        repository: Any,
        *,
        conversation_id: str,
        recipient_id: str,
        recipient_kind: PartyKind,
    ) -> int:
        try:
            updated = await repository.mark_messages_read(
                conversation_id=conversation_id,
                recipient_id=recipient_id,
                recipient_kind=recipient_kind,
            )
        except Exception:
            logger.exception(
                "mark-read failed conversation_id=%s recipient=%s; will retry on next fetch",
                conversation_id,
                recipient_id,
            )
            return 0
        if updated:
            logger.debug("marked messages read conversation_id=%s count=%s", conversation_id, updated)
        return updated


@lru_cache
def get_read_state_tracker() -> ReadStateTracker:
    return ReadStateTracker()
