from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import Depends

from jobchat.core.auth import Principal
from jobchat.core.config import Settings, get_settings
from jobchat.schemas.conversations import ConversationSummaryOut
from jobchat.services.access import ConversationAccessResolver
from jobchat.services.access_cache import AccessCache, get_access_cache
from jobchat.services.conversations import ConversationAggregator
from jobchat.services.notifications import NotificationEmitter
from jobchat.services.read_state import ReadStateTracker, get_read_state_tracker
from jobchat.services.repository import get_repository, page_offset

logger = logging.getLogger(__name__)


class MessagingService:
    def __init__(
        self,
        repository: Any,
        access_cache: AccessCache,
        read_state: ReadStateTracker,
        page_size: int,
    ) -> None:
        self.repository = repository
        self.page_size = page_size
        self.resolver = ConversationAccessResolver(repository, access_cache)
        self.aggregator = ConversationAggregator(repository, page_size)
        self.notifications = NotificationEmitter(repository)
        self.read_state = read_state

    async def send_message(self, principal: Principal, conversation_id: str, content: str) -> dict[str, Any]:
        context = await self.resolver.resolve(conversation_id, principal)
        recipient_kind = principal.party_kind.counterpart
        message = await self.repository.append_message(
            conversation_id=context.conversation_id,
            sender_id=principal.subject,
            sender_kind=principal.party_kind,
            recipient_id=context.party_id(recipient_kind),
            recipient_kind=recipient_kind,
            content=content,
        )

        touched, _ = await asyncio.gather(
            self.repository.touch_conversation(context.conversation_id),
            self.notifications.emit_new_message(message, context),
            return_exceptions=True,
        )
        if isinstance(touched, BaseException):
            logger.error(
                "failed to update conversation activity conversation_id=%s: %s",
                context.conversation_id,
                touched,
            )
        return message

    async def list_messages(
        self,
        principal: Principal,
        conversation_id: str,
        page: int,
    ) -> tuple[list[dict[str, Any]], int]:
        context = await self.resolver.resolve(conversation_id, principal)
        messages, total = await self.repository.list_messages(
            conversation_id=context.conversation_id,
            limit=self.page_size,
            offset=page_offset(page, self.page_size),
        )
        if messages:
            self.read_state.schedule(
                self.repository,
                conversation_id=context.conversation_id,
                recipient_id=principal.subject,
                recipient_kind=principal.party_kind,
            )
        return messages, total

    async def list_conversations(self, principal: Principal, page: int) -> tuple[list[ConversationSummaryOut], int]:
        return await self.aggregator.list_conversations(principal, page)

    async def count_unread(self, principal: Principal) -> int:
        return await self.repository.count_unread_messages(
            recipient_id=principal.subject,
            recipient_kind=principal.party_kind,
        )


def get_messaging_service(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    access_cache: AccessCache = Depends(get_access_cache),
    read_state: ReadStateTracker = Depends(get_read_state_tracker),
) -> MessagingService:
    return MessagingService(
        repository=repository,
        access_cache=access_cache,
        read_state=read_state,
        page_size=settings.page_size,
    )
