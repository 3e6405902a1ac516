from __future__ import annotations

import logging
from typing import Any

from jobchat.core.auth import Principal
from jobchat.services.access_cache import AccessCache, AccessCacheKey
from jobchat.services.repository import (
    ConversationContext,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

FORBIDDEN_DETAIL = "You do not have access to this conversation"
NOT_FOUND_DETAIL = "Job application not found"


class ConversationAccessResolver:
    def __init__(self, repository: Any, cache: AccessCache) -> None:
        self.repository = repository
        self.cache = cache

    async def resolve(self, conversation_id: str, principal: Principal) -> ConversationContext:
        """Return the conversation context if ``principal`` is one of its two parties.

        Raises ``RepositoryNotFoundError`` when the application does not exist and
        ``RepositoryForbiddenError`` when the requester is not the party matching
        their claimed kind. Both grants and denials are memoised for the cache
        TTL; not-found results are not.
        """
        key = AccessCacheKey(conversation_id, principal.subject, principal.party_kind)
        cached = self.cache.get(key)
        if cached is not None:
            if not cached.granted:
                raise RepositoryForbiddenError(FORBIDDEN_DETAIL)
            return cached.context

        context = await self.repository.get_conversation_context(conversation_id)
        if context is None:
            raise RepositoryNotFoundError(NOT_FOUND_DETAIL)

        granted = context.party_id(principal.party_kind) == principal.subject
        self.cache.put(key, granted=granted, context=context)
        if not granted:
            logger.info(
                "conversation access denied conversation_id=%s requester=%s kind=%s",
                conversation_id,
                principal.subject,
                principal.party_kind.value,
            )
            raise RepositoryForbiddenError(FORBIDDEN_DETAIL)
        return context
