from __future__ import annotations

from typing import Any

from jobchat.core.auth import PartyKind, Principal
from jobchat.schemas.conversations import (
    ApplicationOut,
    ConversationSummaryOut,
    JobOut,
    LastMessageOut,
    OrganizationOut,
    PartyOut,
)
from jobchat.services.repository import page_offset


class ConversationAggregator:
    """Builds the requester's conversation list.

    The repository computes the filtered, sorted and paginated rows in one
    pass (latest message, scoped unread count and the applicant, job and
    organization labels); this class only shapes them for the requester.
    """

    def __init__(self, repository: Any, page_size: int) -> None:
        self.repository = repository
        self.page_size = page_size

    async def list_conversations(self, principal: Principal, page: int) -> tuple[list[ConversationSummaryOut], int]:
        rows, total = await self.repository.list_conversation_summaries(
            party_id=principal.subject,
            party_kind=principal.party_kind,
            limit=self.page_size,
            offset=page_offset(page, self.page_size),
        )
        return [to_conversation_summary(row, principal) for row in rows], total


def to_conversation_summary(row: dict[str, Any], principal: Principal) -> ConversationSummaryOut:
    applicant = PartyOut(id=row["applicant_id"], kind=PartyKind.APPLICANT, name=row["applicant_name"])
    organization = OrganizationOut(id=row["organization_id"], name=row["organization_name"])
    if principal.party_kind is PartyKind.APPLICANT:
        counterpart = PartyOut(id=organization.id, kind=PartyKind.ORGANIZATION, name=organization.name)
    else:
        counterpart = applicant

    is_own_message = (
        row["last_message_sender_id"] == principal.subject
        and row["last_message_sender_kind"] == principal.party_kind.value
    )
    return ConversationSummaryOut(
        application=ApplicationOut(
            id=row["conversation_id"],
            status=row["status"],
            applicant=applicant,
            job=JobOut(id=row["job_id"], title=row["job_title"], organization=organization),
        ),
        counterpart=counterpart,
        unread_count=row["unread_count"],
        last_message=LastMessageOut(
            id=row["last_message_id"],
            content=row["last_message_content"],
            created_at=row["last_message_created_at"],
            is_own_message=is_own_message,
        ),
        updated_at=row["last_activity_at"],
    )
