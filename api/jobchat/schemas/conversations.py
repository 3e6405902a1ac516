from datetime import datetime

from pydantic import BaseModel

from jobchat.core.auth import PartyKind
from jobchat.schemas.pagination import PaginationOut


class PartyOut(BaseModel):
    id: str
    kind: PartyKind
    name: str | None = None


class OrganizationOut(BaseModel):
    id: str
    name: str | None = None


class JobOut(BaseModel):
    id: str
    title: str | None = None
    organization: OrganizationOut


class ApplicationOut(BaseModel):
    id: str
    status: str | None = None
    applicant: PartyOut
    job: JobOut


class LastMessageOut(BaseModel):
    id: int
    content: str
    created_at: datetime
    is_own_message: bool


class ConversationSummaryOut(BaseModel):
    application: ApplicationOut
    counterpart: PartyOut
    unread_count: int
    last_message: LastMessageOut
    updated_at: datetime | None = None


class ConversationListOut(BaseModel):
    conversations: list[ConversationSummaryOut]
    pagination: PaginationOut
