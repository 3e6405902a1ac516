from datetime import datetime

from pydantic import BaseModel

from jobchat.core.auth import PartyKind
from jobchat.schemas.pagination import PaginationOut


class MessageOut(BaseModel):
    id: int
    conversation_id: str
    sender_id: str
    sender_kind: PartyKind
    recipient_id: str
    recipient_kind: PartyKind
    content: str
    read: bool
    created_at: datetime


class MessageCreateRequest(BaseModel):
    content: str


class MessageListOut(BaseModel):
    messages: list[MessageOut]
    pagination: PaginationOut


class UnreadCountOut(BaseModel):
    count: int
