from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]

from jobchat.core.auth import PartyKind
from jobchat.core.config import get_settings

if TYPE_CHECKING:
    from jobchat.services.store import InMemoryRepository


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryForbiddenError(RepositoryError):
    """Raised when an operation is not permitted for the actor."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


MESSAGE_MAX_LENGTH = 2000
PG_BIGINT_MAX = 2**63 - 1
NOTIFICATION_TYPES = {"NEW_MESSAGE"}


@dataclass(slots=True, frozen=True)
class ConversationContext:
    """Snapshot of a job application as seen by the messaging subsystem.

    The two parties never change after the application is created, which is
    what makes this snapshot safe to cache for the access-cache TTL.
    """

    conversation_id: str
    applicant_id: str
    organization_id: str
    job_id: str
    job_title: str
    status: str | None = None

    def party_id(self, kind: PartyKind) -> str:
        if kind is PartyKind.APPLICANT:
            return self.applicant_id
        return self.organization_id


def validate_message_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise RepositoryValidationError("Message content is required")
    if len(content) > MESSAGE_MAX_LENGTH:
        raise RepositoryValidationError(f"Message content cannot exceed {MESSAGE_MAX_LENGTH} characters")
    return content.strip()


def normalize_uuid(value: Any) -> str | None:
    try:
        return str(UUID(str(value)))
    except (TypeError, ValueError):
        return None


def page_offset(page: int, page_size: int) -> int:
    if page < 1:
        raise RepositoryValidationError("page must be a positive integer")
    offset = (page - 1) * page_size
    if offset > PG_BIGINT_MAX:
        raise RepositoryValidationError("page is out of range")
    return offset


def validate_notification(notification: dict[str, Any]) -> None:
    if notification.get("type") not in NOTIFICATION_TYPES:
        raise RepositoryValidationError(f"unsupported notification type: {notification.get('type')!r}")
    for field in ("recipient_id", "recipient_kind", "title", "message"):
        if not notification.get(field):
            raise RepositoryValidationError(f"notification {field} is required")
    if normalize_uuid(notification["recipient_id"]) is None:
        raise RepositoryValidationError("notification recipient_id must be a uuid")
    if notification["recipient_kind"] not in {kind.value for kind in PartyKind}:
        raise RepositoryValidationError(f"unsupported recipient kind: {notification['recipient_kind']!r}")


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_conversation_context(self, conversation_id: str) -> ConversationContext | None:
        normalized_id = normalize_uuid(conversation_id)
        if normalized_id is None:
            return None

        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              a.id::text as conversation_id,
              a.applicant_id::text as applicant_id,
              a.status,
              j.id::text as job_id,
              j.title as job_title,
              j.organization_id::text as organization_id
            from job_applications a
            join jobs j on j.id = a.job_id
            where a.id = $1::uuid
            """,
            normalized_id,
        )
        if not row:
            return None
        return ConversationContext(
            conversation_id=row["conversation_id"],
            applicant_id=row["applicant_id"],
            organization_id=row["organization_id"],
            job_id=row["job_id"],
            job_title=row["job_title"],
            status=row["status"],
        )

    async def append_message(
        self,
        *,
        conversation_id: str,
        sender_id: str,
        sender_kind: PartyKind,
        recipient_id: str,
        recipient_kind: PartyKind,
        content: str,
    ) -> dict[str, Any]:
        normalized_content = validate_message_content(content)
        normalized_id = normalize_uuid(conversation_id)
        if normalized_id is None:
            raise RepositoryNotFoundError("Job application not found")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                # Row lock serialises appends per conversation so created_at stays monotonic.
                locked = await conn.fetchval(
                    "select id from job_applications where id = $1::uuid for update",
                    normalized_id,
                )
                if locked is None:
                    raise RepositoryNotFoundError("Job application not found")
                row = await conn.fetchrow(
                    """
                    insert into messages (
                      conversation_id,
                      sender_id,
                      sender_kind,
                      recipient_id,
                      recipient_kind,
                      content,
                      created_at
                    )
                    select
                      $1::uuid,
                      $2::uuid,
                      $3,
                      $4::uuid,
                      $5,
                      $6,
                      greatest(
                        clock_timestamp(),
                        coalesce(
                          (select max(created_at) from messages where conversation_id = $1::uuid)
                            + interval '1 microsecond',
                          clock_timestamp()
                        )
                      )
                    returning
                      id,
                      conversation_id::text as conversation_id,
                      sender_id::text as sender_id,
                      sender_kind,
                      recipient_id::text as recipient_id,
                      recipient_kind,
                      content,
                      read,
                      created_at
                    """,
                    normalized_id,
                    sender_id,
                    sender_kind.value,
                    recipient_id,
                    recipient_kind.value,
                    normalized_content,
                )
        return self._message_row_to_dict(row)

    async def list_messages(
        self,
        *,
        conversation_id: str,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        normalized_id = normalize_uuid(conversation_id)
        if normalized_id is None:
            raise RepositoryNotFoundError("Job application not found")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                rows = await conn.fetch(
                    """
                    select
                      id,
                      conversation_id::text as conversation_id,
                      sender_id::text as sender_id,
                      sender_kind,
                      recipient_id::text as recipient_id,
                      recipient_kind,
                      content,
                      read,
                      created_at
                    from messages
                    where conversation_id = $1::uuid
                    order by created_at desc, id desc
                    limit $2
                    offset $3
                    """,
                    normalized_id,
                    limit,
                    offset,
                )
                total = await conn.fetchval(
                    "select count(*) from messages where conversation_id = $1::uuid",
                    normalized_id,
                )
        return [self._message_row_to_dict(row) for row in rows], int(total or 0)

    async def mark_messages_read(
        self,
        *,
        conversation_id: str,
        recipient_id: str,
        recipient_kind: PartyKind,
    ) -> int:
        pool = await self._get_pool()
        updated = await pool.fetchval(
            """
            with updated as (
              update messages
              set read = true
              where conversation_id = $1::uuid
                and recipient_id = $2::uuid
                and recipient_kind = $3
                and read = false
              returning 1
            )
            select count(*) from updated
            """,
            conversation_id,
            recipient_id,
            recipient_kind.value,
        )
        return int(updated or 0)

    async def count_unread_messages(self, *, recipient_id: str, recipient_kind: PartyKind) -> int:
        normalized_id = normalize_uuid(recipient_id)
        if normalized_id is None:
            return 0

        pool = await self._get_pool()
        count = await pool.fetchval(
            """
            select count(*)
            from messages
            where recipient_id = $1::uuid
              and recipient_kind = $2
              and read = false
            """,
            normalized_id,
            recipient_kind.value,
        )
        return int(count or 0)

    async def touch_conversation(self, conversation_id: str) -> None:
        pool = await self._get_pool()
        await pool.execute(
            "update job_applications set last_activity_at = now() where id = $1::uuid",
            conversation_id,
        )

    async def list_conversation_summaries(
        self,
        *,
        party_id: str,
        party_kind: PartyKind,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        normalized_id = normalize_uuid(party_id)
        if normalized_id is None:
            return [], 0

        if party_kind is PartyKind.APPLICANT:
            scope_sql = "a.applicant_id = $1::uuid"
        else:
            scope_sql = "j.organization_id = $1::uuid"

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                rows = await conn.fetch(
                    f"""
                    select
                      a.id::text as conversation_id,
                      a.status,
                      a.last_activity_at,
                      a.applicant_id::text as applicant_id,
                      ap.first_name as applicant_first_name,
                      ap.last_name as applicant_last_name,
                      j.id::text as job_id,
                      j.title as job_title,
                      j.organization_id::text as organization_id,
                      o.name as organization_name,
                      lm.id as last_message_id,
                      lm.content as last_message_content,
                      lm.created_at as last_message_created_at,
                      lm.sender_id::text as last_message_sender_id,
                      lm.sender_kind as last_message_sender_kind,
                      uc.unread_count
                    from job_applications a
                    join jobs j on j.id = a.job_id
                    left join organizations o on o.id = j.organization_id
                    left join applicants ap on ap.id = a.applicant_id
                    join lateral (
                      select m.id, m.content, m.created_at, m.sender_id, m.sender_kind
                      from messages m
                      where m.conversation_id = a.id
                      order by m.created_at desc, m.id desc
                      limit 1
                    ) lm on true
                    cross join lateral (
                      select count(*) as unread_count
                      from messages m
                      where m.conversation_id = a.id
                        and m.recipient_id = $1::uuid
                        and m.recipient_kind = $2
                        and m.read = false
                    ) uc
                    where {scope_sql}
                    order by lm.created_at desc, lm.id desc
                    limit $3
                    offset $4
                    """,
                    normalized_id,
                    party_kind.value,
                    limit,
                    offset,
                )
                total = await conn.fetchval(
                    f"""
                    select count(*)
                    from job_applications a
                    join jobs j on j.id = a.job_id
                    where {scope_sql}
                      and exists (select 1 from messages m where m.conversation_id = a.id)
                    """,
                    normalized_id,
                )

        return [self._summary_row_to_dict(row) for row in rows], int(total or 0)

    async def create_notification(self, notification: dict[str, Any]) -> dict[str, Any]:
        created = await self.create_notifications([notification])
        return created[0]

    async def create_notifications(self, notifications: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not notifications:
            return []
        for notification in notifications:
            validate_notification(notification)

        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            insert into notifications (recipient_id, recipient_kind, type, title, message, metadata)
            select batch.recipient_id, batch.recipient_kind, batch.type, batch.title, batch.message, batch.metadata
            from unnest($1::uuid[], $2::text[], $3::text[], $4::text[], $5::text[], $6::jsonb[])
              as batch(recipient_id, recipient_kind, type, title, message, metadata)
            returning
              id::text as id,
              recipient_id::text as recipient_id,
              recipient_kind,
              type,
              title,
              message,
              metadata,
              read,
              created_at
            """,
            [n["recipient_id"] for n in notifications],
            [n["recipient_kind"] for n in notifications],
            [n["type"] for n in notifications],
            [n["title"] for n in notifications],
            [n["message"] for n in notifications],
            [json.dumps(n.get("metadata") or {}, default=str) for n in notifications],
        )
        return [self._notification_row_to_dict(row) for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JM_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _message_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "conversation_id": row["conversation_id"],
            "sender_id": row["sender_id"],
            "sender_kind": row["sender_kind"],
            "recipient_id": row["recipient_id"],
            "recipient_kind": row["recipient_kind"],
            "content": row["content"],
            "read": row["read"],
            "created_at": row["created_at"],
        }

    @staticmethod
    def _summary_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        first_name = row["applicant_first_name"] or ""
        last_name = row["applicant_last_name"] or ""
        return {
            "conversation_id": row["conversation_id"],
            "status": row["status"],
            "last_activity_at": row["last_activity_at"],
            "applicant_id": row["applicant_id"],
            "applicant_name": f"{first_name} {last_name}".strip() or None,
            "job_id": row["job_id"],
            "job_title": row["job_title"],
            "organization_id": row["organization_id"],
            "organization_name": row["organization_name"],
            "last_message_id": row["last_message_id"],
            "last_message_content": row["last_message_content"],
            "last_message_created_at": row["last_message_created_at"],
            "last_message_sender_id": row["last_message_sender_id"],
            "last_message_sender_kind": row["last_message_sender_kind"],
            "unread_count": int(row["unread_count"] or 0),
        }

    @staticmethod
    def _notification_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        metadata = row["metadata"]
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except json.JSONDecodeError:
                metadata = {}
        return {
            "id": row["id"],
            "recipient_id": row["recipient_id"],
            "recipient_kind": row["recipient_kind"],
            "type": row["type"],
            "title": row["title"],
            "message": row["message"],
            "metadata": metadata or {},
            "read": row["read"],
            "created_at": row["created_at"],
        }


@lru_cache
def get_repository() -> PostgresRepository | InMemoryRepository:
    settings = get_settings()
    if settings.repository_backend == "memory":
        from jobchat.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
