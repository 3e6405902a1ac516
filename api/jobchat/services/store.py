from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from jobchat.core.auth import PartyKind
from jobchat.services.repository import (
    ConversationContext,
    RepositoryNotFoundError,
    normalize_uuid,
    validate_message_content,
    validate_notification,
)

_TIE_BREAK = timedelta(microseconds=1)


@dataclass(slots=True)
class _Application:
    id: str
    applicant_id: str
    job_id: str
    status: str = "pending"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryRepository:
    """Process-local repository for local runs and tests.

    Exposes the same coroutine interface as ``PostgresRepository``. None of the
    mutating methods await internally, so each one runs atomically on the
    event loop.
    """

    def __init__(self) -> None:
        self.organizations: dict[str, dict[str, Any]] = {}
        self.applicants: dict[str, dict[str, Any]] = {}
        self.jobs: dict[str, dict[str, Any]] = {}
        self.applications: dict[str, _Application] = {}
        self.messages: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self._message_ids = itertools.count(1)

    def add_organization(self, name: str, organization_id: str | None = None) -> str:
        organization_id = organization_id or str(uuid4())
        self.organizations[organization_id] = {"id": organization_id, "name": name}
        return organization_id

    def add_applicant(self, first_name: str, last_name: str, applicant_id: str | None = None) -> str:
        applicant_id = applicant_id or str(uuid4())
        self.applicants[applicant_id] = {
            "id": applicant_id,
            "first_name": first_name,
            "last_name": last_name,
        }
        return applicant_id

    def add_job(self, organization_id: str, title: str, job_id: str | None = None) -> str:
        job_id = job_id or str(uuid4())
        self.jobs[job_id] = {"id": job_id, "organization_id": organization_id, "title": title}
        return job_id

    def add_application(
        self,
        applicant_id: str,
        job_id: str,
        status: str = "pending",
        application_id: str | None = None,
    ) -> str:
        application_id = application_id or str(uuid4())
        self.applications[application_id] = _Application(
            id=application_id,
            applicant_id=applicant_id,
            job_id=job_id,
            status=status,
        )
        return application_id

    def remove_application(self, application_id: str) -> None:
        self.applications.pop(application_id, None)
        self.messages = [m for m in self.messages if m["conversation_id"] != application_id]

    async def close(self) -> None:
        return None

    async def get_conversation_context(self, conversation_id: str) -> ConversationContext | None:
        application = self.applications.get(normalize_uuid(conversation_id) or "")
        if application is None:
            return None
        job = self.jobs.get(application.job_id)
        if job is None:
            return None
        return ConversationContext(
            conversation_id=application.id,
            applicant_id=application.applicant_id,
            organization_id=job["organization_id"],
            job_id=job["id"],
            job_title=job["title"],
            status=application.status,
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
        application = self.applications.get(normalize_uuid(conversation_id) or "")
        if application is None:
            raise RepositoryNotFoundError("Job application not found")

        created_at = datetime.now(timezone.utc)
        latest = max(
            (m["created_at"] for m in self.messages if m["conversation_id"] == application.id),
            default=None,
        )
        if latest is not None and created_at <= latest:
            created_at = latest + _TIE_BREAK

        message = {
            "id": next(self._message_ids),
            "conversation_id": application.id,
            "sender_id": sender_id,
            "sender_kind": sender_kind.value,
            "recipient_id": recipient_id,
            "recipient_kind": recipient_kind.value,
            "content": normalized_content,
            "read": False,
            "created_at": created_at,
        }
        self.messages.append(message)
        return dict(message)

    async def list_messages(
        self,
        *,
        conversation_id: str,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        normalized_id = normalize_uuid(conversation_id)
        rows = [m for m in self.messages if m["conversation_id"] == normalized_id]
        rows.sort(key=lambda m: (m["created_at"], m["id"]), reverse=True)
        return [dict(m) for m in rows[offset : offset + limit]], len(rows)

    async def mark_messages_read(
        self,
        *,
        conversation_id: str,
        recipient_id: str,
        recipient_kind: PartyKind,
    ) -> int:
        normalized_id = normalize_uuid(conversation_id)
        updated = 0
        for message in self.messages:
            if (
                message["conversation_id"] == normalized_id
                and message["recipient_id"] == recipient_id
                and message["recipient_kind"] == recipient_kind.value
                and not message["read"]
            ):
                message["read"] = True
                updated += 1
        return updated

    async def count_unread_messages(self, *, recipient_id: str, recipient_kind: PartyKind) -> int:
        return sum(
            1
            for m in self.messages
            if m["recipient_id"] == recipient_id and m["recipient_kind"] == recipient_kind.value and not m["read"]
        )

    async def touch_conversation(self, conversation_id: str) -> None:
        application = self.applications.get(normalize_uuid(conversation_id) or "")
        if application is not None:
            application.last_activity_at = datetime.now(timezone.utc)

    async def list_conversation_summaries(
        self,
        *,
        party_id: str,
        party_kind: PartyKind,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        if party_kind is PartyKind.APPLICANT:
            candidates = {a.id: a for a in self.applications.values() if a.applicant_id == party_id}
        else:
            owned_jobs = {job_id for job_id, job in self.jobs.items() if job["organization_id"] == party_id}
            candidates = {a.id: a for a in self.applications.values() if a.job_id in owned_jobs}

        # One pass over the message log builds both the latest-message and unread indexes.
        latest: dict[str, dict[str, Any]] = {}
        unread: dict[str, int] = {}
        for message in self.messages:
            conversation_id = message["conversation_id"]
            if conversation_id not in candidates:
                continue
            current = latest.get(conversation_id)
            if current is None or (message["created_at"], message["id"]) > (current["created_at"], current["id"]):
                latest[conversation_id] = message
            if (
                not message["read"]
                and message["recipient_id"] == party_id
                and message["recipient_kind"] == party_kind.value
            ):
                unread[conversation_id] = unread.get(conversation_id, 0) + 1

        ordered = sorted(
            latest.items(),
            key=lambda item: (item[1]["created_at"], item[1]["id"]),
            reverse=True,
        )
        rows: list[dict[str, Any]] = []
        for conversation_id, last_message in ordered[offset : offset + limit]:
            application = candidates[conversation_id]
            job = self.jobs.get(application.job_id, {})
            organization = self.organizations.get(job.get("organization_id", ""), {})
            applicant = self.applicants.get(application.applicant_id, {})
            applicant_name = f"{applicant.get('first_name', '')} {applicant.get('last_name', '')}".strip()
            rows.append(
                {
                    "conversation_id": conversation_id,
                    "status": application.status,
                    "last_activity_at": application.last_activity_at,
                    "applicant_id": application.applicant_id,
                    "applicant_name": applicant_name or None,
                    "job_id": application.job_id,
                    "job_title": job.get("title"),
                    "organization_id": job.get("organization_id"),
                    "organization_name": organization.get("name"),
                    "last_message_id": last_message["id"],
                    "last_message_content": last_message["content"],
                    "last_message_created_at": last_message["created_at"],
                    "last_message_sender_id": last_message["sender_id"],
                    "last_message_sender_kind": last_message["sender_kind"],
                    "unread_count": unread.get(conversation_id, 0),
                }
            )
        return rows, len(ordered)

    async def create_notification(self, notification: dict[str, Any]) -> dict[str, Any]:
        created = await self.create_notifications([notification])
        return created[0]

    async def create_notifications(self, notifications: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for notification in notifications:
            validate_notification(notification)
        created: list[dict[str, Any]] = []
        for notification in notifications:
            record = {
                "id": str(uuid4()),
                "recipient_id": notification["recipient_id"],
                "recipient_kind": notification["recipient_kind"],
                "type": notification["type"],
                "title": notification["title"],
                "message": notification["message"],
                "metadata": dict(notification.get("metadata") or {}),
                "read": False,
                "created_at": datetime.now(timezone.utc),
            }
            self.notifications.append(record)
            created.append(dict(record))
        return created
