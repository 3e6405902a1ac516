from __future__ import annotations

import asyncio
import json
import os
import time
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest
from fastapi.testclient import TestClient

import jobchat.core.security as security
from jobchat.core.config import get_settings
from jobchat.main import app
from jobchat.services.access_cache import get_access_cache
from jobchat.services.read_state import get_read_state_tracker
from jobchat.services.repository import PostgresRepository, get_repository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"

ORGANIZATION_ID = "22222222-2222-2222-2222-222222222222"
APPLICANT_ID = "33333333-3333-3333-3333-333333333333"
OUTSIDER_ID = "44444444-4444-4444-4444-444444444444"
JOB_ID = "55555555-5555-5555-5555-555555555555"
APPLICATION_ID = "66666666-6666-6666-6666-666666666666"

APPLICANT = {"Authorization": "Bearer applicant-token"}
ORGANIZATION = {"Authorization": "Bearer organization-token"}
OUTSIDER = {"Authorization": "Bearer outsider-token"}

ACCOUNTS = {
    "applicant-token": {"id": APPLICANT_ID, "app_metadata": {"account_type": "applicant"}},
    "organization-token": {"id": ORGANIZATION_ID, "app_metadata": {"account_type": "organization"}},
    "outsider-token": {"id": OUTSIDER_ID, "app_metadata": {"account_type": "applicant"}},
}

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("JM_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JM_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset_database(database_url))


@pytest.fixture
def api_client(database_url: str, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    os.environ["JM_DATABASE_URL"] = database_url
    os.environ["JM_REPOSITORY_BACKEND"] = "postgres"
    os.environ["JM_AUTH_URL"] = "https://auth.example.test"
    os.environ["JM_AUTH_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()
    get_repository.cache_clear()
    get_access_cache.cache_clear()
    get_read_state_tracker.cache_clear()

    async def _fake_fetch(**kwargs: Any) -> dict[str, Any]:
        return ACCOUNTS[kwargs["token"]]

    monkeypatch.setattr(security, "_fetch_account", _fake_fetch)

    with TestClient(app) as client:
        yield client

    for name in ("JM_REPOSITORY_BACKEND", "JM_AUTH_URL", "JM_AUTH_ANON_KEY"):
        os.environ.pop(name, None)
    get_repository.cache_clear()
    get_access_cache.cache_clear()
    get_read_state_tracker.cache_clear()
    get_settings.cache_clear()


def test_send_list_and_unread_flow(api_client: TestClient, database_url: str) -> None:
    sent = api_client.post(
        f"/messages/{APPLICATION_ID}",
        json={"content": "  Thanks for applying  "},
        headers=ORGANIZATION,
    )
    assert sent.status_code == 201
    message = sent.json()
    assert message["content"] == "Thanks for applying"
    assert message["recipient_id"] == APPLICANT_ID
    assert message["recipient_kind"] == "applicant"

    assert api_client.get("/messages/unread/count", headers=APPLICANT).json() == {"count": 1}

    listed = api_client.get(f"/messages/{APPLICATION_ID}", headers=APPLICANT)
    assert listed.status_code == 200
    assert [m["id"] for m in listed.json()["messages"]] == [message["id"]]

    assert _wait_for_unread(api_client, APPLICANT, expected=0) == 0

    notifications = _run(_fetch_notifications(database_url))
    assert len(notifications) == 1
    assert notifications[0]["recipient_id"] == APPLICANT_ID
    assert notifications[0]["type"] == "NEW_MESSAGE"
    assert notifications[0]["metadata"]["message_id"] == message["id"]
    assert notifications[0]["metadata"]["job_title"] == "Research Engineer"


def test_rapid_messages_keep_strict_order(api_client: TestClient) -> None:
    for index in range(5):
        headers = APPLICANT if index % 2 == 0 else ORGANIZATION
        response = api_client.post(f"/messages/{APPLICATION_ID}", json={"content": f"m{index}"}, headers=headers)
        assert response.status_code == 201

    listed = api_client.get(f"/messages/{APPLICATION_ID}", headers=ORGANIZATION).json()["messages"]

    assert [m["content"] for m in listed] == ["m4", "m3", "m2", "m1", "m0"]
    created = [m["created_at"] for m in listed]
    assert created == sorted(created, reverse=True)
    assert len(set(created)) == len(created)


def test_outsider_and_missing_conversation(api_client: TestClient) -> None:
    assert api_client.get(f"/messages/{APPLICATION_ID}", headers=OUTSIDER).status_code == 403
    assert api_client.get("/messages/00000000-0000-0000-0000-000000000000", headers=APPLICANT).status_code == 404
    assert api_client.get("/messages/not-a-uuid", headers=APPLICANT).status_code == 404


def test_conversation_summaries_from_postgres(api_client: TestClient) -> None:
    empty = api_client.get("/messages/conversations", headers=APPLICANT).json()
    assert empty["conversations"] == []
    assert empty["pagination"]["total_items"] == 0

    api_client.post(f"/messages/{APPLICATION_ID}", json={"content": "Hello"}, headers=APPLICANT)
    api_client.post(f"/messages/{APPLICATION_ID}", json={"content": "Hi Ada"}, headers=ORGANIZATION)

    body = api_client.get("/messages/conversations", headers=APPLICANT).json()
    assert body["pagination"]["total_items"] == 1
    summary = body["conversations"][0]
    assert summary["application"]["id"] == APPLICATION_ID
    assert summary["counterpart"] == {"id": ORGANIZATION_ID, "kind": "organization", "name": "Example Labs"}
    assert summary["last_message"]["content"] == "Hi Ada"
    assert summary["last_message"]["is_own_message"] is False
    assert summary["unread_count"] == 1


def _wait_for_unread(client: TestClient, headers: dict[str, str], *, expected: int) -> int:
    count = -1
    for _ in range(40):
        count = client.get("/messages/unread/count", headers=headers).json()["count"]
        if count == expected:
            break
        time.sleep(0.05)
    return count


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _reset_database(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        await conn.execute(
            """
            truncate table notifications, messages, job_applications, jobs, applicants, organizations
            restart identity cascade
            """
        )
        await conn.execute(
            "insert into organizations (id, name) values ($1::uuid, 'Example Labs')",
            ORGANIZATION_ID,
        )
        await conn.execute(
            """
            insert into applicants (id, first_name, last_name)
            values ($1::uuid, 'Ada', 'Lovelace'), ($2::uuid, 'Grace', 'Hopper')
            """,
            APPLICANT_ID,
            OUTSIDER_ID,
        )
        await conn.execute(
            "insert into jobs (id, organization_id, title) values ($1::uuid, $2::uuid, 'Research Engineer')",
            JOB_ID,
            ORGANIZATION_ID,
        )
        await conn.execute(
            "insert into job_applications (id, applicant_id, job_id) values ($1::uuid, $2::uuid, $3::uuid)",
            APPLICATION_ID,
            APPLICANT_ID,
            JOB_ID,
        )
    finally:
        await conn.close()


async def _fetch_notifications(database_url: str) -> list[dict[str, Any]]:
    conn = await asyncpg.connect(database_url)
    try:
        rows = await conn.fetch(
            "select recipient_id::text as recipient_id, type, metadata from notifications order by created_at"
        )
    finally:
        await conn.close()
    return [
        {
            "recipient_id": row["recipient_id"],
            "type": row["type"],
            "metadata": json.loads(row["metadata"]) if isinstance(row["metadata"], str) else row["metadata"],
        }
        for row in rows
    ]


def test_notification_batch_round_trip(database_url: str) -> None:
    async def run() -> list[dict[str, Any]]:
        repo = PostgresRepository(database_url=database_url, min_pool_size=1, max_pool_size=2)
        try:
            return await repo.create_notifications(
                [
                    {
                        "recipient_id": recipient_id,
                        "recipient_kind": kind,
                        "type": "NEW_MESSAGE",
                        "title": "New Message",
                        "message": "You have a new message",
                        "metadata": {"conversation_id": APPLICATION_ID},
                    }
                    for recipient_id, kind in ((APPLICANT_ID, "applicant"), (ORGANIZATION_ID, "organization"))
                ]
            )
        finally:
            await repo.close()

    created = _run(run())

    assert sorted(n["recipient_kind"] for n in created) == ["applicant", "organization"]
    assert all(n["metadata"] == {"conversation_id": APPLICATION_ID} for n in created)
    assert len(_run(_fetch_notifications(database_url))) == 2


def test_huge_page_is_rejected_before_querying(api_client: TestClient) -> None:
    api_client.post(f"/messages/{APPLICATION_ID}", json={"content": "Hello"}, headers=APPLICANT)

    huge = "100000000000000000000"
    assert api_client.get(f"/messages/conversations?page={huge}", headers=APPLICANT).status_code == 422
    assert api_client.get(f"/messages/{APPLICATION_ID}?page={huge}", headers=APPLICANT).status_code == 422
    assert api_client.get("/messages/conversations", headers=APPLICANT).json()["pagination"]["total_items"] == 1
