from __future__ import annotations

import asyncio

import pytest

from jobchat.core.auth import PartyKind, Principal
from jobchat.schemas.pagination import build_pagination
from jobchat.services.repository import (
    PostgresRepository,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    page_offset,
)


def _send_all(service, sends) -> None:
    async def run() -> None:
        for principal, conversation_id, content in sends:
            await service.send_message(principal, conversation_id, content)

    asyncio.run(run())


def test_conversation_without_messages_is_hidden_from_both_parties(market, service_factory) -> None:
    service = service_factory(market.repo)

    applicant_rows, applicant_total = asyncio.run(service.list_conversations(market.outsider, page=1))
    org_rows, org_total = asyncio.run(service.list_conversations(market.organization, page=1))

    assert (applicant_rows, applicant_total) == ([], 0)
    assert (org_rows, org_total) == ([], 0)


def test_summary_carries_counterpart_job_and_unread(market, service_factory) -> None:
    service = service_factory(market.repo)
    _send_all(
        service,
        [
            (market.applicant, market.conversation_id, "Hello"),
            (market.organization, market.conversation_id, "Thanks for applying"),
            (market.organization, market.conversation_id, "Are you free Tuesday?"),
        ],
    )

    applicant_rows, _ = asyncio.run(service.list_conversations(market.applicant, page=1))
    org_rows, _ = asyncio.run(service.list_conversations(market.organization, page=1))

    applicant_view = applicant_rows[0]
    assert applicant_view.application.id == market.conversation_id
    assert applicant_view.application.status == "pending"
    assert applicant_view.application.applicant.name == "Xavier Young"
    assert applicant_view.application.job.title == "Data Engineer"
    assert applicant_view.application.job.organization.name == "Beacon Labs"
    assert applicant_view.counterpart.kind is PartyKind.ORGANIZATION
    assert applicant_view.counterpart.name == "Beacon Labs"
    assert applicant_view.unread_count == 2
    assert applicant_view.last_message.content == "Are you free Tuesday?"
    assert applicant_view.last_message.is_own_message is False

    org_view = org_rows[0]
    assert org_view.counterpart.kind is PartyKind.APPLICANT
    assert org_view.counterpart.id == market.applicant_id
    assert org_view.counterpart.name == "Xavier Young"
    assert org_view.unread_count == 1
    assert org_view.last_message.is_own_message is True


def test_conversations_sorted_by_latest_message(market, service_factory) -> None:
    repo = market.repo
    job_ids = [repo.add_job(market.organization_id, f"Role {index}") for index in range(3)]
    applicants = [repo.add_applicant(f"Person{index}", "Tester") for index in range(3)]
    conversations = [repo.add_application(applicant, job) for applicant, job in zip(applicants, job_ids)]
    service = service_factory(repo)
    principals = [Principal(subject=applicant, party_kind=PartyKind.APPLICANT) for applicant in applicants]

    _send_all(
        service,
        [
            (principals[0], conversations[0], "first"),
            (principals[1], conversations[1], "second"),
            (principals[2], conversations[2], "third"),
            (principals[0], conversations[0], "bump"),
        ],
    )

    rows, total = asyncio.run(service.list_conversations(market.organization, page=1))

    assert total == 3
    assert [row.application.id for row in rows] == [conversations[0], conversations[2], conversations[1]]


def test_pagination_totals_match_filtered_set(market, service_factory) -> None:
    repo = market.repo
    conversations: list[tuple[Principal, str]] = []
    for index in range(7):
        job_id = repo.add_job(market.organization_id, f"Role {index}")
        applicant_id = repo.add_applicant(f"Person{index}", "Tester")
        conversations.append(
            (
                Principal(subject=applicant_id, party_kind=PartyKind.APPLICANT),
                repo.add_application(applicant_id, job_id),
            )
        )
    # Applications with no messages must not count toward totals.
    for index in range(4):
        job_id = repo.add_job(market.organization_id, f"Silent {index}")
        repo.add_application(repo.add_applicant("Silent", str(index)), job_id)

    service = service_factory(repo, page_size=3)
    _send_all(service, [(principal, conversation_id, "hi") for principal, conversation_id in conversations])

    seen: list[str] = []
    item_count = 0
    page = 1
    while True:
        rows, total = asyncio.run(service.list_conversations(market.organization, page=page))
        pagination = build_pagination(page=page, page_size=3, total_items=total)
        item_count += len(rows)
        seen.extend(row.application.id for row in rows)
        if not pagination.has_next_page:
            break
        page += 1

    assert total == 7
    assert pagination.total_pages == 3
    assert item_count == total
    assert len(set(seen)) == 7


def test_page_beyond_end_is_empty_but_keeps_total(market, service_factory) -> None:
    service = service_factory(market.repo, page_size=2)
    _send_all(service, [(market.applicant, market.conversation_id, "hi")])

    rows, total = asyncio.run(service.list_conversations(market.applicant, page=5))

    assert rows == []
    assert total == 1


def test_build_pagination_flags() -> None:
    first = build_pagination(page=1, page_size=30, total_items=61)
    middle = build_pagination(page=2, page_size=30, total_items=61)
    empty = build_pagination(page=1, page_size=30, total_items=0)

    assert (first.total_pages, first.has_next_page, first.has_prev_page) == (3, True, False)
    assert (middle.has_next_page, middle.has_prev_page) == (True, True)
    assert (empty.total_pages, empty.has_next_page, empty.has_prev_page) == (0, False, False)


def test_page_offset_rejects_values_beyond_bigint() -> None:
    assert page_offset(3, 30) == 60
    with pytest.raises(RepositoryValidationError, match="out of range"):
        page_offset(10**20, 30)
    with pytest.raises(RepositoryValidationError):
        page_offset(0, 30)


def test_huge_page_is_a_validation_error_not_an_empty_list(market, service_factory) -> None:
    service = service_factory(market.repo)
    _send_all(service, [(market.applicant, market.conversation_id, "hi")])

    with pytest.raises(RepositoryValidationError):
        asyncio.run(service.list_conversations(market.applicant, page=10**20))
    with pytest.raises(RepositoryValidationError):
        asyncio.run(service.list_messages(market.applicant, market.conversation_id, page=10**20))


def test_postgres_repository_rejects_malformed_ids_before_querying() -> None:
    repo = PostgresRepository(database_url=None, min_pool_size=1, max_pool_size=1)

    assert asyncio.run(repo.get_conversation_context("not-a-uuid")) is None
    assert asyncio.run(
        repo.list_conversation_summaries(party_id="admin-1", party_kind=PartyKind.APPLICANT, limit=30, offset=0)
    ) == ([], 0)
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(repo.list_messages(conversation_id="not-a-uuid", limit=30, offset=0))
    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(repo.get_conversation_context("66666666-6666-6666-6666-666666666666"))
