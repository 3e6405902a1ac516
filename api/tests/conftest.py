from __future__ import annotations

from dataclasses import dataclass

import pytest

from jobchat.core.auth import PartyKind, Principal
from jobchat.services.access_cache import AccessCache
from jobchat.services.messaging import MessagingService
from jobchat.services.read_state import ReadStateTracker
from jobchat.services.store import InMemoryRepository


@dataclass(slots=True)
class Marketplace:
    repo: InMemoryRepository
    organization_id: str
    job_id: str
    applicant_id: str
    outsider_id: str
    conversation_id: str
    empty_conversation_id: str

    @property
    def applicant(self) -> Principal:
        return Principal(subject=self.applicant_id, party_kind=PartyKind.APPLICANT)

    @property
    def organization(self) -> Principal:
        return Principal(subject=self.organization_id, party_kind=PartyKind.ORGANIZATION)

    @property
    def outsider(self) -> Principal:
        return Principal(subject=self.outsider_id, party_kind=PartyKind.APPLICANT)


def seed_marketplace() -> Marketplace:
    repo = InMemoryRepository()
    organization_id = repo.add_organization("Beacon Labs")
    job_id = repo.add_job(organization_id, "Data Engineer")
    other_job_id = repo.add_job(organization_id, "Platform Engineer")
    applicant_id = repo.add_applicant("Xavier", "Young")
    outsider_id = repo.add_applicant("Yara", "Stone")
    conversation_id = repo.add_application(applicant_id, job_id)
    empty_conversation_id = repo.add_application(outsider_id, other_job_id)
    return Marketplace(
        repo=repo,
        organization_id=organization_id,
        job_id=job_id,
        applicant_id=applicant_id,
        outsider_id=outsider_id,
        conversation_id=conversation_id,
        empty_conversation_id=empty_conversation_id,
    )


def make_service(
    repo: InMemoryRepository,
    *,
    cache: AccessCache | None = None,
    tracker: ReadStateTracker | None = None,
    page_size: int = 30,
) -> MessagingService:
    return MessagingService(
        repository=repo,
        access_cache=cache or AccessCache(ttl_seconds=300.0),
        read_state=tracker or ReadStateTracker(),
        page_size=page_size,
    )


@pytest.fixture
def market() -> Marketplace:
    return seed_marketplace()


@pytest.fixture
def service_factory():
    return make_service
