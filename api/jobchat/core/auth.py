from dataclasses import dataclass
from enum import Enum


class PartyKind(str, Enum):
    APPLICANT = "applicant"
    ORGANIZATION = "organization"

    @property
    def counterpart(self) -> "PartyKind":
        if self is PartyKind.APPLICANT:
            return PartyKind.ORGANIZATION
        return PartyKind.APPLICANT


# Account types issued by the legacy auth service.
PARTY_KIND_ALIASES: dict[str, PartyKind] = {
    "applicant": PartyKind.APPLICANT,
    "user": PartyKind.APPLICANT,
    "organization": PartyKind.ORGANIZATION,
    "business": PartyKind.ORGANIZATION,
}


@dataclass(slots=True, frozen=True)
class Principal:
    subject: str
    party_kind: PartyKind


def parse_party_kind(value: object) -> PartyKind | None:
    if not isinstance(value, str):
        return None
    return PARTY_KIND_ALIASES.get(value.strip().lower())
