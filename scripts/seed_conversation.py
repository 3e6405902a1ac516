#!/usr/bin/env python3
"""Emit deterministic SQL that seeds one applicant, organization, job and application."""

from __future__ import annotations

import argparse

DEFAULT_APPLICANT_ID = "33333333-3333-3333-3333-333333333333"
DEFAULT_ORGANIZATION_ID = "22222222-2222-2222-2222-222222222222"
DEFAULT_JOB_ID = "55555555-5555-5555-5555-555555555555"
DEFAULT_APPLICATION_ID = "66666666-6666-6666-6666-666666666666"


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(
    *,
    applicant_id: str,
    applicant_name: str,
    organization_id: str,
    organization_name: str,
    job_id: str,
    job_title: str,
    application_id: str,
) -> str:
    first_name, _, last_name = applicant_name.partition(" ")
    return f"""-- Messaging demo conversation seed
-- Apply db/schema.sql first.

insert into organizations (id, name)
values ({_quote_sql(organization_id)}::uuid, {_quote_sql(organization_name)})
on conflict (id) do update set name = excluded.name;

insert into applicants (id, first_name, last_name)
values ({_quote_sql(applicant_id)}::uuid, {_quote_sql(first_name)}, {_quote_sql(last_name)})
on conflict (id) do update set first_name = excluded.first_name, last_name = excluded.last_name;

insert into jobs (id, organization_id, title)
values ({_quote_sql(job_id)}::uuid, {_quote_sql(organization_id)}::uuid, {_quote_sql(job_title)})
on conflict (id) do update set title = excluded.title;

insert into job_applications (id, applicant_id, job_id)
values ({_quote_sql(application_id)}::uuid, {_quote_sql(applicant_id)}::uuid, {_quote_sql(job_id)}::uuid)
on conflict (id) do nothing;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to seed a demo messaging conversation.")
    parser.add_argument("--applicant-id", default=DEFAULT_APPLICANT_ID)
    parser.add_argument("--applicant-name", default="Ada Lovelace")
    parser.add_argument("--organization-id", default=DEFAULT_ORGANIZATION_ID)
    parser.add_argument("--organization-name", default="Example Labs")
    parser.add_argument("--job-id", default=DEFAULT_JOB_ID)
    parser.add_argument("--job-title", default="Research Engineer")
    parser.add_argument("--application-id", default=DEFAULT_APPLICATION_ID)
    args = parser.parse_args()

    print(
        render_sql(
            applicant_id=args.applicant_id,
            applicant_name=args.applicant_name,
            organization_id=args.organization_id,
            organization_name=args.organization_name,
            job_id=args.job_id,
            job_title=args.job_title,
            application_id=args.application_id,
        )
    )


if __name__ == "__main__":
    main()
