#!/usr/bin/env python3
"""Emit the Postgres DDL for the talentmatch mirror tables."""

from __future__ import annotations

import argparse
import re

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")
WATCHED_TABLES = ("candidates", "jobs", "applications")


def _identifier(value: str, label: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"{label} must be a lowercase SQL identifier: {value!r}")
    return value


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, schema: str = "public", channel: str = "talentmatch_changes", with_triggers: bool = True) -> str:
    schema = _identifier(schema, "schema")
    channel = _identifier(channel, "channel")

    statements = [
        f"""-- talentmatch mirror schema
create schema if not exists {schema};
set search_path to {schema};

create table if not exists profiles (
  id text primary key,
  email text,
  first_name text,
  last_name text,
  location text,
  user_type text check (user_type in ('candidate', 'company')),
  company_name text,
  created_at timestamptz not null default now()
);

create table if not exists candidates (
  id text primary key,
  bio text,
  address text,
  email_from_cv text,
  phone_number text,
  github_url text,
  linkedin_url text,
  portfolio_url text,
  skills text[],
  education jsonb,
  work_experience jsonb,
  certifications text[],
  experience_years double precision,
  cv_content_hash text,
  cv_hash text,
  cv_id text,
  cv_file_name text,
  cv_file_type text,
  parsed_cv_data jsonb,
  cv_embeddings jsonb,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);

create index if not exists candidates_cv_hash_idx on candidates (cv_hash);

create table if not exists jobs (
  id text primary key,
  company_id text not null,
  title text not null,
  description text not null,
  location text,
  remote_option boolean not null default false,
  skills_required text[] not null default '{{}}',
  requirements text[] not null default '{{}}',
  parsed_job_data jsonb not null default '{{}}'::jsonb,
  job_text text,
  job_hash text,
  job_embeddings jsonb,
  status text not null default 'active' check (status in ('active', 'inactive')),
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);

create index if not exists jobs_company_id_idx on jobs (company_id, created_at desc);

create table if not exists applications (
  id bigserial primary key,
  candidate_id text not null,
  job_id text not null,
  match_score double precision,
  status text not null default 'applied',
  applied_at timestamptz not null default now(),
  unique (candidate_id, job_id)
);"""
    ]

    if with_triggers:
        statements.append(
            f"""create or replace function talentmatch_notify_change() returns trigger
language plpgsql as $$
declare
  row_data jsonb;
  owner text;
begin
  if tg_op = 'DELETE' then
    row_data := to_jsonb(old);
  else
    row_data := to_jsonb(new);
  end if;
  owner := case tg_table_name
    when 'jobs' then row_data ->> 'company_id'
    when 'applications' then row_data ->> 'candidate_id'
    else row_data ->> 'id'
  end;
  perform pg_notify(
    {_quote_sql(channel)},
    jsonb_build_object(
      'table', tg_table_name,
      'operation', tg_op,
      'id', row_data ->> 'id',
      'owner_id', owner
    )::text
  );
  return null;
end;
$$;"""
        )
        for table in WATCHED_TABLES:
            statements.append(
                f"""drop trigger if exists {table}_notify_change on {table};
create trigger {table}_notify_change
after insert or update or delete on {table}
for each row execute function talentmatch_notify_change();"""
            )

    return "\n\n".join(statements) + "\n"


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL for the talentmatch mirror tables.")
    parser.add_argument("--schema", default="public", help="Target Postgres schema")
    parser.add_argument(
        "--channel",
        default="talentmatch_changes",
        help="LISTEN/NOTIFY channel used for change notifications (TM_CHANGE_CHANNEL)",
    )
    parser.add_argument(
        "--no-triggers",
        action="store_true",
        help="Skip the change-notification trigger function and triggers",
    )
    args = parser.parse_args()

    try:
        sql = render_sql(schema=args.schema, channel=args.channel, with_triggers=not args.no_triggers)
    except ValueError as exc:
        parser.error(str(exc))
    print(sql, end="")


if __name__ == "__main__":
    main()
