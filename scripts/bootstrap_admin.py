#!/usr/bin/env python3
"""Emit deterministic SQL that seeds the first platform admin."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, email: str, role: str) -> str:
    email_value = _quote_sql(email.strip().lower())

    statements = [
        "-- Solarpunk Taskforce admin bootstrap SQL",
        "-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).",
        "",
        "insert into admin_emails (email)",
        f"values ({email_value})",
        "on conflict (email) do nothing;",
    ]
    if role == "superadmin":
        statements += [
            "",
            "insert into app_settings (id, superadmin_email)",
            f"values (true, {email_value})",
            "on conflict (id) do update set superadmin_email = excluded.superadmin_email;",
        ]
    return "\n".join(statements) + "\n"


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to bootstrap a platform admin email.")
    parser.add_argument("--email", required=True, help="Email address of the account to promote")
    parser.add_argument(
        "--role",
        choices=["admin", "superadmin"],
        default="admin",
        help="superadmin also records the email in app_settings.superadmin_email",
    )
    args = parser.parse_args()

    if "@" not in args.email:
        parser.error("--email must be an email address")

    print(render_sql(email=args.email, role=args.role))


if __name__ == "__main__":
    main()
