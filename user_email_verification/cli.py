# user_email_verification/cli.py
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from user_email_verification.engine import Requester, VerificationLink
from user_email_verification.exceptions import TokenInvalid, VerificationError
from user_email_verification.runtime import Context, get_context


def _section(title: str) -> None:
    print(f"=== {title} ===")


def _print_report(report: dict[str, Any]) -> None:
    _section("Escalation tick")
    print(f"  now               : {report['now']}")
    print(f"  reminder interval : {report['reminder_interval']}s")
    print()

    header = f"{'cohort':16} {'users':>6} {'batches':>8}  queue"
    print("  " + header)
    print("  " + "-" * len(header))
    for name, c in report["cohorts"].items():
        line = f"  {name:16} {c['users']:6d} {c['batches']:8d}  {c['queue']}"
        if c.get("error"):
            line += f"  (skipped: {c['error']})"
        print(line)
    print()


def _cmd_init_db(ctx: Context, args: argparse.Namespace) -> int:
    ctx.store.init_schema()
    print(f"initialised {ctx.config.database_path}")
    return 0


def _cmd_cron(ctx: Context, args: argparse.Namespace) -> int:
    report = ctx.scheduler.tick()
    if args.json:
        print(json.dumps(report.as_dict(), indent=2, sort_keys=True))
    else:
        _print_report(report.as_dict())
    return 0 if report.ok else 1


def _cmd_worker(ctx: Context, args: argparse.Namespace) -> int:
    from user_email_verification.queueing.worker import run as run_worker

    queues = [q.strip() for q in (args.queues or "").split(",") if q.strip()]
    run_worker(queues or None, burst=args.burst)
    return 0


def _cmd_link(ctx: Context, args: argparse.Namespace) -> int:
    engine = ctx.engine
    link = (
        engine.build_extended_verification_link(args.uid)
        if args.extended
        else engine.build_verification_link(args.uid)
    )
    print(link.url(ctx.config.mail.site_url))
    return 0


def _cmd_verify(ctx: Context, args: argparse.Namespace) -> int:
    try:
        link = VerificationLink.from_path(args.link)
    except TokenInvalid as err:
        print(f"error: {err}", file=sys.stderr)
        return 2
    outcome = ctx.engine.verify(link, Requester.anonymous())
    level, message = outcome.notice
    print(f"[{level}] {outcome.value}: {message}")
    return 0 if outcome.is_verified else 1


def _cmd_status(ctx: Context, args: argparse.Namespace) -> int:
    record = ctx.engine.load_verification(args.uid)
    if record is None:
        print(f"uid={args.uid}: no verification record")
        return 1
    _section(f"uid={record.user_id}")
    print(f"  verified          : {record.verified_at or 'no'}")
    print(f"  reminders sent    : {record.reminder_count}")
    print(f"  last reminder     : {record.last_reminder_at}")
    print(f"  verification due  : {ctx.engine.is_verification_needed(record.user_id)}")
    print(f"  reminder due      : {ctx.engine.is_reminder_needed(record.user_id)}")
    return 0


def _cmd_resend(ctx: Context, args: argparse.Namespace) -> int:
    sent = ctx.engine.resend_verification(args.name_or_email)
    print("sent" if sent else "not sent (no matching account needing verification)")
    return 0 if sent else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="user-email-verification",
        description="Email verification reminders, blocking and cleanup.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("init-db", help="Create the verification table")
    sp.set_defaults(func=_cmd_init_db)

    sp = sub.add_parser("cron", help="Run one escalation tick and enqueue batches")
    sp.add_argument("--json", action="store_true", help="Print the tick report as JSON")
    sp.set_defaults(func=_cmd_cron)

    sp = sub.add_parser("worker", help="Run an RQ worker for the escalation queues")
    sp.add_argument("queues", nargs="?", default="", help="Comma-separated queue names")
    sp.add_argument("--burst", action="store_true", help="Exit when the queues are empty")
    sp.set_defaults(func=_cmd_worker)

    sp = sub.add_parser("link", help="Print a verification link for a user")
    sp.add_argument("uid", type=int)
    sp.add_argument("--extended", action="store_true")
    sp.set_defaults(func=_cmd_link)

    sp = sub.add_parser("verify", help="Process a verification link path or URL")
    sp.add_argument("link")
    sp.set_defaults(func=_cmd_verify)

    sp = sub.add_parser("status", help="Show the verification record of a user")
    sp.add_argument("uid", type=int)
    sp.set_defaults(func=_cmd_status)

    sp = sub.add_parser("resend", help="Mail a new verification link to an account")
    sp.add_argument("name_or_email")
    sp.set_defaults(func=_cmd_resend)

    return p


def main(argv: list[str] | None = None, *, context: Context | None = None) -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)
    ctx = context or get_context()
    try:
        return int(args.func(ctx, args))
    except VerificationError as err:
        print(f"error: {err}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
