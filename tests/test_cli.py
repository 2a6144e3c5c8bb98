# tests/test_cli.py
from __future__ import annotations

import json

import pytest

from user_email_verification.cli import main as cli_main
from user_email_verification.config import load_settings
from user_email_verification.runtime import Context, build_context


@pytest.fixture
def ctx(monkeypatch, tmp_path, accounts, mailer, work_queue, clock) -> Context:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("HASH_SALT", "cli-salt")
    monkeypatch.setenv("SITE_URL", "https://example.com/")
    monkeypatch.setenv("UEV_VALIDATE_INTERVAL", "300000")
    monkeypatch.setenv("UEV_NUM_REMINDERS", "2")
    monkeypatch.setenv("UEV_SKIP_ROLES", "administrator")
    monkeypatch.setenv("UEV_EXTENDED_ENABLE", "0")
    monkeypatch.setenv("UEV_BATCH_SIZE", "10")
    return build_context(
        load_settings(),
        accounts=accounts,
        mailer=mailer,
        queue=work_queue,
        clock=clock,
    )


def _run(ctx: Context, *argv: str) -> int:
    return cli_main(list(argv), context=ctx)


def test_init_db_and_status(ctx, capsys):
    assert _run(ctx, "init-db") == 0
    assert "cli.db" in capsys.readouterr().out

    assert _run(ctx, "status", "10") == 1
    assert "no verification record" in capsys.readouterr().out

    ctx.engine.create_verification(ctx.engine.accounts.add(10))
    assert _run(ctx, "status", "10") == 0
    out = capsys.readouterr().out
    assert "uid=10" in out
    assert "verification due  : True" in out


def test_cron_json_report(ctx, capsys, clock, work_queue):
    _run(ctx, "init-db")
    ctx.engine.create_verification(ctx.engine.accounts.add(10))
    clock.advance(ctx.policy.reminder_interval)
    capsys.readouterr()

    assert _run(ctx, "cron", "--json") == 0
    report = json.loads(capsys.readouterr().out)
    assert report["reminder_interval"] == 100000
    assert report["cohorts"]["reminders"]["users"] == 1
    assert report["cohorts"]["block_account"]["users"] == 0
    assert "delete_account" not in report["cohorts"]
    assert work_queue.for_queue("user_email_verification_reminders") == [[10]]


def test_cron_table_report(ctx, capsys):
    _run(ctx, "init-db")
    capsys.readouterr()
    assert _run(ctx, "cron") == 0
    out = capsys.readouterr().out
    assert "=== Escalation tick ===" in out
    assert "reminders" in out


def test_link_then_verify(ctx, capsys):
    _run(ctx, "init-db")
    ctx.engine.create_verification(ctx.engine.accounts.add(10))
    capsys.readouterr()

    assert _run(ctx, "link", "10") == 0
    url = capsys.readouterr().out.strip()
    assert url.startswith("https://example.com/user/email-verify/10/")

    assert _run(ctx, "verify", url) == 0
    assert "verified_ok" in capsys.readouterr().out

    assert _run(ctx, "verify", url) == 0
    assert "already_verified" in capsys.readouterr().out


def test_verify_rejects_garbage(ctx, capsys):
    assert _run(ctx, "verify", "/not/a/link") == 2
    assert "Not a verification link" in capsys.readouterr().err


def test_resend(ctx, capsys, mailer):
    _run(ctx, "init-db")
    ctx.engine.create_verification(ctx.engine.accounts.add(10, name="gina"))
    capsys.readouterr()

    assert _run(ctx, "resend", "gina") == 0
    assert capsys.readouterr().out.strip() == "sent"
    assert mailer.keys() == ["verify"]

    assert _run(ctx, "resend", "nobody") == 1


def test_account_directory_factory_resolution():
    from collections import OrderedDict

    from user_email_verification.accounts import load_account_directory

    assert isinstance(load_account_directory("collections:OrderedDict"), OrderedDict)
    assert isinstance(load_account_directory("collections.OrderedDict"), OrderedDict)
    with pytest.raises(ValueError):
        load_account_directory("  ")
