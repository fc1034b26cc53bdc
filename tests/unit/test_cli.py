"""Unit tests for the command-line interface."""

import logging

import pytest
import structlog

from mail_mirror import cli
from mail_mirror.config import get_settings
from mail_mirror.models import INBOX, Label, LabelKind
from mail_mirror.store import MailStore


@pytest.fixture
def db_path(tmp_path, make_message):
    path = tmp_path / "cli.sqlite3"
    store = MailStore(path)
    store.initialize()
    store.upsert_labels([Label(id=INBOX, name="INBOX", kind=LabelKind.SYSTEM)])
    store.upsert_messages(
        [
            make_message("m1", "t1", 1700000000000, subject="Invoice 42"),
            make_message("m2", "t1", 1700000100000, subject="Re: Invoice 42", is_read=True),
            make_message("m3", "t2", 1690000000000, subject="Lunch"),
        ],
        INBOX,
    )
    return path


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("MAIL_MIRROR_GMAIL_TOKEN_PATH", str(tmp_path / "token.json"))
    monkeypatch.setenv("MAIL_MIRROR_GMAIL_CREDENTIALS_PATH", str(tmp_path / "credentials.json"))
    monkeypatch.setenv("MAIL_MIRROR_LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_labels(db_path, capsys) -> None:
    assert cli.main(["labels", "--db", str(db_path)]) == 0

    assert "INBOX\tsystem\tInbox" in capsys.readouterr().out


def test_list_shows_one_row_per_thread(db_path, capsys) -> None:
    assert cli.main(["list", "--db", str(db_path)]) == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 2
    assert "Re: Invoice 42" in lines[0]
    assert lines[0].startswith("READ")
    assert "Lunch" in lines[1]


def test_thread(db_path, capsys) -> None:
    assert cli.main(["thread", "t1", "--db", str(db_path)]) == 0

    out = capsys.readouterr().out
    assert out.index("Re: Invoice 42") < out.index("Subject: Invoice 42")


def test_thread_not_found(db_path, capsys) -> None:
    assert cli.main(["thread", "nope", "--db", str(db_path)]) == 1

    assert "Thread not found" in capsys.readouterr().err


def test_search(db_path, capsys) -> None:
    assert cli.main(["search", "lunch", "--db", str(db_path)]) == 0

    out = capsys.readouterr().out
    assert "Lunch" in out
    assert "Invoice" not in out


def test_stats(db_path, capsys) -> None:
    assert cli.main(["stats", "--db", str(db_path)]) == 0

    out = capsys.readouterr().out
    assert "Total messages: 3" in out
    assert "Unread messages: 2" in out
    assert "Threads: 2" in out
    assert "- INBOX: 3 messages (2 unread)" in out


def test_auth_reset(tmp_path, capsys) -> None:
    token = tmp_path / "token.json"
    token.write_text("{}", encoding="utf-8")

    assert cli.main(["auth", "reset"]) == 0
    assert not token.exists()
    assert "Removed cached token" in capsys.readouterr().out


def test_commands_needing_gmail_fail_without_credentials(db_path, capsys) -> None:
    assert cli.main(["sync", "--once", "--db", str(db_path)]) == 1

    assert "credentials file not found" in capsys.readouterr().err


def test_unknown_command_exits() -> None:
    with pytest.raises(SystemExit):
        cli.main(["bogus"])


@pytest.mark.parametrize(
    ("argv", "env_debug", "expected"),
    [
        (["labels"], None, logging.WARNING),
        (["labels"], "true", logging.DEBUG),
        (["--debug", "labels"], None, logging.DEBUG),
    ],
)
def test_debug_switches_log_level(db_path, monkeypatch, argv, env_debug, expected) -> None:
    if env_debug is not None:
        monkeypatch.setenv("MAIL_MIRROR_DEBUG", env_debug)
        get_settings.cache_clear()
    levels = []
    monkeypatch.setattr(structlog, "make_filtering_bound_logger", levels.append)
    monkeypatch.setattr(structlog, "configure", lambda **kwargs: None)

    assert cli.main([*argv, "--db", str(db_path)]) == 0

    assert levels == [expected]
