"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from mail_mirror.config import Settings
from mail_mirror.exceptions import GmailAPIError
from mail_mirror.models import INBOX, UNREAD, Label, LabelKind, Message
from mail_mirror.store import MailStore


class FakeMailbox:
    """In-memory stand-in for the Gmail facade.

    ``fail`` holds operation names that raise ``GmailAPIError``; ``calls``
    records every mutating call in order.
    """

    def __init__(self) -> None:
        self.labels: list[Label] = [
            Label(id=INBOX, name="INBOX", kind=LabelKind.SYSTEM),
            Label(id="SENT", name="SENT", kind=LabelKind.SYSTEM),
        ]
        self.messages: dict[str, Message] = {}
        self.message_labels: dict[str, set[str]] = {}
        self.trashed: set[str] = set()
        self.sent: list[dict[str, str]] = []
        self.signature: str | None = None
        self.fail: set[str] = set()
        self.calls: list[tuple[Any, ...]] = []

    def add(self, message: Message, *label_ids: str) -> None:
        self.messages[message.id] = message
        self.message_labels.setdefault(message.id, set()).update(label_ids)

    def remove_label(self, message_id: str, label_id: str) -> None:
        self.message_labels.get(message_id, set()).discard(label_id)

    def _check(self, operation: str) -> None:
        if operation in self.fail:
            raise GmailAPIError(f"{operation} failed: simulated")

    async def list_labels(self) -> list[Label]:
        self._check("list_labels")
        return list(self.labels)

    async def list_message_ids(
        self,
        label_id: str,
        page_size: int,
        page_token: str | None = None,
    ) -> tuple[list[str], str | None]:
        self._check("list_message_ids")
        ids = sorted(
            (
                message_id
                for message_id, labels in self.message_labels.items()
                if label_id in labels and message_id not in self.trashed
            ),
            key=lambda message_id: self.messages[message_id].internal_date,
            reverse=True,
        )
        start = int(page_token or 0)
        page = ids[start : start + page_size]
        next_token = str(start + page_size) if start + page_size < len(ids) else None
        return page, next_token

    async def get_message(self, message_id: str) -> Message:
        self._check("get_message")
        self.calls.append(("get_message", message_id))
        return self.messages[message_id].model_copy()

    async def batch_remove_label(self, message_ids: list[str], label_id: str) -> None:
        self._check("batch_remove_label")
        self.calls.append(("batch_remove_label", list(message_ids), label_id))
        for message_id in message_ids:
            self.remove_label(message_id, label_id)

    async def batch_add_label(self, message_ids: list[str], label_id: str) -> None:
        self._check("batch_add_label")
        self.calls.append(("batch_add_label", list(message_ids), label_id))
        for message_id in message_ids:
            self.message_labels.setdefault(message_id, set()).add(label_id)

    async def batch_archive(self, message_ids: list[str]) -> None:
        self._check("batch_archive")
        self.calls.append(("batch_archive", list(message_ids)))
        for message_id in message_ids:
            self.remove_label(message_id, INBOX)

    async def batch_unarchive(self, message_ids: list[str]) -> None:
        self._check("batch_unarchive")
        self.calls.append(("batch_unarchive", list(message_ids)))
        for message_id in message_ids:
            self.message_labels.setdefault(message_id, set()).add(INBOX)

    async def batch_trash(self, message_ids: list[str]) -> None:
        self._check("batch_trash")
        self.calls.append(("batch_trash", list(message_ids)))
        self.trashed.update(message_ids)

    async def untrash(self, message_id: str) -> None:
        self._check("untrash")
        self.calls.append(("untrash", message_id))
        self.trashed.discard(message_id)

    async def mark_read(self, message_ids: list[str]) -> None:
        self._check("mark_read")
        self.calls.append(("mark_read", list(message_ids)))
        for message_id in message_ids:
            self.remove_label(message_id, UNREAD)

    async def mark_unread(self, message_ids: list[str]) -> None:
        self._check("mark_unread")
        self.calls.append(("mark_unread", list(message_ids)))
        for message_id in message_ids:
            self.message_labels.setdefault(message_id, set()).add(UNREAD)

    async def send(self, to: str, cc: str, bcc: str, subject: str, body: str) -> str:
        self._check("send")
        self.sent.append({"to": to, "cc": cc, "bcc": bcc, "subject": subject, "body": body})
        return f"sent{len(self.sent)}"

    async def get_signature(self) -> str | None:
        self._check("get_signature")
        return self.signature


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """Provide mock settings for testing."""
    return Settings(
        gmail_credentials_path=tmp_path / "credentials.json",
        gmail_token_path=tmp_path / "token.json",
        store_db_path=tmp_path / "mirror.sqlite3",
        sync_interval_seconds=0.01,
        sync_page_size=10,
        removal_scan_limit=50,
        display_page_size=10,
        log_level="DEBUG",
        debug=True,
        max_retries=0,
    )


@pytest.fixture
def store(mock_settings: Settings) -> MailStore:
    """Provide an initialized store on a temporary SQLite file."""
    mail_store = MailStore(mock_settings.store_db_path)
    mail_store.initialize()
    return mail_store


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Factory for messages with predictable defaults."""

    def factory(message_id: str, thread_id: str | None = None, date: int = 0, **kwargs: Any) -> Message:
        fields: dict[str, Any] = {
            "snippet": f"snippet {message_id}",
            "from_address": "alice@example.com",
            "to_address": "me@example.com",
            "subject": f"Subject {message_id}",
            "body_plain": f"Body of {message_id}",
        }
        fields.update(kwargs)
        return Message(
            id=message_id,
            thread_id=thread_id or f"t-{message_id}",
            internal_date=date,
            **fields,
        )

    return factory


@pytest.fixture
def sample_gmail_message() -> dict:
    """Provide a Gmail API message resource (format=full)."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Weekly Newsletter - Python Tips",
        "internalDate": "1700000000000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "newsletter@python.org"},
                {"name": "To", "value": "user@example.com"},
            ],
            "parts": [
                {
                    "mimeType": "text/plain",
                    # "Hello Python\n"
                    "body": {"data": "SGVsbG8gUHl0aG9uCg"},
                },
                {
                    "mimeType": "text/html",
                    "body": {"data": "PHA-SGVsbG88L3A-"},
                },
            ],
        },
    }


@pytest.fixture
def sample_gmail_label() -> dict:
    """Provide a Gmail API label resource."""
    return {
        "id": "Label_42",
        "name": "Receipts",
        "type": "user",
        "color": {"textColor": "#ffffff", "backgroundColor": "#16a766"},
    }
