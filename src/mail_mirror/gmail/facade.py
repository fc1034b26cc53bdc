"""Contract the sync core expects from a remote mailbox.

Every call may fail; the core treats each one as independently retryable on
the next sync cycle. Implementations raise ``GmailAPIError`` on failure.
"""

from __future__ import annotations

from typing import Protocol

from mail_mirror.models import Label, Message


class MailboxFacade(Protocol):
    async def list_labels(self) -> list[Label]: ...

    async def list_message_ids(
        self,
        label_id: str,
        page_size: int,
        page_token: str | None = None,
    ) -> tuple[list[str], str | None]: ...

    async def get_message(self, message_id: str) -> Message: ...

    async def batch_remove_label(self, message_ids: list[str], label_id: str) -> None: ...

    async def batch_add_label(self, message_ids: list[str], label_id: str) -> None: ...

    async def batch_archive(self, message_ids: list[str]) -> None: ...

    async def batch_unarchive(self, message_ids: list[str]) -> None: ...

    async def batch_trash(self, message_ids: list[str]) -> None: ...

    async def untrash(self, message_id: str) -> None: ...

    async def mark_read(self, message_ids: list[str]) -> None: ...

    async def mark_unread(self, message_ids: list[str]) -> None: ...

    async def send(self, to: str, cc: str, bcc: str, subject: str, body: str) -> str: ...

    async def get_signature(self) -> str | None: ...
