"""Label and message models mirrored from the remote mailbox."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from mail_mirror.utils import title_case

INBOX = "INBOX"
SENT = "SENT"
UNREAD = "UNREAD"
CATEGORY_PREFIX = "CATEGORY_"


class LabelKind(str, Enum):
    """Who owns a label."""

    SYSTEM = "system"
    USER = "user"


class Label(BaseModel):
    """A remote-assigned tag that also decides where a message shows up."""

    id: str = Field(description="Stable label ID assigned by Gmail")
    name: str = Field(description="Label name as shown by Gmail")
    kind: LabelKind = Field(default=LabelKind.USER, description="system or user label")
    color_foreground: str | None = Field(default=None, description="Text colour")
    color_background: str | None = Field(default=None, description="Background colour")

    @property
    def display_name(self) -> str:
        if self.kind is LabelKind.SYSTEM:
            return title_case(self.name)
        return self.name

    @property
    def is_category(self) -> bool:
        return self.id.startswith(CATEGORY_PREFIX)


def label_sort_key(label: Label) -> tuple[int, str]:
    """Sort key putting INBOX first and every other label by name."""

    return (0 if label.id == INBOX else 1, label.name)


def is_category_label(label_id: str | None) -> bool:
    return bool(label_id) and label_id.startswith(CATEGORY_PREFIX)


class Message(BaseModel):
    """A single message of the local mirror.

    ``internal_date`` is Gmail's internal timestamp in epoch milliseconds. It is
    immutable once stored and doubles as the sync watermark.
    """

    id: str = Field(description="Gmail message ID")
    thread_id: str = Field(description="Gmail thread ID")
    snippet: str | None = Field(default=None, description="Short preview text")
    from_address: str | None = Field(default=None, description="Raw From header")
    to_address: str | None = Field(default=None, description="Raw To header")
    subject: str | None = Field(default=None, description="Subject header")
    internal_date: int = Field(default=0, description="Internal timestamp in ms since epoch")
    body_plain: str | None = Field(default=None, description="Plain-text body")
    is_read: bool = Field(default=False, description="Whether the message has been read")
    thread_has_sent: bool = Field(
        default=False,
        description="Whether the thread contains a message sent by the user",
    )
