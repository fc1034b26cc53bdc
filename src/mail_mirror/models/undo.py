"""Reversible batch actions kept on the undo ledger.

Each variant carries the complete message records it touched, not just their
ids, so that deleted rows can be written back to the store verbatim. The
labels every message carried before the action are captured alongside, so
undo restores exactly those and never labels a message that lacked them.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from mail_mirror.models.mail import Message


class DeleteAction(BaseModel):
    """A thread was moved to the trash."""

    kind: Literal["delete"] = "delete"
    messages: list[Message] = Field(description="Every message of the deleted thread")
    label_id: str = Field(description="Label the thread was listed under")
    label_ids: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Labels of each message before it was deleted, by message id",
    )
    position: int = Field(ge=0, description="List position to restore the selection to")

    @property
    def description(self) -> str:
        return "delete"


class ArchiveAction(BaseModel):
    """A label (INBOX or a category) was removed from a thread."""

    kind: Literal["archive"] = "archive"
    messages: list[Message] = Field(description="Every message of the archived thread")
    label_id: str = Field(description="Label that was removed")
    label_ids: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Labels of each message before it was archived, by message id",
    )
    position: int = Field(ge=0, description="List position to restore the selection to")

    @property
    def description(self) -> str:
        return "archive"

    @property
    def restore_ids(self) -> list[str]:
        """Ids of the messages that carried the removed label."""

        return [m.id for m in self.messages if self.label_id in self.label_ids.get(m.id, [])]


UndoableAction = Annotated[Union[DeleteAction, ArchiveAction], Field(discriminator="kind")]
