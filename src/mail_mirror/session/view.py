"""In-memory list state drawn by the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass, field

from mail_mirror.models import Label, Message


@dataclass
class MailboxView:
    """What the user currently looks at.

    ``messages`` holds one row per thread (its newest message under the
    current label), loaded page by page starting at ``offset`` 0.
    """

    labels: list[Label] = field(default_factory=list)
    current_label_id: str | None = None
    messages: list[Message] = field(default_factory=list)
    offset: int = 0
    selected_index: int = 0
    thread: list[Message] = field(default_factory=list)
    status: str | None = None

    def selected_message(self) -> Message | None:
        if 0 <= self.selected_index < len(self.messages):
            return self.messages[self.selected_index]
        return None

    def index_of(self, message_id: str) -> int | None:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

    def remove_message(self, message_id: str) -> Message | None:
        """Drop a row from the list and keep the selection in range."""

        index = self.index_of(message_id)
        if index is None:
            return None
        removed = self.messages.pop(index)
        self.clamp_selection()
        return removed

    def insert_message(self, position: int, message: Message) -> None:
        """Put a row back at ``position`` (or the end) and select it."""

        existing = self.index_of(message.id)
        if existing is not None:
            self.messages.pop(existing)
        position = max(0, min(position, len(self.messages)))
        self.messages.insert(position, message)
        self.selected_index = position

    def clamp_selection(self) -> None:
        if not self.messages:
            self.selected_index = 0
        elif self.selected_index >= len(self.messages):
            self.selected_index = len(self.messages) - 1
