"""Data models for Mail Mirror.

This module contains Pydantic models for data validation and serialization.
"""

from mail_mirror.models.mail import (
    INBOX,
    SENT,
    UNREAD,
    Label,
    LabelKind,
    Message,
    is_category_label,
    label_sort_key,
)
from mail_mirror.models.undo import ArchiveAction, DeleteAction, UndoableAction

__all__ = [
    "INBOX",
    "SENT",
    "UNREAD",
    "ArchiveAction",
    "DeleteAction",
    "Label",
    "LabelKind",
    "Message",
    "UndoableAction",
    "is_category_label",
    "label_sort_key",
]
