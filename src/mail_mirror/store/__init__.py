"""Local persistent mirror of the mailbox.

This package stores labels, messages and their label associations in SQLite.
"""

from .repository import LabelCount, MailStore, StoreStats

__all__ = ["LabelCount", "MailStore", "StoreStats"]
