"""Interactive session: list state, optimistic actions and undo."""

from mail_mirror.session.actions import MailActions
from mail_mirror.session.compose import Draft, build_new_message, build_reply, reply_subject
from mail_mirror.session.ledger import UndoLedger
from mail_mirror.session.session import LabelSyncStatus, MailSession
from mail_mirror.session.view import MailboxView

__all__ = [
    "Draft",
    "LabelSyncStatus",
    "MailActions",
    "MailSession",
    "MailboxView",
    "UndoLedger",
    "build_new_message",
    "build_reply",
    "reply_subject",
]
