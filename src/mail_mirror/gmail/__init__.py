"""Gmail access: the remote mailbox facade and its API-backed implementation."""

from .client import GmailClient
from .facade import MailboxFacade

__all__ = ["GmailClient", "MailboxFacade"]
