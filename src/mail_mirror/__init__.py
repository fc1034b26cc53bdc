"""Mail Mirror - a local Gmail mirror kept in sync in the background.

This package keeps a SQLite copy of a remote mailbox eventually consistent with
Gmail while letting the user archive, delete, mark and send optimistically,
with undo for the destructive actions.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from mail_mirror.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
