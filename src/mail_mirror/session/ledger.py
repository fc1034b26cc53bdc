"""Undo stack for archive and delete.

Actions are pushed only after the remote mutation they reverse was confirmed.
Popping an action consumes it; there is no redo. Undo does not check whether
the label still exists or whether the messages changed remotely in between.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any

import structlog

from mail_mirror.exceptions import GmailAPIError, StoreError
from mail_mirror.gmail.facade import MailboxFacade
from mail_mirror.models import INBOX, ArchiveAction, DeleteAction, UndoableAction
from mail_mirror.session.view import MailboxView
from mail_mirror.store import MailStore
from mail_mirror.sync.guard import ModificationGuard

logger = structlog.get_logger()


class UndoLedger:
    """Last-in-first-out stack of reversible actions."""

    def __init__(
        self,
        store: MailStore,
        mailbox: MailboxFacade,
        guard: ModificationGuard,
    ) -> None:
        self.store = store
        self.mailbox = mailbox
        self.guard = guard
        self._actions: list[UndoableAction] = []
        self._background: set[asyncio.Task[None]] = set()

    def push(self, action: UndoableAction) -> None:
        self._actions.append(action)
        logger.debug(
            "undo_action_pushed",
            kind=action.kind,
            label_id=action.label_id,
            message_count=len(action.messages),
        )

    def peek(self) -> UndoableAction | None:
        return self._actions[-1] if self._actions else None

    def __len__(self) -> int:
        return len(self._actions)

    async def pop_and_undo(self, view: MailboxView) -> UndoableAction | None:
        """Reverse the most recent action against the store and the mailbox.

        The local side is best-effort; remote restores are fire-and-forget.

        Returns:
            The consumed action, or None when the ledger is empty.
        """

        if not self._actions:
            return None
        action = self._actions.pop()

        message_ids = [m.id for m in action.messages]
        self.guard.mark(message_ids)

        if isinstance(action, DeleteAction):
            await self._undo_delete(action, message_ids)
        else:
            await self._undo_archive(action)

        if view.current_label_id == action.label_id and action.messages:
            view.insert_message(action.position, action.messages[0])
            await self._restore_thread(view, action)

        logger.info(
            "undo_applied",
            kind=action.kind,
            label_id=action.label_id,
            message_count=len(message_ids),
        )
        return action

    async def drain(self) -> None:
        """Wait for pending fire-and-forget remote calls."""

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _undo_delete(self, action: DeleteAction, message_ids: list[str]) -> None:
        try:
            await asyncio.to_thread(self.store.restore_messages, action.messages, action.label_ids)
        except StoreError as exc:
            logger.warning("undo_delete_store_failed", label_id=action.label_id, error=str(exc))

        for message_id in message_ids:
            self._spawn(self.mailbox.untrash(message_id), "untrash", message_id=message_id)

    async def _undo_archive(self, action: ArchiveAction) -> None:
        restore_ids = action.restore_ids
        if not restore_ids:
            return
        try:
            await asyncio.to_thread(
                self.store.add_label_to_messages, restore_ids, action.label_id
            )
        except StoreError as exc:
            logger.warning("undo_archive_store_failed", label_id=action.label_id, error=str(exc))

        if action.label_id == INBOX:
            self._spawn(self.mailbox.batch_unarchive(restore_ids), "unarchive")
        else:
            self._spawn(
                self.mailbox.batch_add_label(restore_ids, action.label_id),
                "add_label",
                label_id=action.label_id,
            )

    async def _restore_thread(self, view: MailboxView, action: UndoableAction) -> None:
        thread_id = action.messages[0].thread_id
        try:
            view.thread = await asyncio.to_thread(self.store.get_messages_by_thread, thread_id)
        except StoreError as exc:
            logger.warning("undo_thread_reload_failed", thread_id=thread_id, error=str(exc))
            view.thread = list(action.messages)

    def _spawn(self, call: Awaitable[None], operation: str, **context: Any) -> None:
        task = asyncio.create_task(self._run_detached(call, operation, context))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_detached(
        self,
        call: Awaitable[None],
        operation: str,
        context: dict[str, Any],
    ) -> None:
        try:
            await call
        except GmailAPIError as exc:
            logger.warning("undo_remote_failed", operation=operation, error=str(exc), **context)
