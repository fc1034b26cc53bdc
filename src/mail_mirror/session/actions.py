"""User-initiated mutations with optimistic apply, confirm and rollback.

Archive and delete work on whole threads. The affected ids are guarded and the
store is changed before the remote call, so background sync cannot resurrect
or strip them mid-flight. The list row is only removed once Gmail confirmed
the change; a remote failure reverts the store and drops the guard so the
next sync cycle pulls the true state again.
"""

from __future__ import annotations

import asyncio

import structlog

from mail_mirror.exceptions import GmailAPIError, StoreError
from mail_mirror.gmail.facade import MailboxFacade
from mail_mirror.models import (
    INBOX,
    ArchiveAction,
    DeleteAction,
    Message,
    UndoableAction,
    is_category_label,
)
from mail_mirror.session.compose import Draft
from mail_mirror.session.ledger import UndoLedger
from mail_mirror.session.view import MailboxView
from mail_mirror.store import MailStore
from mail_mirror.sync.guard import ModificationGuard

logger = structlog.get_logger()


def _plural(count: int) -> str:
    return "message" if count == 1 else "messages"


class MailActions:
    """Archive, delete, read state, send and undo for the current view."""

    def __init__(
        self,
        store: MailStore,
        mailbox: MailboxFacade,
        guard: ModificationGuard,
        ledger: UndoLedger,
        view: MailboxView,
    ) -> None:
        self.store = store
        self.mailbox = mailbox
        self.guard = guard
        self.ledger = ledger
        self.view = view

    async def archive_selected(self) -> bool:
        """Archive the selected thread.

        In a category view the category label is removed instead of INBOX.
        """

        selected = self.view.selected_message()
        if selected is None:
            return False
        position = self.view.selected_index
        current = self.view.current_label_id
        label_id = current if current and is_category_label(current) else INBOX

        messages = await self._load_thread(selected, "archive")
        if messages is None:
            return False
        message_ids = [m.id for m in messages]

        self.guard.mark(message_ids)
        try:
            label_ids = await asyncio.to_thread(self.store.get_label_ids_for_messages, message_ids)
            await asyncio.to_thread(self.store.remove_label_from_messages, message_ids, label_id)
        except StoreError as exc:
            self.guard.unmark(message_ids)
            self.view.status = f"Failed to archive: {exc}"
            logger.warning("archive_store_failed", thread_id=selected.thread_id, error=str(exc))
            return False

        action = ArchiveAction(
            messages=messages,
            label_id=label_id,
            label_ids=label_ids,
            position=position,
        )

        try:
            if label_id == INBOX:
                await self.mailbox.batch_archive(message_ids)
            else:
                await self.mailbox.batch_remove_label(message_ids, label_id)
        except GmailAPIError as exc:
            try:
                await asyncio.to_thread(
                    self.store.add_label_to_messages, action.restore_ids, label_id
                )
            except StoreError as store_exc:
                logger.warning("archive_rollback_failed", error=str(store_exc))
            self.guard.unmark(message_ids)
            self.view.status = f"Failed to archive: {exc}"
            logger.warning("archive_failed", thread_id=selected.thread_id, error=str(exc))
            return False

        self.view.remove_message(selected.id)
        self.ledger.push(action)
        self.view.status = f"Archived {len(messages)} {_plural(len(messages))}"
        logger.info(
            "thread_archived",
            thread_id=selected.thread_id,
            label_id=label_id,
            message_count=len(messages),
        )
        await self._reload_thread()
        return True

    async def delete_selected(self) -> bool:
        """Move the selected thread to the trash."""

        selected = self.view.selected_message()
        if selected is None:
            return False
        position = self.view.selected_index
        label_id = self.view.current_label_id or INBOX

        messages = await self._load_thread(selected, "delete")
        if messages is None:
            return False
        message_ids = [m.id for m in messages]

        self.guard.mark(message_ids)
        try:
            label_ids = await asyncio.to_thread(self.store.get_label_ids_for_messages, message_ids)
            await asyncio.to_thread(self.store.delete_messages, message_ids)
        except StoreError as exc:
            self.guard.unmark(message_ids)
            self.view.status = f"Failed to delete: {exc}"
            logger.warning("delete_store_failed", thread_id=selected.thread_id, error=str(exc))
            return False

        try:
            await self.mailbox.batch_trash(message_ids)
        except GmailAPIError as exc:
            try:
                await asyncio.to_thread(self.store.restore_messages, messages, label_ids)
            except StoreError as store_exc:
                logger.warning("delete_rollback_failed", error=str(store_exc))
            self.guard.unmark(message_ids)
            self.view.status = f"Failed to delete: {exc}"
            logger.warning("delete_failed", thread_id=selected.thread_id, error=str(exc))
            return False

        self.view.remove_message(selected.id)
        self.ledger.push(
            DeleteAction(
                messages=messages,
                label_id=label_id,
                label_ids=label_ids,
                position=position,
            )
        )
        self.view.status = f"Deleted {len(messages)} {_plural(len(messages))}"
        logger.info(
            "thread_deleted",
            thread_id=selected.thread_id,
            label_id=label_id,
            message_count=len(messages),
        )
        await self._reload_thread()
        return True

    async def toggle_read_selected(self) -> bool:
        """Flip the read state of the selected message."""

        selected = self.view.selected_message()
        if selected is None:
            return False
        was_read = selected.is_read
        selected.is_read = not was_read
        message_ids = [selected.id]

        self.guard.mark(message_ids)
        try:
            await asyncio.to_thread(self.store.set_read, message_ids, not was_read)
            if was_read:
                await self.mailbox.mark_unread(message_ids)
            else:
                await self.mailbox.mark_read(message_ids)
        except (StoreError, GmailAPIError) as exc:
            selected.is_read = was_read
            try:
                await asyncio.to_thread(self.store.set_read, message_ids, was_read)
            except StoreError as store_exc:
                logger.warning("read_state_rollback_failed", error=str(store_exc))
            self.guard.unmark(message_ids)
            self.view.status = f"Failed to update read state: {exc}"
            logger.warning("read_state_failed", message_id=selected.id, error=str(exc))
            return False

        logger.debug("read_state_changed", message_id=selected.id, is_read=not was_read)
        return True

    async def send(self, draft: Draft) -> str | None:
        """Send a draft. Nothing is queued when Gmail rejects it."""

        try:
            sent_id = await self.mailbox.send(
                draft.to, draft.cc, draft.bcc, draft.subject, draft.body
            )
        except GmailAPIError as exc:
            self.view.status = f"Failed to send: {exc}"
            logger.warning("send_failed", to=draft.to, error=str(exc))
            return None

        self.view.status = "Message sent"
        logger.info("message_sent", message_id=sent_id)
        return sent_id

    async def undo(self) -> UndoableAction | None:
        action = await self.ledger.pop_and_undo(self.view)
        if action is None:
            self.view.status = "Nothing to undo"
            return None
        count = len(action.messages)
        self.view.status = f"Undid {action.description} of {count} {_plural(count)}"
        return action

    async def _load_thread(self, selected: Message, operation: str) -> list[Message] | None:
        try:
            thread = await asyncio.to_thread(self.store.get_messages_by_thread, selected.thread_id)
        except StoreError as exc:
            self.view.status = f"Failed to {operation}: {exc}"
            logger.warning(f"{operation}_store_failed", thread_id=selected.thread_id, error=str(exc))
            return None

        # The list row goes first so undo can put exactly that row back.
        others = [m for m in thread if m.id != selected.id]
        return [selected.model_copy(), *others]

    async def _reload_thread(self) -> None:
        selected = self.view.selected_message()
        if selected is None:
            self.view.thread = []
            return
        try:
            self.view.thread = await asyncio.to_thread(
                self.store.get_messages_by_thread, selected.thread_id
            )
        except StoreError as exc:
            logger.warning("thread_reload_failed", thread_id=selected.thread_id, error=str(exc))
