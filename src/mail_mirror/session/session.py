"""Composition root of the interactive client.

``MailSession`` owns the state shared between the interactive path and the
background reconciler (modification guard, sync progress, priority queue and
refresh signal) and hands the same instances to both sides.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import structlog

from mail_mirror.config import Settings
from mail_mirror.exceptions import GmailAPIError, StoreError
from mail_mirror.gmail.facade import MailboxFacade
from mail_mirror.models import INBOX, UndoableAction
from mail_mirror.session.actions import MailActions
from mail_mirror.session.compose import Draft, build_new_message, build_reply
from mail_mirror.session.ledger import UndoLedger
from mail_mirror.session.view import MailboxView
from mail_mirror.store import MailStore
from mail_mirror.sync import (
    ModificationGuard,
    PriorityQueue,
    Reconciler,
    RefreshSignal,
    SyncProgress,
)

logger = structlog.get_logger()

# Rows left below the selection before the next page is loaded.
_LOAD_MORE_THRESHOLD = 5


class LabelSyncStatus(str, Enum):
    SYNCED = "synced"
    SYNCING = "syncing"
    PENDING = "pending"


class MailSession:
    """Interactive mailbox session backed by the local store."""

    def __init__(
        self,
        store: MailStore,
        mailbox: MailboxFacade,
        settings: Settings | None = None,
        guard: ModificationGuard | None = None,
    ) -> None:
        from mail_mirror.config import get_settings

        self.settings = settings or get_settings()
        self.store = store
        self.mailbox = mailbox
        self.guard = guard or ModificationGuard(self.settings.guard_grace_seconds)
        self.progress = SyncProgress()
        self.priority = PriorityQueue(self.settings.priority_queue_size)
        self.refresh = RefreshSignal()
        self.view = MailboxView()
        self.ledger = UndoLedger(store, mailbox, self.guard)
        self.actions = MailActions(store, mailbox, self.guard, self.ledger, self.view)
        self.reconciler = Reconciler(
            store,
            mailbox,
            self.guard,
            self.progress,
            self.priority,
            self.refresh,
            self.settings,
        )
        self.signature: str | None = None

    async def start(self, background_sync: bool = True) -> None:
        """Load the initial view and start background sync."""

        self.progress.reset()
        try:
            self.signature = await self.mailbox.get_signature()
        except GmailAPIError as exc:
            logger.warning("signature_fetch_failed", error=str(exc))

        await self.reload_labels()
        if self.view.labels:
            label_ids = [label.id for label in self.view.labels]
            await self.select_label(INBOX if INBOX in label_ids else label_ids[0])

        if background_sync:
            self.reconciler.start()
        logger.info("mail_session_started", background_sync=background_sync)

    async def stop(self) -> None:
        self.reconciler.stop()
        await self.reconciler.wait_stopped()
        await self.ledger.drain()
        logger.info("mail_session_stopped")

    # Navigation

    async def reload_labels(self) -> None:
        try:
            self.view.labels = await asyncio.to_thread(self.store.get_labels)
        except StoreError as exc:
            self._report_store_error("labels", exc)

    async def select_label(self, label_id: str) -> None:
        """Show a label and ask the reconciler to sync it first next cycle."""

        self.view.current_label_id = label_id
        self.view.offset = 0
        self.view.selected_index = 0
        await self._reload_messages()
        self.priority.push(label_id)

    async def select_message(self, index: int) -> None:
        if not self.view.messages:
            return
        self.view.selected_index = max(0, min(index, len(self.view.messages) - 1))
        await self._reload_thread()
        if self.view.selected_index >= len(self.view.messages) - _LOAD_MORE_THRESHOLD:
            await self.load_more()

    async def load_more(self) -> int:
        """Append the next page of threads. Returns the number of rows added."""

        label_id = self.view.current_label_id
        if label_id is None:
            return 0
        page = self.settings.display_page_size
        try:
            more = await asyncio.to_thread(
                self.store.get_messages_by_label, label_id, page, self.view.offset + page
            )
        except StoreError as exc:
            self._report_store_error("messages", exc)
            return 0
        if more:
            self.view.offset += page
            known = {m.id for m in self.view.messages}
            self.view.messages.extend(m for m in more if m.id not in known)
        return len(more)

    async def apply_refresh(self) -> bool:
        """Reload from the store if background sync reported changes."""

        if not self.refresh.consume():
            return False
        await self.reload_labels()
        if self.view.current_label_id is not None:
            await self._reload_messages()
        return True

    def label_status(self, label_id: str) -> LabelSyncStatus:
        snapshot = self.progress.snapshot()
        if snapshot.currently_syncing == label_id:
            return LabelSyncStatus.SYNCING
        if label_id in snapshot.synced_labels:
            return LabelSyncStatus.SYNCED
        return LabelSyncStatus.PENDING

    # Actions

    async def archive(self) -> bool:
        return await self.actions.archive_selected()

    async def delete(self) -> bool:
        return await self.actions.delete_selected()

    async def toggle_read(self) -> bool:
        return await self.actions.toggle_read_selected()

    async def undo(self) -> UndoableAction | None:
        return await self.actions.undo()

    async def send(self, draft: Draft) -> str | None:
        return await self.actions.send(draft)

    def compose_reply(self) -> Draft | None:
        selected = self.view.selected_message()
        if selected is None:
            return None
        return build_reply(selected, self.signature or self.settings.reply_signature)

    def compose_new(self) -> Draft:
        return build_new_message(self.signature or self.settings.new_message_signature)

    async def _reload_messages(self) -> None:
        label_id = self.view.current_label_id
        if label_id is None:
            return
        page = self.settings.display_page_size
        # Every page loaded so far is re-read, so a refresh keeps the scroll.
        try:
            messages = await asyncio.to_thread(
                self.store.get_messages_by_label, label_id, self.view.offset + page, 0
            )
        except StoreError as exc:
            self._report_store_error("messages", exc)
            return

        # Fewer rows than pages loaded, e.g. after remote removals.
        if len(messages) <= self.view.offset:
            self.view.offset = max(0, (len(messages) - 1) // page * page)
        self.view.messages = messages
        self.view.clamp_selection()
        await self._reload_thread()

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
            self._report_store_error("thread", exc)

    def _report_store_error(self, what: str, exc: StoreError) -> None:
        self.view.status = f"Failed to load {what}: {exc}"
        logger.warning("view_reload_failed", what=what, error=str(exc))
