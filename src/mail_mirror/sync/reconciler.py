"""Background reconciliation of the local store with the remote mailbox.

Each cycle pulls the label list, then one page of message ids per label. New
messages are fetched and stored, and labels are stripped from local messages
that the remote page shows are gone. Removal is only inferred from a complete
page: a truncated page says nothing about messages outside of it.

Remote and storage failures never escape a cycle. A failing label is skipped
and retried on the next cycle.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

import structlog

from mail_mirror.config import Settings
from mail_mirror.exceptions import GmailAPIError, StoreError
from mail_mirror.gmail.facade import MailboxFacade
from mail_mirror.models import Message
from mail_mirror.store import MailStore
from mail_mirror.sync.guard import ModificationGuard
from mail_mirror.sync.priority import PriorityQueue
from mail_mirror.sync.progress import SyncProgress
from mail_mirror.sync.refresh import RefreshSignal

logger = structlog.get_logger()


class _SkipLabel(Exception):
    """Abort the current label; it is retried next cycle."""


@dataclass
class SyncReport:
    """What a single cycle did."""

    labels_synced: list[str] = field(default_factory=list)
    labels_skipped: list[str] = field(default_factory=list)
    messages_added: int = 0
    associations_added: int = 0
    associations_removed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.messages_added or self.associations_added or self.associations_removed)


class Reconciler:
    """Polling loop keeping the store eventually consistent with the mailbox."""

    def __init__(
        self,
        store: MailStore,
        mailbox: MailboxFacade,
        guard: ModificationGuard,
        progress: SyncProgress,
        priority: PriorityQueue,
        refresh: RefreshSignal,
        settings: Settings | None = None,
    ) -> None:
        from mail_mirror.config import get_settings

        self.settings = settings or get_settings()
        self.store = store
        self.mailbox = mailbox
        self.guard = guard
        self.progress = progress
        self.priority = priority
        self.refresh = refresh
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> asyncio.Task[None]:
        """Spawn the loop as a background task."""

        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run(), name="mail-mirror-reconciler")
        return self._task

    def stop(self) -> None:
        """Ask the loop to exit at the next cycle boundary."""

        self._stop_event.set()
        logger.info("reconciler_stopping")

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        """Run sync cycles until ``stop()`` is called."""

        interval = self.settings.sync_interval_seconds
        logger.info("reconciler_started", interval_seconds=interval)
        while not self._stop_event.is_set():
            try:
                await self.sync_once()
            except Exception:  # noqa: BLE001
                logger.exception("sync_cycle_failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("reconciler_stopped")

    async def sync_once(self) -> SyncReport:
        """Run one complete cycle over every label."""

        report = SyncReport()

        try:
            labels = await self.mailbox.list_labels()
        except GmailAPIError as exc:
            logger.warning("label_list_failed", error=str(exc))
            report.errors.append(str(exc))
            return report

        labels_refreshed = False
        try:
            await self._store(self.store.upsert_labels, labels)
            labels_refreshed = True
        except StoreError as exc:
            logger.warning("label_upsert_failed", error=str(exc))
            report.errors.append(str(exc))

        order = self._ordered_label_ids([label.id for label in labels])
        logger.debug("sync_cycle_started", label_count=len(order), first=order[:1])

        for label_id in order:
            if self._stop_event.is_set():
                break
            changed = await self.sync_label(label_id, report)
            if changed or labels_refreshed:
                self.refresh.notify()
                labels_refreshed = False

        logger.info(
            "sync_cycle_completed",
            labels_synced=len(report.labels_synced),
            labels_skipped=len(report.labels_skipped),
            messages_added=report.messages_added,
            associations_added=report.associations_added,
            associations_removed=report.associations_removed,
        )
        return report

    async def sync_label(self, label_id: str, report: SyncReport | None = None) -> bool:
        """Reconcile a single label. Returns True when the store changed."""

        report = report if report is not None else SyncReport()
        self.progress.begin(label_id)
        self.guard.purge_expired()

        try:
            changed = await self._sync_label(label_id, report)
        except _SkipLabel as exc:
            logger.warning("label_sync_skipped", label_id=label_id, error=str(exc))
            report.labels_skipped.append(label_id)
            report.errors.append(str(exc))
            self.progress.finish(label_id, synced=False)
            return False

        report.labels_synced.append(label_id)
        self.progress.finish(label_id)
        return changed

    async def _sync_label(self, label_id: str, report: SyncReport) -> bool:
        try:
            ids, next_page_token = await self.mailbox.list_message_ids(
                label_id, self.settings.sync_page_size
            )
        except GmailAPIError as exc:
            raise _SkipLabel(str(exc)) from exc

        seen: set[str] = set()
        known_seen: list[str] = []
        new_messages: list[Message] = []
        oldest_date: int | None = None

        for message_id in ids:
            # Guarded ids are neither upserted nor counted as seen, which also
            # keeps them out of removal inference below.
            if self.guard.is_guarded(message_id):
                continue
            seen.add(message_id)

            try:
                local_date = await self._store(self.store.get_message_date, message_id)
            except StoreError as exc:
                logger.warning("message_lookup_failed", message_id=message_id, error=str(exc))
                continue

            if local_date is None:
                try:
                    message = await self.mailbox.get_message(message_id)
                except GmailAPIError as exc:
                    raise _SkipLabel(str(exc)) from exc
                new_messages.append(message)
                date = message.internal_date
            else:
                known_seen.append(message_id)
                date = local_date

            oldest_date = date if oldest_date is None else min(oldest_date, date)

        # A local mutation may have started while the page was being fetched.
        new_messages = [m for m in new_messages if not self.guard.is_guarded(m.id)]
        known_seen = [i for i in known_seen if not self.guard.is_guarded(i)]

        changed = False

        if new_messages:
            try:
                await self._store(self.store.upsert_messages, new_messages, label_id)
                report.messages_added += len(new_messages)
                changed = True
            except StoreError as exc:
                logger.warning("message_upsert_failed", label_id=label_id, error=str(exc))

        if known_seen:
            try:
                added = await self._store(self.store.add_label_to_messages, known_seen, label_id)
            except StoreError as exc:
                logger.warning("label_association_failed", label_id=label_id, error=str(exc))
            else:
                if added:
                    report.associations_added += added
                    changed = True

        should_remove = next_page_token is None and bool(ids)
        logger.debug(
            "label_page_fetched",
            label_id=label_id,
            remote_ids=len(ids),
            guarded=len(ids) - len(seen),
            new=len(new_messages),
            has_next_page=next_page_token is not None,
            oldest_date=oldest_date,
            should_remove=should_remove,
        )

        if should_remove:
            removed = await self._infer_removals(label_id, seen)
            if removed:
                report.associations_removed += removed
                changed = True

        return changed

    async def _infer_removals(self, label_id: str, seen: set[str]) -> int:
        try:
            local = await self._store(
                self.store.get_message_dates_by_label,
                label_id,
                self.settings.removal_scan_limit,
            )
        except StoreError as exc:
            logger.warning("removal_scan_failed", label_id=label_id, error=str(exc))
            return 0

        removed = 0
        for message_id, _local_date in local:
            # A complete page lists every message under the label, so anything
            # unguarded and unseen is gone remotely, older ones included.
            if self.guard.is_guarded(message_id) or message_id in seen:
                continue
            try:
                await self._store(self.store.remove_label, message_id, label_id)
            except StoreError as exc:
                logger.warning(
                    "label_removal_failed",
                    message_id=message_id,
                    label_id=label_id,
                    error=str(exc),
                )
                continue
            removed += 1
            logger.info(
                "label_removed_by_sync",
                message_id=message_id,
                label_id=label_id,
            )
        return removed

    def _ordered_label_ids(self, label_ids: list[str]) -> list[str]:
        order = list(label_ids)
        priority = self.priority.drain()
        if priority is not None and priority in order:
            order.remove(priority)
            order.insert(0, priority)
            logger.debug("sync_label_prioritized", label_id=priority)
        return order

    async def _store(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(func, *args)
