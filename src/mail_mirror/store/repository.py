"""SQLite-backed local mirror of labels and messages.

The store is the ground truth for presentation. Every public method opens its
own connection, so the interactive path and the background sync can use the
same database file concurrently.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import structlog

from mail_mirror.exceptions import StoreError
from mail_mirror.models import SENT, Label, LabelKind, Message, label_sort_key

logger = structlog.get_logger()


_SCHEMA_VERSION = 1

_MESSAGE_COLUMNS = """
    m.id,
    m.thread_id,
    m.snippet,
    m.from_address,
    m.to_address,
    m.subject,
    m.internal_date,
    m.body_plain,
    m.is_read
"""

_THREAD_HEAD_COLUMNS = _MESSAGE_COLUMNS.replace(
    "m.internal_date", "MAX(m.internal_date) AS internal_date"
)

_UPSERT_MESSAGE_SQL = """
    INSERT INTO messages (
        id,
        thread_id,
        snippet,
        from_address,
        to_address,
        subject,
        internal_date,
        body_plain,
        is_read
    )
    VALUES (
        :id,
        :thread_id,
        :snippet,
        :from_address,
        :to_address,
        :subject,
        :internal_date,
        :body_plain,
        :is_read
    )
    ON CONFLICT(id) DO UPDATE SET
        snippet=excluded.snippet,
        body_plain=excluded.body_plain,
        is_read=excluded.is_read
"""


def _message_params(message: Message) -> dict[str, object]:
    return {
        "id": message.id,
        "thread_id": message.thread_id,
        "snippet": message.snippet,
        "from_address": message.from_address,
        "to_address": message.to_address,
        "subject": message.subject,
        "internal_date": message.internal_date,
        "body_plain": message.body_plain,
        "is_read": 1 if message.is_read else 0,
    }


@dataclass(frozen=True)
class LabelCount:
    """Message counts for a single label."""

    label_id: str
    name: str
    total_messages: int
    unread_messages: int


@dataclass(frozen=True)
class StoreStats:
    """High-level summary stats for the store."""

    total_messages: int
    unread_messages: int
    total_threads: int
    labels: list[LabelCount]


class MailStore:
    """Repository for the local copy of the mailbox."""

    def __init__(self, db_path: Path) -> None:
        """Create a store.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = db_path

    @property
    def db_path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """Create or upgrade the store schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("mail_store_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version != _SCHEMA_VERSION:
                raise StoreError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    # Labels

    def upsert_labels(self, labels: list[Label]) -> None:
        """Insert or replace the given labels."""

        if not labels:
            return

        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO labels (id, name, kind, color_foreground, color_background)
                VALUES (:id, :name, :kind, :color_foreground, :color_background)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    kind=excluded.kind,
                    color_foreground=excluded.color_foreground,
                    color_background=excluded.color_background
                """,
                [
                    {
                        "id": label.id,
                        "name": label.name,
                        "kind": label.kind.value,
                        "color_foreground": label.color_foreground,
                        "color_background": label.color_background,
                    }
                    for label in labels
                ],
            )
            conn.commit()

    def get_labels(self) -> list[Label]:
        """Return all labels, INBOX first and the rest sorted by name."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, name, kind, color_foreground, color_background
                FROM labels;
                """
            ).fetchall()

        labels = [
            Label(
                id=row["id"],
                name=row["name"],
                kind=LabelKind(row["kind"]),
                color_foreground=row["color_foreground"],
                color_background=row["color_background"],
            )
            for row in rows
        ]
        return sorted(labels, key=label_sort_key)

    # Messages

    def upsert_messages(self, messages: list[Message], label_id: str) -> None:
        """Insert or update messages and associate each with ``label_id``.

        Only the remotely mutable columns are updated for rows that already
        exist; ``internal_date`` keeps its first stored value.
        """

        if not messages:
            return

        with self._connect() as conn:
            conn.executemany(_UPSERT_MESSAGE_SQL, [_message_params(m) for m in messages])
            conn.executemany(
                "INSERT OR IGNORE INTO message_labels (message_id, label_id) VALUES (?, ?)",
                [(m.id, label_id) for m in messages],
            )
            conn.commit()

    def restore_messages(self, messages: list[Message], label_ids: dict[str, list[str]]) -> None:
        """Write messages back together with the exact labels they had.

        ``label_ids`` maps a message id to the labels captured by
        :meth:`get_label_ids_for_messages`. A message missing from the map is
        written without any label.
        """

        if not messages:
            return

        with self._connect() as conn:
            conn.executemany(_UPSERT_MESSAGE_SQL, [_message_params(m) for m in messages])
            conn.executemany(
                "INSERT OR IGNORE INTO message_labels (message_id, label_id) VALUES (?, ?)",
                [(m.id, label_id) for m in messages for label_id in label_ids.get(m.id, [])],
            )
            conn.commit()

    def get_messages_by_label(self, label_id: str, limit: int, offset: int = 0) -> list[Message]:
        """Return the newest message of each thread under ``label_id``.

        Threads are ordered newest first; ``thread_has_sent`` tells whether
        the thread holds a message the user sent.
        """

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT
                    {_THREAD_HEAD_COLUMNS},
                    EXISTS (
                        SELECT 1
                        FROM messages s
                        JOIN message_labels sl ON sl.message_id = s.id
                        WHERE s.thread_id = m.thread_id AND sl.label_id = ?
                    ) AS thread_has_sent
                FROM messages m
                JOIN message_labels ml ON ml.message_id = m.id
                WHERE ml.label_id = ?
                GROUP BY m.thread_id
                ORDER BY internal_date DESC
                LIMIT ? OFFSET ?;
                """,
                (SENT, label_id, limit, offset),
            ).fetchall()

        return [self._row_to_message(row) for row in rows]

    def get_messages_by_thread(self, thread_id: str) -> list[Message]:
        """Return every message of a thread, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS}
                FROM messages m
                WHERE m.thread_id = ?
                ORDER BY m.internal_date DESC;
                """,
                (thread_id,),
            ).fetchall()

        return [self._row_to_message(row) for row in rows]

    def message_exists(self, message_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM messages WHERE id = ?", (message_id,)).fetchone()
        return row is not None

    def get_message_date(self, message_id: str) -> int | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT internal_date FROM messages WHERE id = ?", (message_id,)
            ).fetchone()
        return None if row is None else int(row[0])

    def get_message_dates_by_label(self, label_id: str, limit: int) -> list[tuple[str, int]]:
        """Return up to ``limit`` (id, internal_date) pairs under a label, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.id, m.internal_date
                FROM messages m
                JOIN message_labels ml ON ml.message_id = m.id
                WHERE ml.label_id = ?
                ORDER BY m.internal_date DESC
                LIMIT ?;
                """,
                (label_id, limit),
            ).fetchall()

        return [(row[0], int(row[1])) for row in rows]

    def get_label_ids(self, message_id: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT label_id FROM message_labels WHERE message_id = ? ORDER BY label_id",
                (message_id,),
            ).fetchall()
        return [row[0] for row in rows]

    def get_label_ids_for_messages(self, message_ids: Iterable[str]) -> dict[str, list[str]]:
        """Return the sorted label ids of each message, keyed by message id.

        Every requested id is present in the result, with an empty list when
        the message is unknown or carries no label.
        """

        ids = list(dict.fromkeys(message_ids))
        result: dict[str, list[str]] = {message_id: [] for message_id in ids}
        if not ids:
            return result

        placeholders = ",".join("?" for _ in ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT message_id, label_id
                FROM message_labels
                WHERE message_id IN ({placeholders})
                ORDER BY message_id, label_id;
                """,
                ids,
            ).fetchall()

        for row in rows:
            result[row[0]].append(row[1])
        return result

    def delete_message(self, message_id: str) -> None:
        self.delete_messages([message_id])

    def delete_messages(self, message_ids: Iterable[str]) -> None:
        """Hard-delete messages together with their label associations."""

        params = [(message_id,) for message_id in message_ids]
        if not params:
            return

        with self._connect() as conn:
            conn.executemany("DELETE FROM message_labels WHERE message_id = ?", params)
            conn.executemany("DELETE FROM messages WHERE id = ?", params)
            conn.commit()

    def remove_label(self, message_id: str, label_id: str) -> None:
        self.remove_label_from_messages([message_id], label_id)

    def remove_label_from_messages(self, message_ids: Iterable[str], label_id: str) -> None:
        params = [(message_id, label_id) for message_id in message_ids]
        if not params:
            return

        with self._connect() as conn:
            conn.executemany(
                "DELETE FROM message_labels WHERE message_id = ? AND label_id = ?",
                params,
            )
            conn.commit()

    def add_label(self, message_id: str, label_id: str) -> None:
        self.add_label_to_messages([message_id], label_id)

    def add_label_to_messages(self, message_ids: Iterable[str], label_id: str) -> int:
        """Associate stored messages with a label.

        Ids with no stored message are ignored.

        Returns:
            Number of associations that did not exist before.
        """

        params = [(label_id, message_id) for message_id in message_ids]
        if not params:
            return 0

        with self._connect() as conn:
            before = conn.total_changes
            conn.executemany(
                """
                INSERT OR IGNORE INTO message_labels (message_id, label_id)
                SELECT id, ? FROM messages WHERE id = ?
                """,
                params,
            )
            added = conn.total_changes - before
            conn.commit()
        return added

    def set_read(self, message_ids: Iterable[str], is_read: bool) -> None:
        params = [(1 if is_read else 0, message_id) for message_id in message_ids]
        if not params:
            return

        with self._connect() as conn:
            conn.executemany("UPDATE messages SET is_read = ? WHERE id = ?", params)
            conn.commit()

    # Queries

    def search(self, query: str, limit: int = 25) -> list[Message]:
        """Search subject, sender, snippet and body with SQLite FTS5."""

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS}
                FROM messages_fts
                JOIN messages m ON m.rowid = messages_fts.rowid
                WHERE messages_fts MATCH ?
                ORDER BY m.internal_date DESC
                LIMIT ?;
                """,
                (query, limit),
            ).fetchall()

        return [self._row_to_message(row) for row in rows]

    def stats(self) -> StoreStats:
        """Compute message, unread and per-label counts."""

        with self._connect() as conn:
            total, unread, threads = conn.execute(
                """
                SELECT COUNT(*), SUM(1 - is_read), COUNT(DISTINCT thread_id)
                FROM messages;
                """
            ).fetchone()

            rows = conn.execute(
                """
                SELECT
                    l.id,
                    l.name,
                    COUNT(m.id) AS total_messages,
                    SUM(CASE WHEN m.is_read = 0 THEN 1 ELSE 0 END) AS unread_messages
                FROM labels l
                LEFT JOIN message_labels ml ON ml.label_id = l.id
                LEFT JOIN messages m ON m.id = ml.message_id
                GROUP BY l.id, l.name
                ORDER BY total_messages DESC, l.name;
                """
            ).fetchall()

        return StoreStats(
            total_messages=int(total or 0),
            unread_messages=int(unread or 0),
            total_threads=int(threads or 0),
            labels=[
                LabelCount(
                    label_id=row[0],
                    name=row[1],
                    total_messages=int(row[2] or 0),
                    unread_messages=int(row[3] or 0),
                )
                for row in rows
            ],
        )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open mail store {self._db_path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS labels (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                kind TEXT NOT NULL,
                color_foreground TEXT,
                color_background TEXT
            );

            CREATE TABLE IF NOT EXISTS messages (
                rowid INTEGER PRIMARY KEY,
                id TEXT NOT NULL UNIQUE,
                thread_id TEXT NOT NULL,
                snippet TEXT,
                from_address TEXT,
                to_address TEXT,
                subject TEXT,
                internal_date INTEGER NOT NULL,
                body_plain TEXT,
                is_read INTEGER NOT NULL DEFAULT 0
            );

            -- No foreign key to labels: undo may restore an association to a
            -- label that has since disappeared remotely.
            CREATE TABLE IF NOT EXISTS message_labels (
                message_id TEXT NOT NULL,
                label_id TEXT NOT NULL,
                PRIMARY KEY (message_id, label_id),
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_messages_internal_date
                ON messages(internal_date DESC);

            CREATE INDEX IF NOT EXISTS idx_messages_thread_id
                ON messages(thread_id);

            CREATE INDEX IF NOT EXISTS idx_message_labels_label_id
                ON message_labels(label_id);

            CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
                subject,
                from_address,
                snippet,
                body_plain,
                content='messages',
                content_rowid='rowid'
            );

            CREATE TRIGGER IF NOT EXISTS messages_ai
            AFTER INSERT ON messages
            BEGIN
                INSERT INTO messages_fts(rowid, subject, from_address, snippet, body_plain)
                VALUES (new.rowid, new.subject, new.from_address, new.snippet, new.body_plain);
            END;

            CREATE TRIGGER IF NOT EXISTS messages_ad
            AFTER DELETE ON messages
            BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, subject, from_address, snippet, body_plain)
                VALUES('delete', old.rowid, old.subject, old.from_address, old.snippet, old.body_plain);
            END;

            CREATE TRIGGER IF NOT EXISTS messages_au
            AFTER UPDATE ON messages
            BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, subject, from_address, snippet, body_plain)
                VALUES('delete', old.rowid, old.subject, old.from_address, old.snippet, old.body_plain);

                INSERT INTO messages_fts(rowid, subject, from_address, snippet, body_plain)
                VALUES (new.rowid, new.subject, new.from_address, new.snippet, new.body_plain);
            END;
            """
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        keys = row.keys()
        return Message(
            id=row["id"],
            thread_id=row["thread_id"],
            snippet=row["snippet"],
            from_address=row["from_address"],
            to_address=row["to_address"],
            subject=row["subject"],
            internal_date=int(row["internal_date"]),
            body_plain=row["body_plain"],
            is_read=bool(row["is_read"]),
            thread_has_sent=bool(row["thread_has_sent"]) if "thread_has_sent" in keys else False,
        )
