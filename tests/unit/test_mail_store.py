"""Unit tests for the SQLite mail store."""

import sqlite3

import pytest

from mail_mirror.exceptions import StoreError
from mail_mirror.models import INBOX, SENT, Label, LabelKind
from mail_mirror.store import MailStore


def test_initialize_is_idempotent(store: MailStore) -> None:
    store.initialize()

    assert store.get_labels() == []


def test_initialize_rejects_unknown_schema_version(store: MailStore) -> None:
    conn = sqlite3.connect(store.db_path)
    conn.execute("UPDATE _schema_meta SET value = '99' WHERE key = 'schema_version'")
    conn.commit()
    conn.close()

    with pytest.raises(StoreError):
        store.initialize()


def test_labels_are_upserted_and_sorted(store: MailStore) -> None:
    store.upsert_labels(
        [
            Label(id="Label_2", name="Zeta"),
            Label(id=INBOX, name="INBOX", kind=LabelKind.SYSTEM),
            Label(id="Label_1", name="Alpha"),
        ]
    )
    store.upsert_labels([Label(id="Label_2", name="Beta", color_background="#000000")])

    labels = store.get_labels()

    assert [label.id for label in labels] == [INBOX, "Label_1", "Label_2"]
    assert labels[2].name == "Beta"
    assert labels[2].color_background == "#000000"
    assert labels[0].kind is LabelKind.SYSTEM


def test_upsert_keeps_original_date_and_updates_read_state(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("m1", date=100)], INBOX)
    store.upsert_messages([make_message("m1", date=999, is_read=True)], "Label_1")

    assert store.get_message_date("m1") == 100
    assert store.get_label_ids("m1") == [INBOX, "Label_1"]
    assert store.get_messages_by_thread("t-m1")[0].is_read is True


def test_messages_by_label_returns_newest_per_thread(store: MailStore, make_message) -> None:
    store.upsert_messages(
        [
            make_message("a1", "ta", 100),
            make_message("a2", "ta", 300),
            make_message("b1", "tb", 200),
        ],
        INBOX,
    )

    rows = store.get_messages_by_label(INBOX, limit=10)

    assert [(m.id, m.internal_date) for m in rows] == [("a2", 300), ("b1", 200)]


def test_messages_by_label_pages(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message(f"m{i}", date=i) for i in range(5)], INBOX)

    first = store.get_messages_by_label(INBOX, limit=2)
    second = store.get_messages_by_label(INBOX, limit=2, offset=2)

    assert [m.id for m in first] == ["m4", "m3"]
    assert [m.id for m in second] == ["m2", "m1"]


def test_thread_has_sent_flag(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("in", "t1", 100)], INBOX)
    store.upsert_messages([make_message("out", "t1", 50)], SENT)
    store.upsert_messages([make_message("other", "t2", 10)], INBOX)

    rows = {m.thread_id: m for m in store.get_messages_by_label(INBOX, limit=10)}

    assert rows["t1"].thread_has_sent is True
    assert rows["t2"].thread_has_sent is False


def test_thread_is_newest_first(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("a", "t", 1), make_message("b", "t", 3)], INBOX)
    store.upsert_messages([make_message("c", "t", 2)], SENT)

    assert [m.id for m in store.get_messages_by_thread("t")] == ["b", "c", "a"]


def test_delete_messages_drops_associations(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("m1"), make_message("m2")], INBOX)

    store.delete_messages(["m1"])

    assert store.message_exists("m1") is False
    assert store.get_label_ids("m1") == []
    assert store.message_exists("m2") is True


def test_label_ids_for_messages(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("m1"), make_message("m2")], INBOX)
    store.add_label("m1", SENT)

    assert store.get_label_ids_for_messages(["m2", "m1", "missing"]) == {
        "m2": [INBOX],
        "m1": [INBOX, SENT],
        "missing": [],
    }
    assert store.get_label_ids_for_messages([]) == {}


def test_restore_messages_writes_exact_labels(store: MailStore, make_message) -> None:
    messages = [make_message("m1", date=10), make_message("m2", date=20), make_message("m3")]
    store.upsert_messages(messages, INBOX)
    store.add_label("m1", SENT)
    snapshot = store.get_label_ids_for_messages(["m1", "m2"])
    store.delete_messages(["m1", "m2", "m3"])

    store.restore_messages(messages, snapshot)

    assert store.get_label_ids("m1") == [INBOX, SENT]
    assert store.get_label_ids("m2") == [INBOX]
    assert store.message_exists("m3") is True
    assert store.get_label_ids("m3") == []


def test_remove_and_add_label(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("m1"), make_message("m2")], INBOX)

    store.remove_label_from_messages(["m1", "m2"], INBOX)
    assert store.get_messages_by_label(INBOX, limit=10) == []

    added = store.add_label_to_messages(["m1", "m2", "missing"], INBOX)
    assert added == 2
    assert store.add_label_to_messages(["m1"], INBOX) == 0
    assert store.message_exists("missing") is False


def test_message_dates_by_label(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message(f"m{i}", date=i * 10) for i in range(4)], INBOX)

    assert store.get_message_dates_by_label(INBOX, limit=2) == [("m3", 30), ("m2", 20)]


def test_set_read(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("m1")], INBOX)

    store.set_read(["m1"], True)

    assert store.get_messages_by_thread("t-m1")[0].is_read is True


def test_search_uses_full_text_index(store: MailStore, make_message) -> None:
    store.upsert_messages(
        [
            make_message("m1", date=1, subject="Quarterly invoice"),
            make_message("m2", date=2, subject="Lunch", body_plain="see the invoice attached"),
            make_message("m3", date=3, subject="Unrelated"),
        ],
        INBOX,
    )

    results = store.search("invoice")

    assert [m.id for m in results] == ["m2", "m1"]


def test_search_index_follows_deletes(store: MailStore, make_message) -> None:
    store.upsert_messages([make_message("m1", subject="invoice")], INBOX)
    store.delete_messages(["m1"])

    assert store.search("invoice") == []


def test_stats(store: MailStore, make_message) -> None:
    store.upsert_labels([Label(id=INBOX, name="INBOX", kind=LabelKind.SYSTEM)])
    store.upsert_messages(
        [make_message("a", "t1", is_read=True), make_message("b", "t1"), make_message("c", "t2")],
        INBOX,
    )

    stats = store.stats()

    assert stats.total_messages == 3
    assert stats.unread_messages == 2
    assert stats.total_threads == 2
    assert stats.labels[0].label_id == INBOX
    assert stats.labels[0].total_messages == 3
    assert stats.labels[0].unread_messages == 2
