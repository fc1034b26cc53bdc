"""Helpers for parsing Gmail API resources into internal models."""

from __future__ import annotations

import base64
from typing import Any

from mail_mirror.models import UNREAD, Label, LabelKind, Message


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first for now.
            result.setdefault(name.lower(), value)
    return result


def _decode_b64(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
    return raw.decode("utf-8", errors="replace")


def _walk_text_parts(part: dict[str, Any]) -> list[str]:
    mime = (part.get("mimeType") or "").lower()
    body = part.get("body") or {}
    data = body.get("data")
    if data and mime.startswith("text/plain"):
        return [_decode_b64(data)]

    texts: list[str] = []
    for p in part.get("parts") or []:
        texts.extend(_walk_text_parts(p))
    return texts


def extract_plain_body(message: dict[str, Any]) -> str | None:
    """Return the concatenated ``text/plain`` parts of a format=full message."""

    payload = message.get("payload") or {}
    texts = _walk_text_parts(payload)
    if texts:
        return "\n\n".join(texts).strip()
    return None


def message_from_api(message: dict[str, Any]) -> Message:
    """Convert a Gmail API message (format=full) to a Message.

    Args:
        message: Gmail API message dict.

    Returns:
        Message: Parsed message; the body falls back to the snippet.
    """

    hm = _header_map(message)

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []

    internal_date_raw = message.get("internalDate")
    try:
        internal_date = int(internal_date_raw) if internal_date_raw is not None else 0
    except (TypeError, ValueError):
        internal_date = 0

    snippet = message.get("snippet")
    body = extract_plain_body(message)

    return Message(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or ""),
        snippet=snippet,
        from_address=hm.get("from"),
        to_address=hm.get("to"),
        subject=hm.get("subject"),
        internal_date=internal_date,
        body_plain=body if body is not None else snippet,
        is_read=UNREAD not in label_ids,
    )


def label_from_api(label: dict[str, Any]) -> Label:
    """Convert a Gmail API label resource to a Label."""

    color = label.get("color") or {}
    raw_type = str(label.get("type") or "").lower()
    kind = LabelKind.SYSTEM if raw_type == LabelKind.SYSTEM.value else LabelKind.USER

    return Label(
        id=str(label.get("id") or ""),
        name=str(label.get("name") or ""),
        kind=kind,
        color_foreground=color.get("textColor"),
        color_background=color.get("backgroundColor"),
    )
