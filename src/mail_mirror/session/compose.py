"""Drafts for new messages and replies."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from mail_mirror.models import Message


class Draft(BaseModel):
    """A message being composed."""

    to: str = Field(default="", description="Comma separated To addresses")
    cc: str = Field(default="", description="Comma separated Cc addresses")
    bcc: str = Field(default="", description="Comma separated Bcc addresses")
    subject: str = Field(default="", description="Subject line")
    body: str = Field(default="", description="Plain-text body")


def reply_subject(subject: str | None) -> str:
    subject = subject or ""
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def _attribution(message: Message) -> str:
    sent_at = datetime.fromtimestamp(message.internal_date / 1000).astimezone()
    when = sent_at.strftime("%a, %b %d, %Y at %I:%M %p")
    return f"On {when}, {message.from_address or 'Unknown'} wrote:"


def build_reply(message: Message, signature: str | None = None) -> Draft:
    """Start a reply to ``message`` with its body quoted below the signature."""

    quoted = f"\n{_attribution(message)}\n"
    source = message.body_plain or message.snippet
    if source:
        quoted += "".join(f"> {line}\n" for line in source.splitlines())

    signature_part = f"--\n{signature}\n\n" if signature else ""

    return Draft(
        to=message.from_address or "",
        subject=reply_subject(message.subject),
        body=f"\n\n{signature_part}{quoted}",
    )


def build_new_message(signature: str | None = None) -> Draft:
    body = f"\n\n--\n{signature}" if signature else ""
    return Draft(body=body)
