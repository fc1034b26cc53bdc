"""Gmail API client implementation.

This module provides the remote mailbox used by the sync core.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
"""

from __future__ import annotations

import asyncio
import base64
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Callable

import structlog

from mail_mirror.config import Settings
from mail_mirror.exceptions import AuthenticationError, ConfigurationError, GmailAPIError
from mail_mirror.gmail.parsing import label_from_api, message_from_api
from mail_mirror.models import INBOX, UNREAD, Label, Message
from mail_mirror.utils import retry_on_failure

logger = structlog.get_logger()

USER_ID = "me"


class GmailClient:
    """Gmail API client for mailbox operations.

    This client handles authentication, label and message retrieval,
    label changes, trash and sending.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from mail_mirror.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = None
        logger.info("gmail_client_initialized")

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the client secrets file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scopes = list(self.settings.gmail_scopes)

        if not credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "See README.md -> Gmail API Setup."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scopes=scopes,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scopes,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    def reset_token(self) -> bool:
        """Delete the cached OAuth token. Returns True if a token was removed."""

        token_path = Path(self.settings.gmail_token_path)
        if not token_path.exists():
            return False
        token_path.unlink()
        self._service = None
        logger.info("gmail_token_cleared", token_path=str(token_path))
        return True

    async def list_labels(self) -> list[Label]:
        """List every label of the mailbox.

        Raises:
            GmailAPIError: If the API request fails.
        """

        response = await self._call("list_labels", self._list_labels_sync, retry=True)
        return [label_from_api(raw) for raw in response.get("labels", []) or []]

    async def list_message_ids(
        self,
        label_id: str,
        page_size: int,
        page_token: str | None = None,
    ) -> tuple[list[str], str | None]:
        """List one page of message ids carrying ``label_id``, newest first.

        Returns:
            Tuple of (message_ids, next_page_token). The token is None when
            the page is the last one.

        Raises:
            GmailAPIError: If the API request fails.
        """

        response = await self._call(
            "list_message_ids",
            self._list_message_ids_sync,
            label_id,
            page_size,
            page_token,
            retry=True,
            label_id=label_id,
        )
        ids = [m["id"] for m in response.get("messages", []) or [] if m.get("id")]
        return ids, response.get("nextPageToken")

    async def get_message(self, message_id: str) -> Message:
        """Fetch one full message.

        Raises:
            GmailAPIError: If the API request fails.
        """

        raw = await self._call(
            "get_message",
            self._get_message_sync,
            message_id,
            retry=True,
            message_id=message_id,
        )
        return message_from_api(raw)

    async def batch_remove_label(self, message_ids: list[str], label_id: str) -> None:
        await self._batch_modify(message_ids, remove=[label_id])

    async def batch_add_label(self, message_ids: list[str], label_id: str) -> None:
        await self._batch_modify(message_ids, add=[label_id])

    async def batch_archive(self, message_ids: list[str]) -> None:
        await self._batch_modify(message_ids, remove=[INBOX])

    async def batch_unarchive(self, message_ids: list[str]) -> None:
        await self._batch_modify(message_ids, add=[INBOX])

    async def mark_read(self, message_ids: list[str]) -> None:
        await self._batch_modify(message_ids, remove=[UNREAD])

    async def mark_unread(self, message_ids: list[str]) -> None:
        await self._batch_modify(message_ids, add=[UNREAD])

    async def batch_trash(self, message_ids: list[str]) -> None:
        """Move messages to the trash.

        Gmail has no batch trash endpoint, so each id is trashed in turn and
        the first failure aborts the batch.
        """

        await self._call(
            "batch_trash",
            self._trash_many_sync,
            list(message_ids),
            message_count=len(message_ids),
        )

    async def untrash(self, message_id: str) -> None:
        await self._call(
            "untrash",
            self._untrash_sync,
            message_id,
            message_id=message_id,
        )

    async def send(self, to: str, cc: str, bcc: str, subject: str, body: str) -> str:
        """Send a plain-text message and return its Gmail id."""

        message = MIMEText(body)
        message["to"] = to
        if cc:
            message["cc"] = cc
        if bcc:
            message["bcc"] = bcc
        message["subject"] = subject
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")

        response = await self._call("send", self._send_sync, raw, to=to)
        return str(response.get("id") or "")

    async def get_signature(self) -> str | None:
        """Return the signature of the primary send-as alias, if any."""

        response = await self._call("get_signature", self._list_send_as_sync, retry=True)
        for alias in response.get("sendAs", []) or []:
            if alias.get("isPrimary"):
                return alias.get("signature") or None
        return None

    async def _batch_modify(
        self,
        message_ids: list[str],
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> None:
        if not message_ids:
            return
        body: dict[str, Any] = {"ids": list(message_ids)}
        if add:
            body["addLabelIds"] = add
        if remove:
            body["removeLabelIds"] = remove
        await self._call(
            "batch_modify",
            self._batch_modify_sync,
            body,
            message_count=len(message_ids),
            add=add,
            remove=remove,
        )

    async def _call(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        retry: bool = False,
        **log_context: Any,
    ) -> Any:
        await self._ensure_authenticated()

        logger.debug("gmail_request", operation=operation, **log_context)

        target = func
        if retry:
            target = retry_on_failure(max_retries=self.settings.max_retries)(func)

        try:
            return await asyncio.to_thread(target, *args)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "gmail_request_failed",
                operation=operation,
                error=str(exc),
                **log_context,
            )
            raise GmailAPIError(f"{operation} failed: {exc}") from exc

    async def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )

    def _build_service(self, credentials_path: Path, token_path: Path, scopes: list[str]) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=scopes)

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=scopes)
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _list_labels_sync(self) -> dict[str, Any]:
        assert self._service is not None
        return self._service.users().labels().list(userId=USER_ID).execute()

    def _list_message_ids_sync(
        self,
        label_id: str,
        page_size: int,
        page_token: str | None,
    ) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .list(
                userId=USER_ID,
                labelIds=[label_id],
                maxResults=page_size,
                pageToken=page_token,
            )
        )
        return request.execute()

    def _get_message_sync(self, message_id: str) -> dict[str, Any]:
        assert self._service is not None
        request = self._service.users().messages().get(userId=USER_ID, id=message_id, format="full")
        return request.execute()

    def _batch_modify_sync(self, body: dict[str, Any]) -> None:
        assert self._service is not None
        self._service.users().messages().batchModify(userId=USER_ID, body=body).execute()

    def _trash_many_sync(self, message_ids: list[str]) -> None:
        assert self._service is not None
        messages = self._service.users().messages()
        for message_id in message_ids:
            messages.trash(userId=USER_ID, id=message_id).execute()

    def _untrash_sync(self, message_id: str) -> None:
        assert self._service is not None
        self._service.users().messages().untrash(userId=USER_ID, id=message_id).execute()

    def _send_sync(self, raw: str) -> dict[str, Any]:
        assert self._service is not None
        return self._service.users().messages().send(userId=USER_ID, body={"raw": raw}).execute()

    def _list_send_as_sync(self) -> dict[str, Any]:
        assert self._service is not None
        return self._service.users().settings().sendAs().list(userId=USER_ID).execute()
