"""Configuration management for Mail Mirror.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAIL_MIRROR_ prefix (e.g., MAIL_MIRROR_SYNC_INTERVAL_SECONDS).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAIL_MIRROR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API OAuth client secrets file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to the cached Gmail API token file",
    )
    gmail_scopes: list[str] = Field(
        default=[
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/gmail.settings.basic",
        ],
        description=(
            "OAuth scopes requested for Gmail access. modify is required for "
            "archive/trash/read state, settings.basic for the signature."
        ),
    )

    # Local store
    store_db_path: Path = Field(
        default=Path("mail_mirror.sqlite3"),
        description="Path to the local SQLite mirror of the mailbox",
    )

    # Background sync
    sync_interval_seconds: float = Field(
        default=30.0,
        description="Pause between two reconciliation cycles",
    )
    sync_page_size: int = Field(
        default=100,
        description="Number of message ids requested per label and cycle",
    )
    removal_scan_limit: int = Field(
        default=200,
        description="Maximum local messages examined per label for removal detection",
    )
    guard_grace_seconds: float = Field(
        default=300.0,
        description="How long a locally modified message is ignored by background sync",
    )
    priority_queue_size: int = Field(
        default=16,
        description="Capacity of the label priority queue",
    )

    # Presentation
    display_page_size: int = Field(
        default=50,
        description="Number of threads loaded per page of the message list",
    )
    reply_signature: str | None = Field(
        default=None,
        description="Signature appended to replies when Gmail has none configured",
    )
    new_message_signature: str | None = Field(
        default=None,
        description="Signature appended to new messages when Gmail has none configured",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Log at DEBUG level regardless of log_level",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for failed read-only Gmail calls",
    )

    @property
    def effective_log_level(self) -> int:
        """Numeric logging level; ``debug`` forces DEBUG over ``log_level``."""
        if self.debug:
            return logging.DEBUG
        return getattr(logging, self.log_level.upper(), logging.INFO)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
