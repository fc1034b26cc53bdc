"""Custom exceptions for Mail Mirror."""


class MailMirrorError(Exception):
    """Base exception for all Mail Mirror errors."""


class GmailAPIError(MailMirrorError):
    """Exception raised for Gmail API related errors."""


class StoreError(MailMirrorError):
    """Exception raised when the local SQLite store fails."""


class ConfigurationError(MailMirrorError):
    """Exception raised for configuration related errors."""


class AuthenticationError(MailMirrorError):
    """Exception raised for authentication failures."""
