"""
Custom Exceptions Module.

This module defines all custom exceptions used throughout the AP Assist
pipeline. Using specific exceptions lets each stage decide what is fatal
(startup configuration, mailbox connection) and what is scoped to a
single document or poll cycle.

Exception Hierarchy:
    APAssistError (base)
    ├── ConfigurationError
    ├── MailboxError
    ├── OracleError
    │   └── OracleTransportError
    ├── ResponseParseError
    ├── DocumentStoreError
    │   ├── SinkError
    │   └── ConfigSourceError
    ├── LedgerError
    └── ReportError
"""


class APAssistError(Exception):
    """
    Base exception for all AP Assist errors.

    All custom exceptions in this system inherit from this class,
    allowing for easy catching of all system-specific errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# STARTUP / CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(APAssistError):
    """
    Raised when required configuration is missing or invalid.

    Example:
        >>> raise ConfigurationError("Missing IMAP_HOST", missing=["IMAP_HOST"])
    """

    def __init__(self, message: str, missing: list = None):
        self.missing = missing or []
        details = {"missing": self.missing} if self.missing else None
        super().__init__(message, details)


class MailboxError(APAssistError):
    """Raised when the IMAP connection, search or fetch fails."""

    def __init__(self, operation: str, reason: str = None):
        message = f"Mailbox operation failed: {operation}"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# ORACLE ERRORS
# =============================================================================

class OracleError(APAssistError):
    """Base exception for extraction oracle errors."""
    pass


class OracleTransportError(OracleError):
    """
    Raised when a call to the oracle API itself fails.

    The original SDK message is kept verbatim because rate limiting is
    detected by a substring match on it.
    """

    RATE_LIMIT_MARKER = "rate_limit_error"

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        details = {"status_code": status_code} if status_code else None
        super().__init__(message, details)

    @property
    def is_rate_limited(self) -> bool:
        """Whether the error message carries the rate limit marker."""
        return self.RATE_LIMIT_MARKER in self.message


class ResponseParseError(OracleError):
    """Raised when no JSON object can be recovered from oracle output."""

    def __init__(self, reason: str, snippet: str = None):
        message = f"Could not parse JSON from oracle response: {reason}"
        details = {"snippet": snippet} if snippet else None
        super().__init__(message, details)


# =============================================================================
# DOCUMENT STORE ERRORS
# =============================================================================

class DocumentStoreError(APAssistError):
    """Base exception for document store (RESTlet) errors."""

    def __init__(self, operation: str, reason: str = None, status: int = None):
        self.operation = operation
        self.reason = reason
        self.status = status
        message = f"Document store operation failed: {operation}"
        details = {"reason": reason}
        if status is not None:
            details["status"] = status
        super().__init__(message, details)


class SinkError(DocumentStoreError):
    """Raised when persisting a processed document fails."""
    pass


class ConfigSourceError(DocumentStoreError):
    """Raised when routing configuration cannot be fetched or is malformed."""
    pass


# =============================================================================
# LOCAL OUTPUT ERRORS
# =============================================================================

class LedgerError(APAssistError):
    """Raised when the local processing ledger cannot be read or written."""

    def __init__(self, operation: str, reason: str = None):
        message = f"Ledger operation failed: {operation}"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, details)


class ReportError(APAssistError):
    """Raised when a validation report cannot be exported or delivered."""

    def __init__(self, target: str, reason: str = None):
        message = f"Failed to deliver report: {target}"
        details = {"target": target, "reason": reason}
        super().__init__(message, details)


# Export all exceptions
__all__ = [
    'APAssistError',
    'ConfigurationError',
    'MailboxError',
    'OracleError',
    'OracleTransportError',
    'ResponseParseError',
    'DocumentStoreError',
    'SinkError',
    'ConfigSourceError',
    'LedgerError',
    'ReportError',
]
