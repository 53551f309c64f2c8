"""
Exception classes for schemamend.
"""

from typing import Any, Dict, Optional


class SchemamendError(Exception):
    """Base exception for all schemamend errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SchemamendError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(SchemamendError):
    """Raised when there's a validation error."""

    pass


class DatabaseError(SchemamendError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when the database cannot be reached at all."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class RemoteCallError(DatabaseError):
    """
    Raised when the database answers a request with an error payload.

    Carries the raw pieces of the payload (SQLSTATE or PostgREST code,
    message, hint) so callers can classify it.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        hint: Optional[str] = None,
        remote_details: Optional[str] = None,
    ) -> None:
        details = {}
        if code:
            details["code"] = code
        if status:
            details["status"] = status

        super().__init__(message, details)
        self.code = code
        self.status = status
        self.hint = hint
        self.remote_details = remote_details


class SchemaError(DatabaseError):
    """Raised when there's an error with database schema operations."""

    pass


class ProbeError(SchemaError):
    """The state of a column could not be determined."""

    def __init__(self, table: str, column: str, reason: str) -> None:
        super().__init__(f"Could not probe {table}.{column}: {reason}")
        self.table = table
        self.column = column
        self.reason = reason


class ApplyError(SchemaError):
    """No execution channel worked, or the statement was rejected."""

    def __init__(self, table: str, column: str, reason: str) -> None:
        super().__init__(f"Could not add {table}.{column}: {reason}")
        self.table = table
        self.column = column
        self.reason = reason


class VerificationMismatch(SchemaError):
    """A statement reported success but the column is still absent."""

    def __init__(self, table: str, column: str, channel: Optional[str] = None) -> None:
        message = f"verification failed: {table}.{column} still absent after apply"
        if channel:
            message += f" (via {channel})"
        super().__init__(message)
        self.table = table
        self.column = column
        self.channel = channel
