"""
Error types raised by pg-extras.

Every failure is fatal to the invocation; the CLI prints the message and
exits with the error's exit code.
"""

from typing import Optional


class PgExtrasError(Exception):
    """Base class for all handled pg-extras failures."""
    exit_code = 1


class ConfigurationError(PgExtrasError):
    """Raised when the settings file or environment is invalid."""
    pass


class ConnectionResolutionFailure(PgExtrasError):
    """Raised when an attachment cannot be resolved to connection details."""
    pass


class UnsupportedPlanTier(PgExtrasError):
    """Raised when the database plan does not support an operation."""
    pass


class CapabilityDetectionFailure(PgExtrasError):
    """Raised when a capability probe returns an unexpected answer."""
    pass


class QueryExecutionFailure(PgExtrasError):
    """Raised when a statement fails on the server or the connection drops."""
    pass


class InvalidArgument(PgExtrasError):
    """Raised when a command argument fails local validation."""
    exit_code = 2


class MissingExtension(PgExtrasError):
    """Raised when a required server-side extension is not installed."""
    pass


class PlatformAPIError(PgExtrasError):
    """Raised by the Platform API client on a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_id: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_id = error_id
