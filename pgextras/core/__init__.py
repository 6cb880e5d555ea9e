"""Core pg-extras modules."""

from .errors import (
    PgExtrasError, ConnectionResolutionFailure, UnsupportedPlanTier,
    CapabilityDetectionFailure, QueryExecutionFailure, InvalidArgument,
    MissingExtension, ConfigurationError, PlatformAPIError
)
from .queries import ColumnNaming, StatementColumns
from .executor import DiagnosticRunner

__all__ = [
    "PgExtrasError",
    "ConnectionResolutionFailure",
    "UnsupportedPlanTier",
    "CapabilityDetectionFailure",
    "QueryExecutionFailure",
    "InvalidArgument",
    "MissingExtension",
    "ConfigurationError",
    "PlatformAPIError",
    "ColumnNaming",
    "StatementColumns",
    "DiagnosticRunner"
]
