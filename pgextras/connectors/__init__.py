"""Database and platform connectors for pg-extras."""

from .base import Attachment, ConnectionDetails, DatabaseConnector
from .platform import PlatformClient
from .postgresql import PostgreSQLConnector
from .resolver import AttachmentResolver

__all__ = [
    "Attachment",
    "ConnectionDetails",
    "DatabaseConnector",
    "PlatformClient",
    "PostgreSQLConnector",
    "AttachmentResolver"
]
