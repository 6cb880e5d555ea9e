"""
Base database connector interface for pg-extras.

Defines the values produced by attachment resolution and the interface a
connector implements to run one statement and hand back rendered text.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class Attachment:
    """A database attachment of an application."""
    name: str
    app: str
    addon_id: str
    addon_name: str
    plan_name: Optional[str] = None

    @property
    def config_var(self) -> str:
        return f"{self.name}_URL"


@dataclass
class ConnectionDetails:
    """Physical connection details for one attachment."""
    host: str
    port: int
    database: str
    user: str
    password: str
    attachment: Attachment

    def __repr__(self) -> str:
        return (f"ConnectionDetails(host={self.host!r}, port={self.port}, "
                f"database={self.database!r}, user={self.user!r}, "
                f"attachment={self.attachment.name!r})")


class DatabaseConnector(ABC):
    """
    Abstract base class for database connectors.

    A connector opens a connection for the given details, runs a single
    statement and returns the result already rendered as text.
    """

    @abstractmethod
    async def execute_statement(
        self,
        details: ConnectionDetails,
        sql: str,
        tuples_only: bool = False
    ) -> str:
        """
        Execute a SQL statement.

        Args:
            details: Connection details of the target database
            sql: SQL statement to execute
            tuples_only: Render rows only, without header or row count

        Returns:
            Rendered result text
        """
        pass

    @abstractmethod
    async def copy_to_csv(
        self,
        details: ConnectionDetails,
        sql: str,
        path: str
    ) -> None:
        """
        Export the result of a query to a CSV file with a header row.

        Args:
            details: Connection details of the target database
            sql: Query whose result is exported
            path: Destination file path
        """
        pass
