"""
Diagnostic execution for pg-extras.

The runner owns the collaborators for one invocation: the attachment
resolver, the database connector and the Platform API client. It resolves
an attachment, runs a statement and writes the result to stdout.
"""

import logging
from typing import Awaitable, Callable, Optional

import asyncpg
import click
import httpx
from pydantic import ValidationError

from .errors import (
    ConnectionResolutionFailure, PgExtrasError, PlatformAPIError, QueryExecutionFailure
)
from .plans import is_starter_plan
from ..config import Settings
from ..connectors.base import Attachment, ConnectionDetails

logger = logging.getLogger(__name__)

QueryBuilder = Callable[[ConnectionDetails], Awaitable[str]]
Guard = Callable[[Attachment], None]

COLLABORATOR_ERRORS = (
    PlatformAPIError, asyncpg.PostgresError, asyncpg.InterfaceError,
    httpx.HTTPError, ValidationError, OSError, TimeoutError,
)


class DiagnosticRunner:
    """
    Runs diagnostics against one resolved database.

    Collaborators are passed in explicitly so they can be substituted in
    tests; nothing is cached between invocations.
    """

    def __init__(self, resolver, connector, platform=None,
                 settings: Optional[Settings] = None,
                 echo: Callable[[str], None] = click.echo):
        """
        Initialize the runner.

        Args:
            resolver: Object with resolve_attachment and resolve_database_connection coroutines
            connector: DatabaseConnector used to run statements
            platform: PlatformClient for data API calls
            settings: Runtime settings
            echo: Output function for result text
        """
        self.resolver = resolver
        self.connector = connector
        self.platform = platform
        self.settings = settings or Settings()
        self.echo = echo

    async def resolve_attachment(self, app: str, database: Optional[str] = None) -> Attachment:
        try:
            return await self.resolver.resolve_attachment(app, database)
        except ConnectionResolutionFailure:
            raise
        except COLLABORATOR_ERRORS as e:
            logger.error(f"Failed to resolve {database or 'DATABASE_URL'} on {app}: {e}")
            raise ConnectionResolutionFailure(str(e)) from e

    async def resolve(self, app: str, database: Optional[str] = None) -> ConnectionDetails:
        """
        Resolve an attachment to connection details.

        Raises:
            ConnectionResolutionFailure: If the attachment cannot be resolved
        """
        try:
            details = await self.resolver.resolve_database_connection(app, database)
        except ConnectionResolutionFailure:
            raise
        except COLLABORATOR_ERRORS as e:
            logger.error(f"Failed to resolve {database or 'DATABASE_URL'} on {app}: {e}")
            raise ConnectionResolutionFailure(str(e)) from e

        logger.debug(f"Resolved {app} to {details!r}")
        return details

    async def execute(self, details: ConnectionDetails, sql: str, tuples_only: bool = False) -> str:
        """
        Run one statement and return the rendered result.

        Raises:
            QueryExecutionFailure: If the statement or connection fails
        """
        try:
            return await self.connector.execute_statement(details, sql, tuples_only=tuples_only)
        except PgExtrasError:
            raise
        except COLLABORATOR_ERRORS as e:
            logger.error(f"Statement failed on {details.attachment.name}: {e}")
            raise QueryExecutionFailure(str(e)) from e

    async def copy_to_csv(self, details: ConnectionDetails, sql: str, path: str) -> None:
        try:
            await self.connector.copy_to_csv(details, sql, path)
        except PgExtrasError:
            raise
        except COLLABORATOR_ERRORS as e:
            logger.error(f"Export to {path} failed: {e}")
            raise QueryExecutionFailure(str(e)) from e

    def emit(self, text: str) -> None:
        self.echo(text)

    def data_host(self, attachment: Attachment) -> str:
        """
        Host of the Postgres data API serving this attachment.

        A configured data_host wins for every plan.
        """
        if self.settings.data_host:
            return self.settings.data_host
        if is_starter_plan(attachment):
            return self.settings.starter_data_host
        return self.settings.default_data_host

    async def run_query(self, app: str, database: Optional[str], build_query: QueryBuilder,
                        guard: Optional[Guard] = None) -> str:
        """
        Resolve, optionally guard, build the statement, run it and print the result.

        Args:
            app: Application name
            database: Attachment name or None for the primary database
            build_query: Coroutine producing the SQL for the resolved connection
            guard: Optional plan check applied before the query is built

        Returns:
            The printed result text
        """
        details = await self.resolve(app, database)
        if guard is not None:
            guard(details.attachment)

        sql = await build_query(details)
        output = await self.execute(details, sql)
        self.emit(output)
        return output

    async def close(self) -> None:
        if self.platform is not None:
            await self.platform.aclose()
