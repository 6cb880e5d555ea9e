"""
PostgreSQL database connector for pg-extras.

Runs one statement per connection with asyncpg and renders the result the
way psql prints it.
"""

import asyncio
import logging
import time
from typing import Optional

import asyncpg

from .base import DatabaseConnector, ConnectionDetails
from .formatting import NUMERIC_TYPES, render_table

logger = logging.getLogger(__name__)


class PostgreSQLConnector(DatabaseConnector):
    """
    PostgreSQL-specific database connector.

    Opens a fresh connection for every statement; nothing is pooled or
    reused across calls.
    """

    def __init__(self, ssl_mode: str = "require", connect_timeout: int = 30,
                 command_timeout: Optional[int] = 300):
        """Initialize PostgreSQL connector."""
        self.ssl_mode = ssl_mode
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    async def _connect(self, details: ConnectionDetails) -> asyncpg.Connection:
        logger.debug(f"Connecting to PostgreSQL: {details.host}:{details.port}/{details.database}")
        return await asyncpg.connect(
            host=details.host,
            port=details.port,
            user=details.user,
            password=details.password,
            database=details.database,
            ssl=self.ssl_mode,
            timeout=self.connect_timeout,
            command_timeout=self.command_timeout,
            server_settings={'application_name': 'pg-extras'}
        )

    async def execute_statement(
        self,
        details: ConnectionDetails,
        sql: str,
        tuples_only: bool = False
    ) -> str:
        """Execute a statement on PostgreSQL and render its rows."""
        start_time = time.time()
        connection = await self._connect(details)

        try:
            statement = await connection.prepare(sql)
            attributes = statement.get_attributes()
            records = await statement.fetch()
        finally:
            await connection.close()

        execution_time = (time.time() - start_time) * 1000
        logger.debug(f"Statement returned {len(records)} rows in {execution_time:.1f}ms")

        columns = [attr.name for attr in attributes]
        numeric = {i for i, attr in enumerate(attributes) if attr.type.name in NUMERIC_TYPES}
        rows = [tuple(record.values()) for record in records]

        return render_table(columns, rows, numeric_columns=numeric, tuples_only=tuples_only)

    async def copy_to_csv(
        self,
        details: ConnectionDetails,
        sql: str,
        path: str
    ) -> None:
        """Export a query result to a CSV file with COPY."""
        connection = await self._connect(details)

        try:
            await asyncio.wait_for(
                connection.copy_from_query(sql, output=path, format='csv', header=True),
                timeout=self.command_timeout
            )
        finally:
            await connection.close()

        logger.debug(f"Exported query result to {path}")
