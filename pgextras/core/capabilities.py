"""
Server capability probes.

Each probe runs a single boolean query in tuple-only mode and reads psql's
't' / 'f' answer. Anything else aborts the invocation; guessing a column
name would make the diagnostic query fail.
"""

import logging

from .errors import CapabilityDetectionFailure, MissingExtension
from .queries import (
    ColumnNaming, StatementColumns,
    pg_stat_statements_available_query, server_version_at_least_query
)

logger = logging.getLogger(__name__)

# total_time became total_exec_time in Postgres 13
EXEC_TIME_VERSION = 130000
# blk_read_time/blk_write_time became shared_blk_* in Postgres 17
BLK_TIME_VERSION = 170000

TRUE_MARKER = "t"
FALSE_MARKER = "f"


def parse_boolean_output(raw: str) -> bool:
    """
    Read a boolean from tuple-only output.

    Args:
        raw: Output of a one-row, one-column boolean query

    Returns:
        True for 't', False for 'f'

    Raises:
        CapabilityDetectionFailure: For any other first line
    """
    value = (raw or "").split("\n")[0].strip()
    if value == TRUE_MARKER:
        return True
    if value == FALSE_MARKER:
        return False
    raise CapabilityDetectionFailure(
        f'Unable to determine database version, expected "{TRUE_MARKER}" or "{FALSE_MARKER}", got: "{value}"'
    )


async def _server_version_at_least(runner, details, version_num: int) -> bool:
    raw = await runner.execute(details, server_version_at_least_query(version_num), tuples_only=True)
    result = parse_boolean_output(raw)
    logger.debug(f"server_version_num >= {version_num}: {result}")
    return result


async def probe_total_exec_time(runner, details) -> ColumnNaming:
    """Naming of the total execution time column in pg_stat_statements."""
    if await _server_version_at_least(runner, details, EXEC_TIME_VERSION):
        return ColumnNaming.CURRENT
    return ColumnNaming.LEGACY


async def probe_blk_time(runner, details) -> ColumnNaming:
    """Naming of the block read/write time columns in pg_stat_statements."""
    if await _server_version_at_least(runner, details, BLK_TIME_VERSION):
        return ColumnNaming.CURRENT
    return ColumnNaming.LEGACY


async def detect_statement_columns(runner, details) -> StatementColumns:
    return StatementColumns(
        exec_time=await probe_total_exec_time(runner, details),
        blk_time=await probe_blk_time(runner, details),
    )


async def ensure_pg_stat_statements(runner, details) -> None:
    """
    Check that pg_stat_statements is installed in the public schema.

    Raises:
        MissingExtension: If the extension is not installed
    """
    raw = await runner.execute(details, pg_stat_statements_available_query(), tuples_only=True)
    if not parse_boolean_output(raw):
        raise MissingExtension(
            "pg_stat_statements extension need to be installed in the public schema first.\n"
            "You can install it by running:\n"
            "\n"
            "    CREATE EXTENSION pg_stat_statements;"
        )
