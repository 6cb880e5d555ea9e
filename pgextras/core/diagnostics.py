"""
Diagnostic handlers.

One coroutine per pg-extras command. Each takes the runner built for the
invocation plus the parsed command arguments and prints its result.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from . import queries
from .capabilities import detect_statement_columns, ensure_pg_stat_statements
from .errors import InvalidArgument
from .executor import DiagnosticRunner
from .plans import ensure_essential_tier_plan, ensure_non_starter_plan, is_essential_plan
from ..connectors.formatting import render_records
from ..connectors.platform import AutovacuumModel, StatsResetResponse

logger = logging.getLogger(__name__)

# Diagnostics that run one fixed statement.
SIMPLE_DIAGNOSTICS: Dict[str, Callable[[], str]] = {
    "cache-hit": queries.cache_hit_query,
    "index-usage": queries.index_usage_query,
    "blocking": queries.blocking_query,
    "index-size": queries.index_size_query,
    "total-index-size": queries.total_index_size_query,
    "table-size": queries.table_size_query,
    "table-indexes-size": queries.table_indexes_size_query,
    "total-table-size": queries.total_table_size_query,
    "unused-indexes": queries.unused_indexes_query,
    "seq-scans": queries.seq_scans_query,
    "records-rank": queries.records_rank_query,
    "long-running-queries": queries.long_running_queries_query,
    "user-connections": queries.user_connections_query,
    "vacuum-stats": queries.vacuum_stats_query,
    "bloat": queries.bloat_query,
    "mandelbrot": queries.mandelbrot_query,
}

AUTOVACUUM_COLUMNS = [
    ("id", "#"),
    ("database", "Database"),
    ("username", "User"),
    ("query", "Query"),
]


async def run_simple(runner: DiagnosticRunner, name: str, app: str, database: Optional[str] = None) -> str:
    """Run one of the fixed-statement diagnostics."""
    query_fn = SIMPLE_DIAGNOSTICS[name]

    async def build(details):
        return query_fn()

    return await runner.run_query(app, database, build)


async def locks(runner: DiagnosticRunner, app: str, database: Optional[str] = None,
                truncate: bool = False) -> str:
    async def build(details):
        return queries.locks_query(truncate)

    return await runner.run_query(app, database, build)


async def outliers(runner: DiagnosticRunner, app: str, database: Optional[str] = None,
                   num: Optional[Union[str, int]] = None, truncate: bool = False,
                   reset: bool = False) -> Optional[str]:
    """
    Show the queries with the longest execution time in aggregate.

    Args:
        runner: Runner for this invocation
        app: Application name
        database: Attachment name
        num: Number of queries to display, validated before any network call
        truncate: Cut queries to 40 characters
        reset: Reset pg_stat_statements instead of reporting. The
            extension check runs before the reset as well.

    Returns:
        The printed output, or None after a reset
    """
    limit = queries.validate_limit(num)
    details = await runner.resolve(app, database)
    await ensure_pg_stat_statements(runner, details)

    if reset:
        await runner.execute(details, queries.stats_reset_statements_query())
        logger.info(f"pg_stat_statements reset on {details.attachment.name}")
        return None

    columns = await detect_statement_columns(runner, details)
    output = await runner.execute(details, queries.outliers_query(columns, truncate, limit))
    runner.emit(output)
    return output


async def calls(runner: DiagnosticRunner, app: str, database: Optional[str] = None,
                truncate: bool = False) -> str:
    """Show the queries with the highest frequency of execution."""
    async def build(details):
        await ensure_pg_stat_statements(runner, details)
        columns = await detect_statement_columns(runner, details)
        return queries.calls_query(columns, truncate)

    return await runner.run_query(app, database, build)


async def extensions(runner: DiagnosticRunner, app: str, database: Optional[str] = None) -> str:
    """List available and installed extensions allowed on the plan."""
    async def build(details):
        return queries.extensions_query(is_essential_plan(details.attachment))

    return await runner.run_query(app, database, build)


def filter_create_statements(output: str) -> str:
    return "\n".join(line for line in output.split("\n") if "CREATE" in line)


async def fdwsql(runner: DiagnosticRunner, app: str, prefix: str, database: Optional[str] = None) -> str:
    """
    Print the SQL that installs this database as a foreign server.

    The four setup statements are printed first, followed by one
    CREATE FOREIGN TABLE statement per visible table or view.
    """
    prefix = queries.validate_prefix(prefix)
    details = await runner.resolve(app, database)
    ensure_essential_tier_plan(details.attachment)

    for statement in queries.fdw_setup_statements(prefix, details):
        runner.emit(statement)

    output = await runner.execute(details, queries.fdwsql_query(prefix))
    output = filter_create_statements(output)
    runner.emit(output)
    return output


async def stats_reset(runner: DiagnosticRunner, app: str, database: Optional[str] = None) -> str:
    """Reset the database statistics through the data API."""
    attachment = await runner.resolve_attachment(app, database)
    ensure_essential_tier_plan(attachment)

    host = runner.data_host(attachment)
    payload = await runner.platform.put(
        f"/client/v11/databases/{attachment.addon_name}/stats_reset", host=host
    )
    response = StatsResetResponse.model_validate(payload or {})
    runner.emit(response.message)
    return response.message


async def list_autovacuums(runner: DiagnosticRunner, attachment) -> List[Dict]:
    payload = await runner.platform.get(
        f"/client/v11/databases/{attachment.addon_name}/autovacuums",
        host=runner.data_host(attachment)
    )
    ongoing = (payload or {}).get("ongoing", [])

    rows = []
    for index, item in enumerate(ongoing, 1):
        vacuum = AutovacuumModel.model_validate(item)
        rows.append({
            "id": index,
            "pid": vacuum.pid,
            "database": vacuum.database,
            "username": vacuum.username,
            "query": "autovacuum: VACUUM public." + vacuum.query.split(" ")[-1],
        })
    return rows


async def autovacuums(runner: DiagnosticRunner, app: str, database: Optional[str] = None,
                      cancel: bool = False, terminate: bool = False,
                      prompt: Optional[Callable[[str], Union[str, int]]] = None) -> List[Dict]:
    """
    List ongoing autovacuums and optionally stop one.

    Args:
        runner: Runner for this invocation
        app: Application name
        database: Attachment name
        cancel: Prompt for an autovacuum to cancel
        terminate: Prompt for an autovacuum to terminate (forced)
        prompt: Function asking the user for the row number

    Returns:
        The listed autovacuums
    """
    attachment = await runner.resolve_attachment(app, database)
    ensure_non_starter_plan(attachment)

    rows = await list_autovacuums(runner, attachment)
    runner.emit("=== Ongoing Autovacuums")
    runner.emit(render_records(rows, AUTOVACUUM_COLUMNS, footer=False))

    if not (cancel or terminate) or not rows:
        return rows

    action = "terminate" if terminate else "cancel"
    answer = prompt(f"{action} #") if prompt else None
    try:
        index = int(answer) - 1
    except (TypeError, ValueError):
        raise InvalidArgument(f'Invalid autovacuum number "{answer}"')
    if index < 0 or index >= len(rows):
        raise InvalidArgument(f'Invalid autovacuum number "{answer}": choose 1 to {len(rows)}')

    pid = rows[index]["pid"]
    force = "?force" if terminate else ""
    await runner.platform.delete(
        f"/client/v11/databases/{attachment.addon_name}/autovacuums/{pid}{force}",
        host=runner.data_host(attachment)
    )
    runner.emit(f"{'terminating' if terminate else 'canceling'} autovacuum {pid}... done")
    return rows


async def export_privileges(runner: DiagnosticRunner, app: str, kind: str,
                            database: Optional[str] = None,
                            now: Optional[datetime] = None) -> str:
    """
    Export schema or table privileges to a CSV file in the working directory.

    Args:
        kind: 'schema' or 'table'

    Returns:
        The name of the written file
    """
    query_fn = {
        "schema": queries.schema_privileges_query,
        "table": queries.table_privileges_query,
    }[kind]

    timestamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%S")
    filename = f"{timestamp}-{kind}-privileges.csv"

    details = await runner.resolve(app, database)
    await runner.copy_to_csv(details, query_fn(), filename)
    runner.emit(f"Results available in {filename}")
    return filename
