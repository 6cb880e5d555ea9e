"""
SQL catalog for the pg-extras diagnostics.

Every function here is pure: it returns the statement text for one
diagnostic and performs no I/O.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .errors import InvalidArgument

DEFAULT_LIMIT = 10
PREFIX_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,47}$")


class ColumnNaming(Enum):
    """Column naming generation of pg_stat_statements."""
    LEGACY = "legacy"
    CURRENT = "current"


@dataclass(frozen=True)
class StatementColumns:
    """pg_stat_statements column names for the connected server version."""
    exec_time: ColumnNaming = ColumnNaming.CURRENT
    blk_time: ColumnNaming = ColumnNaming.CURRENT

    @property
    def total_exec_time(self) -> str:
        return "total_exec_time" if self.exec_time is ColumnNaming.CURRENT else "total_time"

    @property
    def blk_read_time(self) -> str:
        return "shared_blk_read_time" if self.blk_time is ColumnNaming.CURRENT else "blk_read_time"

    @property
    def blk_write_time(self) -> str:
        return "shared_blk_write_time" if self.blk_time is ColumnNaming.CURRENT else "blk_write_time"


def truncated(column: str, truncate: bool) -> str:
    """Return the column, cut to 40 characters when truncate is set."""
    if not truncate:
        return column
    return f"CASE WHEN length({column}) <= 40 THEN {column} ELSE substr({column}, 0, 39) || '...' END"


def validate_limit(value: Optional[Union[str, int]]) -> int:
    """
    Parse the number of rows to display.

    Args:
        value: Raw flag value; None selects the default

    Returns:
        A positive integer

    Raises:
        InvalidArgument: If the value is not a positive integer
    """
    if value is None:
        return DEFAULT_LIMIT
    text = str(value).strip()
    if not re.fullmatch(r"\d+", text) or int(text) <= 0:
        raise InvalidArgument(f'Cannot parse num param value "{value}" to a positive number')
    return int(text)


def validate_prefix(prefix: Optional[str]) -> str:
    """
    Check a foreign data wrapper prefix before it is placed in SQL.

    Raises:
        InvalidArgument: If the prefix is not a plain identifier
    """
    if not prefix or not PREFIX_PATTERN.match(prefix):
        raise InvalidArgument(
            f'Invalid prefix "{prefix}": use letters, digits and underscores, '
            f'starting with a letter or underscore (at most 48 characters)'
        )
    return prefix


def server_version_at_least_query(version_num: int) -> str:
    return f"SELECT current_setting('server_version_num')::numeric >= {int(version_num)}"


def pg_stat_statements_available_query() -> str:
    return """
SELECT exists(
  SELECT 1 FROM pg_extension e LEFT JOIN pg_namespace n ON n.oid = e.extnamespace
  WHERE e.extname='pg_stat_statements' AND n.nspname = 'public'
) AS available
""".strip()


def stats_reset_statements_query() -> str:
    return "select pg_stat_statements_reset()"


def cache_hit_query() -> str:
    return """
SELECT
  'index hit rate' AS name,
  (sum(idx_blks_hit)) / nullif(sum(idx_blks_hit + idx_blks_read),0) AS ratio
FROM pg_statio_user_indexes
UNION ALL
SELECT
 'table hit rate' AS name,
  sum(heap_blks_hit) / nullif(sum(heap_blks_hit) + sum(heap_blks_read),0) AS ratio
FROM pg_statio_user_tables;
""".strip()


def index_usage_query() -> str:
    return """
SELECT relname,
   CASE idx_scan
     WHEN 0 THEN 'Insufficient data'
     ELSE (100 * idx_scan / (seq_scan + idx_scan))::text
   END percent_of_times_index_used,
   n_live_tup rows_in_table
 FROM
   pg_stat_user_tables
 ORDER BY
   n_live_tup DESC;
""".strip()


def blocking_query() -> str:
    return """
SELECT bl.pid AS blocked_pid,
  ka.query AS blocking_statement,
  now() - ka.query_start AS blocking_duration,
  kl.pid AS blocking_pid,
  a.query AS blocked_statement,
  now() - a.query_start AS blocked_duration
FROM pg_catalog.pg_locks bl
JOIN pg_catalog.pg_stat_activity a
  ON bl.pid = a.pid
JOIN pg_catalog.pg_locks kl
  JOIN pg_catalog.pg_stat_activity ka
    ON kl.pid = ka.pid
ON bl.transactionid = kl.transactionid AND bl.pid != kl.pid
WHERE NOT bl.granted
""".strip()


def locks_query(truncate: bool = False) -> str:
    snippet = truncated("pg_stat_activity.query", truncate)
    return f"""
SELECT
  pg_stat_activity.pid,
  pg_class.relname,
  pg_locks.transactionid,
  pg_locks.granted,
  {snippet} AS query_snippet,
  age(now(),pg_stat_activity.query_start) AS "age"
FROM pg_stat_activity,pg_locks left
OUTER JOIN pg_class
  ON (pg_locks.relation = pg_class.oid)
WHERE pg_stat_activity.query <> '<insufficient privilege>'
  AND pg_locks.pid = pg_stat_activity.pid
  AND pg_locks.mode = 'ExclusiveLock'
  AND pg_stat_activity.pid <> pg_backend_pid() order by query_start;
""".strip()


def _statements_query(columns: StatementColumns, truncate: bool, order_by: str, limit: int) -> str:
    exec_time = columns.total_exec_time
    return f"""
SELECT interval '1 millisecond' * {exec_time} AS total_exec_time,
to_char(({exec_time}/sum({exec_time}) OVER()) * 100, 'FM90D0') || '%'  AS prop_exec_time,
to_char(calls, 'FM999G999G999G990') AS ncalls,
interval '1 millisecond' * ({columns.blk_read_time} + {columns.blk_write_time}) AS sync_io_time,
{truncated("query", truncate)} AS query
FROM pg_stat_statements WHERE userid = (SELECT usesysid FROM pg_user WHERE usename = current_user LIMIT 1)
ORDER BY {order_by} DESC
LIMIT {limit}
""".strip()


def outliers_query(columns: StatementColumns, truncate: bool = False, limit: int = DEFAULT_LIMIT) -> str:
    """Queries with the longest execution time in aggregate."""
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise InvalidArgument(f'Cannot parse num param value "{limit}" to a positive number')
    return _statements_query(columns, truncate, columns.total_exec_time, limit)


def calls_query(columns: StatementColumns, truncate: bool = False) -> str:
    """Queries with the highest frequency of execution."""
    return _statements_query(columns, truncate, "calls", DEFAULT_LIMIT)


def extensions_query(essential: bool) -> str:
    setting = "rds.allowed_extensions" if essential else "extwlist.extensions"
    return f"""
SELECT *
FROM pg_available_extensions
WHERE name IN (SELECT unnest(string_to_array(current_setting('{setting}'), ',')))
""".strip()


def fdwsql_query(prefix: str) -> str:
    """Generate CREATE FOREIGN TABLE statements for every visible table and view."""
    return f"""
SELECT
  'CREATE FOREIGN TABLE '
  || quote_ident('{prefix}_' || c.relname)
  || '(' || array_to_string(array_agg(quote_ident(a.attname) || ' ' || t.typname), ', ') || ') '
  || ' SERVER {prefix}_db OPTIONS'
  || ' (schema_name ''' || quote_ident(n.nspname) || ''', table_name ''' || quote_ident(c.relname) || ''');'
FROM
  pg_class     c,
  pg_attribute a,
  pg_type      t,
  pg_namespace n
WHERE
  a.attnum > 0
  AND a.attrelid = c.oid
  AND a.atttypid = t.oid
  AND n.oid = c.relnamespace
  AND c.relkind in ('r', 'v')
  AND n.nspname <> 'pg_catalog'
  AND n.nspname <> 'information_schema'
  AND n.nspname !~ '^pg_toast'
  AND pg_catalog.pg_table_is_visible(c.oid)
GROUP BY c.relname, n.nspname
ORDER BY c.relname;
""".strip()


def fdw_setup_statements(prefix: str, details) -> list:
    """The statements that register the database as a foreign server."""
    return [
        "CREATE EXTENSION IF NOT EXISTS postgres_fdw;",
        f"DROP SERVER IF EXISTS {prefix}_db;",
        f"CREATE SERVER {prefix}_db\n"
        f"  FOREIGN DATA WRAPPER postgres_fdw\n"
        f"  OPTIONS (dbname '{details.database}', host '{details.host}');",
        f"CREATE USER MAPPING FOR CURRENT_USER\n"
        f"  SERVER {prefix}_db\n"
        f"  OPTIONS (user '{details.user}', password '{details.password}');",
    ]


def index_size_query() -> str:
    return """
SELECT c.relname AS name,
  pg_size_pretty(sum(c.relpages::bigint*8192)::bigint) AS size
FROM pg_class c
LEFT JOIN pg_namespace n ON (n.oid = c.relnamespace)
WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
AND n.nspname !~ '^pg_toast'
AND c.relkind='i'
GROUP BY c.relname
ORDER BY sum(c.relpages) DESC;
""".strip()


def total_index_size_query() -> str:
    return """
SELECT pg_size_pretty(sum(c.relpages::bigint*8192)::bigint) AS size
FROM pg_class c
LEFT JOIN pg_namespace n ON (n.oid = c.relnamespace)
WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
AND n.nspname !~ '^pg_toast'
AND c.relkind='i';
""".strip()


def table_size_query() -> str:
    return """
SELECT c.relname AS name,
  pg_size_pretty(pg_table_size(c.oid)) AS size
FROM pg_class c
LEFT JOIN pg_namespace n ON (n.oid = c.relnamespace)
WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
AND n.nspname !~ '^pg_toast'
AND c.relkind='r'
ORDER BY pg_table_size(c.oid) DESC;
""".strip()


def table_indexes_size_query() -> str:
    return """
SELECT c.relname AS table,
  pg_size_pretty(pg_indexes_size(c.oid)) AS index_size
FROM pg_class c
LEFT JOIN pg_namespace n ON (n.oid = c.relnamespace)
WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
AND n.nspname !~ '^pg_toast'
AND c.relkind='r'
ORDER BY pg_indexes_size(c.oid) DESC;
""".strip()


def total_table_size_query() -> str:
    return """
SELECT c.relname AS name,
  pg_size_pretty(pg_total_relation_size(c.oid)) AS size
FROM pg_class c
LEFT JOIN pg_namespace n ON (n.oid = c.relnamespace)
WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
AND n.nspname !~ '^pg_toast'
AND c.relkind='r'
ORDER BY pg_total_relation_size(c.oid) DESC;
""".strip()


def unused_indexes_query() -> str:
    return """
SELECT
  schemaname || '.' || relname AS table,
  indexrelname AS index,
  pg_size_pretty(pg_relation_size(i.indexrelid)) AS index_size,
  idx_scan as index_scans
FROM pg_stat_user_indexes ui
JOIN pg_index i ON ui.indexrelid = i.indexrelid
WHERE NOT indisunique AND idx_scan < 50 AND pg_relation_size(relid) > 5 * 8192
ORDER BY pg_relation_size(i.indexrelid) / nullif(idx_scan, 0) DESC NULLS FIRST,
pg_relation_size(i.indexrelid) DESC;
""".strip()


def seq_scans_query() -> str:
    return """
SELECT relname AS name,
       seq_scan as count
FROM
  pg_stat_user_tables
ORDER BY seq_scan DESC;
""".strip()


def records_rank_query() -> str:
    return """
SELECT
  relname AS name,
  n_live_tup AS estimated_count
FROM
  pg_stat_user_tables
ORDER BY
  n_live_tup DESC;
""".strip()


def long_running_queries_query() -> str:
    return """
SELECT
  pid,
  now() - pg_stat_activity.query_start AS duration,
  query AS query
FROM
  pg_stat_activity
WHERE
  pg_stat_activity.query <> ''::text
  AND state <> 'idle'
  AND now() - pg_stat_activity.query_start > interval '5 minutes'
ORDER BY
  now() - pg_stat_activity.query_start DESC;
""".strip()


def user_connections_query() -> str:
    return """
SELECT
  usename AS credential,
  count(*) AS connections
FROM pg_stat_activity
WHERE state = 'active'
GROUP BY usename
ORDER BY connections DESC;
""".strip()


def vacuum_stats_query() -> str:
    return """
WITH table_opts AS (
  SELECT
    pg_class.oid, relname, nspname, array_to_string(reloptions, '') AS relopts
  FROM
     pg_class INNER JOIN pg_namespace ns ON relnamespace = ns.oid
), vacuum_settings AS (
  SELECT
    oid, relname, nspname,
    CASE
      WHEN relopts LIKE '%autovacuum_vacuum_threshold%'
        THEN substring(relopts, '.*autovacuum_vacuum_threshold=([0-9.]+).*')::integer
        ELSE current_setting('autovacuum_vacuum_threshold')::integer
      END AS autovacuum_vacuum_threshold,
    CASE
      WHEN relopts LIKE '%autovacuum_vacuum_scale_factor%'
        THEN substring(relopts, '.*autovacuum_vacuum_scale_factor=([0-9.]+).*')::real
        ELSE current_setting('autovacuum_vacuum_scale_factor')::real
      END AS autovacuum_vacuum_scale_factor
  FROM
    table_opts
)
SELECT
  vacuum_settings.nspname AS schema,
  vacuum_settings.relname AS table,
  to_char(psut.last_vacuum, 'YYYY-MM-DD HH24:MI') AS last_vacuum,
  to_char(psut.last_autovacuum, 'YYYY-MM-DD HH24:MI') AS last_autovacuum,
  to_char(pg_class.reltuples, '9G999G999G999') AS rowcount,
  to_char(psut.n_dead_tup, '9G999G999G999') AS dead_rowcount,
  to_char(autovacuum_vacuum_threshold
       + (autovacuum_vacuum_scale_factor::numeric * pg_class.reltuples), '9G999G999G999') AS autovacuum_threshold,
  CASE
    WHEN autovacuum_vacuum_threshold + (autovacuum_vacuum_scale_factor::numeric * pg_class.reltuples) < psut.n_dead_tup
    THEN 'yes'
  END AS expect_autovacuum
FROM
  pg_stat_user_tables psut INNER JOIN pg_class ON psut.relid = pg_class.oid
    INNER JOIN vacuum_settings ON pg_class.oid = vacuum_settings.oid
ORDER BY 1
""".strip()


def bloat_query() -> str:
    return """
WITH constants AS (
  SELECT current_setting('block_size')::numeric AS bs, 23 AS hdr, 4 AS ma
), bloat_info AS (
  SELECT
    ma,bs,schemaname,tablename,
    (datawidth+(hdr+ma-(case when hdr%ma=0 THEN ma ELSE hdr%ma END)))::numeric AS datahdr,
    (maxfracsum*(nullhdr+ma-(case when nullhdr%ma=0 THEN ma ELSE nullhdr%ma END))) AS nullhdr2
  FROM (
    SELECT
      schemaname, tablename, hdr, ma, bs,
      SUM((1-null_frac)*avg_width) AS datawidth,
      MAX(null_frac) AS maxfracsum,
      hdr+(
        SELECT 1+count(*)/8
        FROM pg_stats s2
        WHERE null_frac<>0 AND s2.schemaname = s.schemaname AND s2.tablename = s.tablename
      ) AS nullhdr
    FROM pg_stats s, constants
    GROUP BY 1,2,3,4,5
  ) AS foo
), table_bloat AS (
  SELECT
    schemaname, tablename, cc.relpages, bs,
    CEIL((cc.reltuples*((datahdr+ma-
      (CASE WHEN datahdr%ma=0 THEN ma ELSE datahdr%ma END))+nullhdr2+4))/(bs-20::float)) AS otta
  FROM bloat_info
  JOIN pg_class cc ON cc.relname = bloat_info.tablename
  JOIN pg_namespace nn ON cc.relnamespace = nn.oid AND nn.nspname = bloat_info.schemaname AND nn.nspname <> 'information_schema'
), index_bloat AS (
  SELECT
    schemaname, tablename, bs,
    COALESCE(c2.relname,'?') AS iname, COALESCE(c2.reltuples,0) AS ituples, COALESCE(c2.relpages,0) AS ipages,
    COALESCE(CEIL((c2.reltuples*(datahdr-12))/(bs-20::float)),0) AS iotta
  FROM bloat_info
  JOIN pg_class cc ON cc.relname = bloat_info.tablename
  JOIN pg_namespace nn ON cc.relnamespace = nn.oid AND nn.nspname = bloat_info.schemaname AND nn.nspname <> 'information_schema'
  JOIN pg_index i ON indrelid = cc.oid
  JOIN pg_class c2 ON c2.oid = i.indexrelid
)
SELECT
  type, schemaname, object_name, bloat, pg_size_pretty(raw_waste) as waste
FROM
(SELECT
  'table' as type,
  schemaname,
  tablename as object_name,
  ROUND(CASE WHEN otta=0 THEN 0.0 ELSE table_bloat.relpages/otta::numeric END,1) AS bloat,
  CASE WHEN relpages < otta THEN '0' ELSE (bs*(table_bloat.relpages-otta)::bigint)::bigint END AS raw_waste
FROM
  table_bloat
    UNION
SELECT
  'index' as type,
  schemaname,
  tablename || '::' || iname as object_name,
  ROUND(CASE WHEN iotta=0 OR ipages=0 THEN 0.0 ELSE ipages/iotta::numeric END,1) AS bloat,
  CASE WHEN ipages < iotta THEN '0' ELSE (bs*(ipages-iotta))::bigint END AS raw_waste
FROM
  index_bloat) bloat_summary
ORDER BY raw_waste DESC, bloat DESC
""".strip()


def mandelbrot_query() -> str:
    return """
WITH RECURSIVE Z(IX, IY, CX, CY, X, Y, I) AS (
          SELECT IX, IY, X::float, Y::float, X::float, Y::float, 0
          FROM (select -2.2 + 0.031 * i, i from generate_series(0,101) as i) as xgen(x,ix),
               (select -1.5 + 0.031 * i, i from generate_series(0,101) as i) as ygen(y,iy)
          UNION ALL
          SELECT IX, IY, CX, CY, X * X - Y * Y + CX AS X, Y * X * 2 + CY, I + 1
          FROM Z
          WHERE X * X + Y * Y < 16::float
          AND I < 100
    )
SELECT array_to_string(array_agg(SUBSTRING(' .,,,-----++++%%%%@@@@#### ', LEAST(GREATEST(I,1),27), 1)),'')
FROM (
      SELECT IX, IY, MAX(I) AS I
      FROM Z
      GROUP BY IY, IX
      ORDER BY IY, IX
     ) AS ZT
GROUP BY IY
ORDER BY IY
""".strip()


def schema_privileges_query() -> str:
    return (
        "SELECT r.rolname AS user_name, nsp.nspname AS schema_name, "
        "array_to_string(array_agg(distinct p.perm), ';') AS privilege_types "
        "FROM pg_namespace AS nsp CROSS JOIN pg_roles AS r "
        "CROSS JOIN unnest(ARRAY['CREATE', 'USAGE']) AS p (perm) "
        "WHERE nspname NOT IN ('pg_catalog', 'information_schema') "
        "AND nspname NOT LIKE 'pg_temp%' AND nspname NOT LIKE 'pg_toast%' "
        "AND has_schema_privilege(rolname, nsp.oid, p.perm) "
        "GROUP BY 1, 2 ORDER BY 1 ASC"
    )


def table_privileges_query() -> str:
    return (
        "SELECT r.rolname AS user_name, nsp.nspname AS schema_name, c.relname AS table_name, "
        "c.relkind AS relkind, array_to_string(array_agg(distinct p.perm), ';') AS privilege_types "
        "FROM pg_class AS c CROSS JOIN pg_roles AS r "
        "CROSS JOIN unnest(ARRAY['SELECT', 'INSERT', 'UPDATE', 'DELETE', 'TRUNCATE', 'REFERENCES', 'TRIGGER']) AS p (perm) "
        "INNER JOIN pg_namespace AS nsp ON nsp.oid = c.relnamespace "
        "WHERE relkind IN ('r', 'v', 'm', 'f', 'p') "
        "AND nspname NOT IN ('pg_catalog', 'information_schema') "
        "AND has_table_privilege(rolname, c.oid, p.perm) "
        "GROUP BY 1, 2, 3, 4 ORDER BY 1 ASC"
    )
