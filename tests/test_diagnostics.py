"""
Tests for the diagnostic handlers and the runner.
"""

from datetime import datetime

import asyncpg
import pytest

from pgextras.core import diagnostics
from pgextras.core.errors import (
    ConnectionResolutionFailure, InvalidArgument, MissingExtension,
    PlatformAPIError, QueryExecutionFailure, UnsupportedPlanTier
)
from pgextras.core.queries import cache_hit_query


class TestDiagnosticRunner:
    """Collaborator failures are wrapped into pg-extras errors."""

    @pytest.mark.asyncio
    async def test_run_query_prints_output(self, runner, connector):
        output = await diagnostics.run_simple(runner, "cache-hit", "test-app")

        assert output == "mock output"
        assert runner.printed == ["mock output"]
        assert connector.statements == [(cache_hit_query(), False)]

    @pytest.mark.asyncio
    async def test_statement_failure(self, make_runner, make_connector):
        connector = make_connector(error=asyncpg.PostgresError("relation does not exist"))
        runner = make_runner(connector=connector)

        with pytest.raises(QueryExecutionFailure, match="relation does not exist"):
            await diagnostics.run_simple(runner, "bloat", "test-app")
        assert runner.printed == []

    @pytest.mark.asyncio
    async def test_connection_failure(self, make_runner, make_connector):
        runner = make_runner(connector=make_connector(error=OSError("connection refused")))

        with pytest.raises(QueryExecutionFailure, match="connection refused"):
            await diagnostics.run_simple(runner, "seq-scans", "test-app")

    @pytest.mark.asyncio
    async def test_resolution_failure(self, make_runner, connector):
        runner = make_runner(connector=connector, resolve_error=PlatformAPIError("Couldn't find that app."))

        with pytest.raises(ConnectionResolutionFailure, match="Couldn't find that app."):
            await diagnostics.run_simple(runner, "cache-hit", "missing-app")
        assert connector.statements == []

    @pytest.mark.asyncio
    async def test_database_argument_is_forwarded(self, runner):
        await diagnostics.run_simple(runner, "index-usage", "test-app", "HEROKU_POSTGRESQL_RED")

        runner.resolver.resolve_database_connection.assert_awaited_once_with(
            "test-app", "HEROKU_POSTGRESQL_RED"
        )

    def test_data_host(self, runner, attachment):
        assert runner.data_host(attachment) == "api.data.heroku.com"
        attachment.plan_name = "heroku-postgresql:basic"
        assert runner.data_host(attachment) == "postgres-starter-api.heroku.com"

    @pytest.mark.parametrize("plan", ["heroku-postgresql:basic", "heroku-postgresql:premium-0"])
    def test_configured_data_host_applies_to_every_plan(self, runner, attachment, plan):
        runner.settings.data_host = "data.example.com"
        attachment.plan_name = plan

        assert runner.data_host(attachment) == "data.example.com"

    @pytest.mark.asyncio
    async def test_stats_reset_uses_configured_data_host(self, runner):
        runner.settings.data_host = "data.example.com"
        runner.platform.put.return_value = {"message": "Statistics reset"}

        await diagnostics.stats_reset(runner, "test-app")

        runner.platform.put.assert_awaited_once_with(
            "/client/v11/databases/postgresql-test-12345/stats_reset", host="data.example.com"
        )

    @pytest.mark.asyncio
    async def test_close(self, runner):
        await runner.close()
        runner.platform.aclose.assert_awaited_once()


class TestLocks:

    @pytest.mark.asyncio
    async def test_truncate(self, runner, connector):
        await diagnostics.locks(runner, "test-app", truncate=True)
        assert "substr(pg_stat_activity.query, 0, 39) || '...'" in connector.statements[0][0]

    @pytest.mark.asyncio
    async def test_full_query(self, runner, connector):
        await diagnostics.locks(runner, "test-app")
        assert "substr(" not in connector.statements[0][0]


class TestOutliers:
    """Outliers validates, probes, then reports or resets."""

    @pytest.mark.asyncio
    async def test_invalid_num_before_network(self, runner, connector):
        with pytest.raises(InvalidArgument, match='Cannot parse num param value "abc"'):
            await diagnostics.outliers(runner, "test-app", num="abc")

        runner.resolver.resolve_database_connection.assert_not_called()
        assert connector.statements == []

    @pytest.mark.asyncio
    async def test_report(self, runner, connector):
        output = await diagnostics.outliers(runner, "test-app", num="5")

        assert output == "mock output"
        assert runner.printed == ["mock output"]
        sql = connector.statements[-1][0]
        assert "LIMIT 5" in sql
        assert "total_exec_time" in sql
        assert "shared_blk_read_time" in sql
        assert [t for _, t in connector.statements] == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_legacy_columns(self, make_runner, make_connector):
        connector = make_connector(answers={
            "extname='pg_stat_statements'": " t",
            ">= 130000": " f",
            ">= 170000": " f",
        })
        runner = make_runner(connector=connector)

        await diagnostics.outliers(runner, "test-app")

        sql = connector.statements[-1][0]
        assert "interval '1 millisecond' * total_time" in sql
        assert "blk_read_time + blk_write_time" in sql
        assert "LIMIT 10" in sql

    @pytest.mark.asyncio
    async def test_reset(self, runner, connector):
        result = await diagnostics.outliers(runner, "test-app", reset=True)

        assert result is None
        assert runner.printed == []
        assert connector.statements[-1] == ("select pg_stat_statements_reset()", False)
        assert "extname='pg_stat_statements'" in connector.statements[0][0]

    @pytest.mark.asyncio
    async def test_reset_requires_extension(self, make_runner, make_connector):
        connector = make_connector(answers={"extname='pg_stat_statements'": " f"})
        runner = make_runner(connector=connector)

        with pytest.raises(MissingExtension):
            await diagnostics.outliers(runner, "test-app", reset=True)
        assert all("pg_stat_statements_reset" not in sql for sql, _ in connector.statements)

    @pytest.mark.asyncio
    async def test_missing_extension(self, make_runner, make_connector):
        connector = make_connector(answers={"extname='pg_stat_statements'": " f"})
        runner = make_runner(connector=connector)

        with pytest.raises(MissingExtension):
            await diagnostics.outliers(runner, "test-app")
        assert len(connector.statements) == 1


class TestCalls:

    @pytest.mark.asyncio
    async def test_orders_by_calls(self, runner, connector):
        await diagnostics.calls(runner, "test-app", truncate=True)

        sql = connector.statements[-1][0]
        assert "ORDER BY calls DESC" in sql
        assert "LIMIT 10" in sql
        assert "substr(query, 0, 39)" in sql


class TestExtensions:
    """The allow-list setting follows the plan."""

    @pytest.mark.asyncio
    async def test_essential_plan(self, make_runner, connector):
        runner = make_runner(connector=connector, plan_name="heroku-postgresql:essential-0")
        await diagnostics.extensions(runner, "test-app")
        assert "rds.allowed_extensions" in connector.statements[0][0]

    @pytest.mark.asyncio
    async def test_other_plan(self, runner, connector):
        await diagnostics.extensions(runner, "test-app")
        assert "extwlist.extensions" in connector.statements[0][0]


class TestFdwsql:
    """Setup statements first, then only the CREATE lines."""

    def test_filter_create_statements(self):
        output = (
            "                  ?column?\n"
            "--------------------------------------------\n"
            " CREATE FOREIGN TABLE a_users(id int4)  SERVER a_db OPTIONS (schema_name 'public', table_name 'users');\n"
            "(1 row)\n"
        )
        assert diagnostics.filter_create_statements(output) == (
            " CREATE FOREIGN TABLE a_users(id int4)  SERVER a_db OPTIONS (schema_name 'public', table_name 'users');"
        )

    @pytest.mark.asyncio
    async def test_output(self, make_runner, make_connector):
        connector = make_connector(output="?column?\n---\n CREATE FOREIGN TABLE x_t(a int4);\n(1 row)")
        runner = make_runner(connector=connector)

        await diagnostics.fdwsql(runner, "test-app", "x")

        assert runner.printed[0] == "CREATE EXTENSION IF NOT EXISTS postgres_fdw;"
        assert runner.printed[1] == "DROP SERVER IF EXISTS x_db;"
        assert "OPTIONS (dbname 'test-database', host 'test-host');" in runner.printed[2]
        assert "OPTIONS (user 'test-user', password 'test-password');" in runner.printed[3]
        assert runner.printed[4] == " CREATE FOREIGN TABLE x_t(a int4);"

    @pytest.mark.asyncio
    async def test_essential_plan_rejected(self, make_runner, connector):
        runner = make_runner(connector=connector, plan_name="heroku-postgresql:essential-1")

        with pytest.raises(UnsupportedPlanTier):
            await diagnostics.fdwsql(runner, "test-app", "x")
        assert runner.printed == []
        assert connector.statements == []

    @pytest.mark.asyncio
    async def test_invalid_prefix(self, runner):
        with pytest.raises(InvalidArgument):
            await diagnostics.fdwsql(runner, "test-app", "x'; drop table users; --")
        runner.resolver.resolve_database_connection.assert_not_called()


class TestStatsReset:
    """Statistics reset goes through the data API."""

    @pytest.mark.asyncio
    async def test_reset(self, runner, connector):
        runner.platform.put.return_value = {"message": "Statistics reset"}

        message = await diagnostics.stats_reset(runner, "test-app")

        assert message == "Statistics reset"
        assert runner.printed == ["Statistics reset"]
        runner.platform.put.assert_awaited_once_with(
            "/client/v11/databases/postgresql-test-12345/stats_reset", host="api.data.heroku.com"
        )
        assert connector.statements == []

    @pytest.mark.asyncio
    async def test_essential_plan_rejected(self, make_runner):
        runner = make_runner(plan_name="heroku-postgresql:essential-0")

        with pytest.raises(UnsupportedPlanTier, match="not supported"):
            await diagnostics.stats_reset(runner, "test-app")
        runner.platform.put.assert_not_called()

    @pytest.mark.asyncio
    async def test_api_error_propagates(self, runner):
        runner.platform.put.side_effect = PlatformAPIError("Forbidden", status_code=403)

        with pytest.raises(PlatformAPIError, match="Forbidden"):
            await diagnostics.stats_reset(runner, "test-app")
        assert runner.printed == []


ONGOING = {
    "ongoing": [
        {"pid": 4101, "database": "d1", "username": "u1", "query": "autovacuum: VACUUM public.users"},
        {"pid": 4102, "database": "d1", "username": "u1", "query": "autovacuum: VACUUM ANALYZE orders"},
    ]
}


class TestAutovacuums:
    """Listing and stopping ongoing autovacuums."""

    @pytest.mark.asyncio
    async def test_list(self, runner):
        runner.platform.get.return_value = ONGOING

        rows = await diagnostics.autovacuums(runner, "test-app")

        assert [row["pid"] for row in rows] == [4101, 4102]
        assert rows[1]["query"] == "autovacuum: VACUUM public.orders"
        assert runner.printed[0] == "=== Ongoing Autovacuums"
        assert "public.users" in runner.printed[1]
        assert "rows)" not in runner.printed[1]
        runner.platform.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel(self, runner):
        runner.platform.get.return_value = ONGOING

        await diagnostics.autovacuums(runner, "test-app", cancel=True, prompt=lambda text: "2")

        runner.platform.delete.assert_awaited_once_with(
            "/client/v11/databases/postgresql-test-12345/autovacuums/4102", host="api.data.heroku.com"
        )
        assert runner.printed[-1] == "canceling autovacuum 4102... done"

    @pytest.mark.asyncio
    async def test_terminate(self, runner):
        runner.platform.get.return_value = ONGOING

        await diagnostics.autovacuums(runner, "test-app", terminate=True, prompt=lambda text: 1)

        runner.platform.delete.assert_awaited_once_with(
            "/client/v11/databases/postgresql-test-12345/autovacuums/4101?force", host="api.data.heroku.com"
        )
        assert runner.printed[-1] == "terminating autovacuum 4101... done"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["0", "3", "first", ""])
    async def test_invalid_choice(self, runner, answer):
        runner.platform.get.return_value = ONGOING

        with pytest.raises(InvalidArgument, match="Invalid autovacuum number"):
            await diagnostics.autovacuums(runner, "test-app", cancel=True, prompt=lambda text: answer)
        runner.platform.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_nothing_to_cancel(self, runner):
        runner.platform.get.return_value = {"ongoing": []}
        prompts = []

        rows = await diagnostics.autovacuums(runner, "test-app", cancel=True, prompt=prompts.append)

        assert rows == []
        assert prompts == []

    @pytest.mark.asyncio
    async def test_hobby_plan_rejected(self, make_runner):
        runner = make_runner(plan_name="heroku-postgresql:dev")

        with pytest.raises(UnsupportedPlanTier, match="Hobby-tier"):
            await diagnostics.autovacuums(runner, "test-app")
        runner.platform.get.assert_not_called()


class TestExportPrivileges:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", ["schema", "table"])
    async def test_export(self, runner, connector, kind):
        now = datetime(2024, 5, 1, 12, 30, 5)

        filename = await diagnostics.export_privileges(runner, "test-app", kind, now=now)

        assert filename == f"2024-05-01T12-30-05-{kind}-privileges.csv"
        assert connector.exports[0][1] == filename
        assert runner.printed == [f"Results available in {filename}"]

    @pytest.mark.asyncio
    async def test_export_failure(self, make_runner, make_connector):
        class FailingConnector(make_connector):
            async def copy_to_csv(self, details, sql, path):
                raise OSError("permission denied")

        runner = make_runner(connector=FailingConnector())

        with pytest.raises(QueryExecutionFailure, match="permission denied"):
            await diagnostics.export_privileges(runner, "test-app", "schema")
        assert runner.printed == []
