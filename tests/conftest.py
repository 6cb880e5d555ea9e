"""
Shared fixtures for the pg-extras test suite.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from pgextras.config import Settings
from pgextras.connectors.base import Attachment, ConnectionDetails, DatabaseConnector
from pgextras.core.executor import DiagnosticRunner

PROBE_ANSWERS = {
    ">= 130000": " t",
    ">= 170000": " t",
    "extname='pg_stat_statements'": " t",
}


class FakeConnector(DatabaseConnector):
    """Connector that records statements and replies with canned text."""

    def __init__(self, output="mock output", answers=None, error=None):
        self.output = output
        self.answers = dict(PROBE_ANSWERS if answers is None else answers)
        self.error = error
        self.statements = []
        self.exports = []

    async def execute_statement(self, details, sql, tuples_only=False):
        self.statements.append((sql, tuples_only))
        for marker, answer in self.answers.items():
            if marker in sql:
                return answer
        if self.error is not None:
            raise self.error
        return self.output

    async def copy_to_csv(self, details, sql, path):
        self.exports.append((sql, path))


@pytest.fixture
def attachment():
    return Attachment(
        name="DATABASE",
        app="test-app",
        addon_id="addon-123",
        addon_name="postgresql-test-12345",
        plan_name="heroku-postgresql:premium-0"
    )


@pytest.fixture
def details(attachment):
    return ConnectionDetails(
        host="test-host",
        port=5432,
        database="test-database",
        user="test-user",
        password="test-password",
        attachment=attachment
    )


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def make_runner(details):
    """Build a runner around mocked collaborators."""
    def _make(connector=None, echo=None, plan_name=None, resolve_error=None):
        if plan_name is not None:
            details.attachment.plan_name = plan_name

        resolver = Mock()
        resolver.resolve_database_connection = AsyncMock(return_value=details, side_effect=resolve_error)
        resolver.resolve_attachment = AsyncMock(return_value=details.attachment, side_effect=resolve_error)
        platform = AsyncMock()

        printed = []
        runner = DiagnosticRunner(
            resolver=resolver,
            connector=connector or FakeConnector(),
            platform=platform,
            settings=Settings(api_token="test-token"),
            echo=echo or printed.append
        )
        runner.printed = printed
        return runner

    return _make


@pytest.fixture
def runner(make_runner, connector):
    return make_runner(connector=connector)


@pytest.fixture
def make_connector():
    return FakeConnector
