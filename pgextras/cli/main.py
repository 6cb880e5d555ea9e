"""
pg-extras command line interface

Diagnostic commands for Heroku Postgres databases. Every command resolves
the app's database attachment, runs one query and prints the result.
"""

import asyncio
import logging

import click

from pgextras import __version__
from pgextras.config import load_settings
from pgextras.connectors import AttachmentResolver, PlatformClient, PostgreSQLConnector
from pgextras.core import diagnostics, queries
from pgextras.core.errors import ConfigurationError, PgExtrasError
from pgextras.core.executor import DiagnosticRunner

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

SIMPLE_COMMAND_HELP = {
    "cache-hit": "show index and table hit rate",
    "index-usage": "calculates your index hit rate (effective databases are at 99% and up)",
    "blocking": "display queries holding locks other queries are waiting to be released",
    "index-size": "show the size of indexes, descending by size",
    "total-index-size": "show the total size of all indexes in MB",
    "table-size": "show the size of the tables (excluding indexes), descending by size",
    "table-indexes-size": "show the total size of all the indexes on each table, descending by size",
    "total-table-size": "show the size of the tables (including indexes), descending by size",
    "unused-indexes": "show unused and almost unused indexes",
    "seq-scans": "show the count of sequential scans by table descending by order",
    "records-rank": "show all tables and the number of rows in each ordered by number of rows descending",
    "long-running-queries": "show all queries longer than five minutes by descending duration",
    "user-connections": "returns the number of connections per credential",
    "vacuum-stats": "show dead rows and whether an automatic vacuum is expected to be triggered",
    "bloat": "show table and index bloat in your database ordered by most wasteful",
    "mandelbrot": "show the mandelbrot set",
}

app_option = click.option('--app', '-a', required=True, envvar='HEROKU_APP',
                          help='app to run command against')
database_argument = click.argument('database', required=False)


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.version_option(__version__, prog_name='pg-extras')
@click.pass_context
def cli(ctx, config, verbose):
    """Diagnostic queries for Heroku Postgres"""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose
    ctx.obj.setdefault('runner', None)

    try:
        settings = ctx.obj.get('settings') or load_settings(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(e.exit_code)
    ctx.obj['settings'] = settings

    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def get_runner(ctx) -> DiagnosticRunner:
    """Get or create the diagnostic runner for this invocation"""
    if ctx.obj.get('runner') is None:
        settings = ctx.obj['settings']
        if not settings.api_token:
            raise ConfigurationError(
                "No API token found. Log in with the Heroku CLI or set HEROKU_API_KEY."
            )

        platform = PlatformClient(
            api_url=settings.api_url,
            api_token=settings.api_token,
            timeout=settings.http_timeout
        )
        connector = PostgreSQLConnector(
            ssl_mode=settings.ssl_mode,
            connect_timeout=settings.connect_timeout,
            command_timeout=settings.command_timeout
        )
        ctx.obj['runner'] = DiagnosticRunner(
            resolver=AttachmentResolver(platform),
            connector=connector,
            platform=platform,
            settings=settings
        )

    return ctx.obj['runner']


def run_handler(ctx, handler, *args, validate=None, **kwargs):
    """
    Run a diagnostic coroutine and turn handled failures into an exit code.

    validate runs before the runner is built, so argument errors surface
    before any token lookup or network call.
    """
    async def _main(runner):
        try:
            return await handler(runner, *args, **kwargs)
        finally:
            await runner.close()

    try:
        if validate is not None:
            validate()
        return asyncio.run(_main(get_runner(ctx)))
    except PgExtrasError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(e.exit_code)


def _register_simple_command(name: str, help_text: str) -> None:
    @cli.command(name=name, help=help_text)
    @app_option
    @database_argument
    @click.pass_context
    def command(ctx, app, database):
        run_handler(ctx, diagnostics.run_simple, name, app, database)


for _name, _help in SIMPLE_COMMAND_HELP.items():
    _register_simple_command(_name, _help)


@cli.command()
@app_option
@database_argument
@click.option('--truncate', '-t', is_flag=True, help='truncates queries to 40 characters')
@click.pass_context
def locks(ctx, app, database, truncate):
    """display queries with active locks"""
    run_handler(ctx, diagnostics.locks, app, database, truncate=truncate)


@cli.command()
@app_option
@database_argument
@click.option('--num', '-n', help='the number of queries to display (default: 10)')
@click.option('--truncate', '-t', is_flag=True, help='truncate queries to 40 characters')
@click.option('--reset', is_flag=True, help='resets statistics gathered by pg_stat_statements')
@click.pass_context
def outliers(ctx, app, database, num, truncate, reset):
    """show 10 queries that have longest execution time in aggregate"""
    run_handler(ctx, diagnostics.outliers, app, database, num=num, truncate=truncate, reset=reset,
                validate=lambda: queries.validate_limit(num))


@cli.command()
@app_option
@database_argument
@click.option('--truncate', '-t', is_flag=True, help='truncate queries to 40 characters')
@click.pass_context
def calls(ctx, app, database, truncate):
    """show 10 queries that have highest frequency of execution"""
    run_handler(ctx, diagnostics.calls, app, database, truncate=truncate)


@cli.command()
@app_option
@database_argument
@click.pass_context
def extensions(ctx, app, database):
    """list available and installed extensions"""
    run_handler(ctx, diagnostics.extensions, app, database)


@cli.command()
@app_option
@click.argument('prefix')
@database_argument
@click.pass_context
def fdwsql(ctx, app, prefix, database):
    """generate fdw install sql for database"""
    run_handler(ctx, diagnostics.fdwsql, app, prefix, database,
                validate=lambda: queries.validate_prefix(prefix))


@cli.command(name='stats-reset')
@app_option
@database_argument
@click.pass_context
def stats_reset(ctx, app, database):
    """calls the Postgres functions pg_stat_reset()"""
    run_handler(ctx, diagnostics.stats_reset, app, database)


@cli.command()
@app_option
@database_argument
@click.option('--terminate', '-t', is_flag=True, help='enable termination (forced) prompt')
@click.option('--cancel', '-c', is_flag=True, help='enable cancel prompt')
@click.pass_context
def autovacuums(ctx, app, database, terminate, cancel):
    """returns a list of ongoing autovacuums"""
    def prompt(text):
        return click.prompt(click.style(text, fg='red'), type=str)

    run_handler(ctx, diagnostics.autovacuums, app, database,
                cancel=cancel, terminate=terminate, prompt=prompt)


@cli.command(name='credentials-schema-privileges')
@app_option
@database_argument
@click.pass_context
def credentials_schema_privileges(ctx, app, database):
    """output csv of schema privileges"""
    run_handler(ctx, diagnostics.export_privileges, app, 'schema', database)


@cli.command(name='credentials-table-privileges')
@app_option
@database_argument
@click.pass_context
def credentials_table_privileges(ctx, app, database):
    """output csv of table privileges"""
    run_handler(ctx, diagnostics.export_privileges, app, 'table', database)


if __name__ == '__main__':
    cli()
