"""
pg-extras: diagnostic commands for Heroku Postgres

Resolves an application's database attachment, runs a diagnostic query
against it and prints the result the way psql would.
"""

__version__ = "0.1.0"
__author__ = "pg-extras maintainers"

from .core.executor import DiagnosticRunner
from .core.errors import PgExtrasError
from .config import Settings, load_settings

__all__ = ["DiagnosticRunner", "PgExtrasError", "Settings", "load_settings"]
