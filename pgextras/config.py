"""
Settings for pg-extras.

Values come from built-in defaults, then an optional YAML or JSON file,
then environment variables.
"""

import json
import logging
import netrc
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

from .core.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "HEROKU_API_URL": "api_url",
    "HEROKU_API_KEY": "api_token",
    "HEROKU_POSTGRESQL_HOST": "data_host",
    "HEROKU_DATA_HOST": "data_host",
    "PGEXTRAS_LOG_LEVEL": "log_level",
}


@dataclass
class Settings:
    """Runtime configuration."""
    api_url: str = "https://api.heroku.com"
    data_host: Optional[str] = None
    default_data_host: str = "api.data.heroku.com"
    starter_data_host: str = "postgres-starter-api.heroku.com"
    api_token: Optional[str] = None
    ssl_mode: str = "require"
    connect_timeout: int = 30
    command_timeout: int = 300
    http_timeout: int = 30
    log_level: str = "WARNING"

    @property
    def api_host(self) -> str:
        return urlparse(self.api_url).hostname or "api.heroku.com"


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load configuration from file"""
    if not config_path:
        return {}

    try:
        with open(config_path, 'r') as f:
            if config_path.endswith('.yaml') or config_path.endswith('.yml'):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Unable to read config file {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return data


def token_from_netrc(host: str, path: Optional[str] = None) -> Optional[str]:
    """
    Read the API token stored by the Heroku CLI in ~/.netrc.

    Args:
        host: API host the token was stored under
        path: Optional netrc path, defaults to the user's ~/.netrc

    Returns:
        The stored password for the host, or None
    """
    try:
        entry = netrc.netrc(path).authenticators(host)
    except FileNotFoundError:
        return None
    except (netrc.NetrcParseError, OSError) as e:
        logger.warning(f"Ignoring unreadable netrc file: {e}")
        return None

    if entry is None:
        return None
    return entry[2]


def load_settings(config_path: Optional[str] = None,
                  environ: Optional[Dict[str, str]] = None,
                  netrc_path: Optional[str] = None) -> Settings:
    """
    Build settings from defaults, the config file and the environment.

    Args:
        config_path: Optional YAML or JSON settings file
        environ: Environment mapping, defaults to os.environ
        netrc_path: Optional netrc path used when no token is configured

    Returns:
        Populated settings
    """
    environ = os.environ if environ is None else environ
    known = {f.name: f.type for f in fields(Settings)}

    values = load_config_file(config_path)
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")

    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[key] = environ[env_name]

    for key in ("connect_timeout", "command_timeout", "http_timeout"):
        if key in values:
            try:
                values[key] = int(values[key])
            except (TypeError, ValueError):
                raise ConfigurationError(f"Setting {key} must be an integer, got {values[key]!r}")

    settings = Settings(**values)
    settings.log_level = str(settings.log_level).upper()

    if not settings.api_token:
        settings.api_token = token_from_netrc(settings.api_host, netrc_path)

    return settings
