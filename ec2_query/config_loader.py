"""Config Loader - Loads client configuration, credentials and regions.

Handles loading YAML config files with ${ENV_VAR} substitution, reading
credentials from the standard AWS environment variables, and resolving a
region name (or an explicit endpoint) to a Region.

Example config:

    region: eu-west-1
    credentials:
      access_key: ${AWS_ACCESS_KEY_ID}
      secret_key: ${AWS_SECRET_ACCESS_KEY}
    timeout: 20
    debug: false
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from ec2_query.models import ClientConfig, Credentials, Region


class ConfigError(Exception):
    """Raised when configuration loading fails."""


REGIONS: dict[str, Region] = {
    name: Region(name=name, ec2_endpoint=endpoint)
    for name, endpoint in {
        "us-east-1": "https://ec2.us-east-1.amazonaws.com",
        "us-west-1": "https://ec2.us-west-1.amazonaws.com",
        "us-west-2": "https://ec2.us-west-2.amazonaws.com",
        "us-gov-west-1": "https://ec2.us-gov-west-1.amazonaws.com",
        "eu-west-1": "https://ec2.eu-west-1.amazonaws.com",
        "ap-southeast-1": "https://ec2.ap-southeast-1.amazonaws.com",
        "ap-southeast-2": "https://ec2.ap-southeast-2.amazonaws.com",
        "ap-northeast-1": "https://ec2.ap-northeast-1.amazonaws.com",
        "sa-east-1": "https://ec2.sa-east-1.amazonaws.com",
        "cn-north-1": "https://ec2.cn-north-1.amazonaws.com.cn",
    }.items()
}


def load_client_config(config_path: Path) -> ClientConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def credentials_from_env(environ: Mapping[str, str] | None = None) -> Credentials:
    """Read credentials from AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY.

    The older AWS_ACCESS_KEY / AWS_SECRET_KEY names are accepted as
    fallbacks; AWS_SESSION_TOKEN is optional.
    """
    env = os.environ if environ is None else environ

    access_key = env.get("AWS_ACCESS_KEY_ID") or env.get("AWS_ACCESS_KEY")
    if not access_key:
        raise ConfigError("AWS_ACCESS_KEY_ID or AWS_ACCESS_KEY not found in environment")

    secret_key = env.get("AWS_SECRET_ACCESS_KEY") or env.get("AWS_SECRET_KEY")
    if not secret_key:
        raise ConfigError("AWS_SECRET_ACCESS_KEY or AWS_SECRET_KEY not found in environment")

    return Credentials(
        access_key=access_key,
        secret_key=secret_key,
        token=env.get("AWS_SESSION_TOKEN") or None,
    )


def resolve_region(config: ClientConfig) -> Region:
    """Return the Region for *config*; an explicit endpoint wins over the table."""
    if config.endpoint:
        return Region(name=config.region, ec2_endpoint=config.endpoint)

    region = REGIONS.get(config.region)
    if region is None:
        available = ", ".join(sorted(REGIONS))
        raise ConfigError(
            f"Unknown region '{config.region}' and no endpoint given. Available: {available}"
        )
    return region


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return pattern.sub(replacer, s)
