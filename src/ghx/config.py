from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

DEFAULT_CONFIG_FILE = 'ghx.config.yaml'
DEFAULT_GRAPHQL_URL = 'https://api.github.com/graphql'
SUPPORTED_EXPORT_FORMATS = ('json', 'yaml')


class ConfigError(RuntimeError):
    pass


@dataclass
class GhxConfig:
    source_file: Path | None
    # GitHub transport
    github_graphql_url: str
    github_timeout: float
    # Logging configuration
    logging_json_enabled: bool
    logging_level: str
    # Retry configuration (None defers to GHX_RETRY_* env vars)
    retry_attempts: int | None
    retry_base_sleep: float | None
    # Concurrency configuration
    concurrency_enabled: bool
    concurrency_max_workers: int
    # Export defaults
    export_format: str
    # Environment authentication configuration
    env_load_dotenv: bool
    env_dotenv_path: str | None


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        env_name = env_var_name or value[1:]  # Remove $ prefix
        return os.getenv(env_name, value)  # Fallback to original if not found
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return cast(dict[str, Any], value)


def default_config() -> GhxConfig:
    return _build_config({}, None)


def _build_config(raw: dict[str, Any], source: Path | None) -> GhxConfig:
    gh = _section(raw, 'github')
    logging_config = _section(raw, 'logging')
    retry_config = _section(raw, 'retry')
    concurrency_config = _section(raw, 'concurrency')
    export_config = _section(raw, 'export')
    env_auth = _section(raw, 'environment')

    export_format = str(export_config.get('format', 'json')).lower()
    if export_format not in SUPPORTED_EXPORT_FORMATS:
        raise ConfigError(
            f"Unsupported export.format '{export_format}' (expected one of {', '.join(SUPPORTED_EXPORT_FORMATS)})"
        )
    attempts = _resolve_env_var(retry_config.get('attempts'))
    base_sleep = _resolve_env_var(retry_config.get('base_sleep'))
    try:
        return GhxConfig(
            source_file=source,
            github_graphql_url=_resolve_env_var(gh.get('graphql_url', DEFAULT_GRAPHQL_URL)),
            github_timeout=float(gh.get('timeout', 30)),
            logging_json_enabled=bool(logging_config.get('json_enabled', False)),
            logging_level=str(logging_config.get('level', 'INFO')),
            retry_attempts=int(attempts) if attempts is not None else None,
            retry_base_sleep=float(base_sleep) if base_sleep is not None else None,
            concurrency_enabled=bool(concurrency_config.get('enabled', False)),
            concurrency_max_workers=int(concurrency_config.get('max_workers', 4)),
            export_format=export_format,
            env_load_dotenv=bool(env_auth.get('load_dotenv', True)),
            env_dotenv_path=_resolve_env_var(env_auth.get('dotenv_path')),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'Invalid configuration value: {exc}') from exc


def load_config(path: str | Path | None = None) -> GhxConfig:
    """Load ``ghx.config.yaml``.

    Without an explicit path a missing default file yields the defaults; an
    explicitly named file must exist.
    """
    explicit = path is not None
    p = Path(path) if path is not None else Path(DEFAULT_CONFIG_FILE)
    if not p.exists():
        if explicit:
            raise ConfigError(f'Configuration file not found: {p}')
        return default_config()
    try:
        loaded = yaml.safe_load(p.read_text(encoding='utf-8'))
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid YAML in {p}: {exc}') from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f'Configuration root in {p} must be a mapping')
    return _build_config(cast(dict[str, Any], loaded), p)


__all__ = ['ConfigError', 'DEFAULT_CONFIG_FILE', 'GhxConfig', 'default_config', 'load_config']
