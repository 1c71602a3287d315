"""Credential acquisition for ghx.

A token is looked up, in order, from an explicit value, the usual GitHub
token environment variables, a ``.env`` file and finally ``gh auth token``
when the GitHub CLI is installed. The result is an explicit
:class:`Credentials` value handed to the GraphQL client; nothing is stored
process-wide.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .config import GhxConfig
from .errors import ValidationError
from .logging import get_logger

TOKEN_ENV_VARS = (
    'GHX_TOKEN',
    'GITHUB_TOKEN',
    'GH_TOKEN',
    'GITHUB_ACCESS_TOKEN',
    'GH_ACCESS_TOKEN',
    'GITHUB_PAT',
)
DOTENV_LOCATIONS = ('.env', '.env.local')


@dataclass(frozen=True)
class Credentials:
    token: str
    source: str

    def __repr__(self) -> str:  # keep tokens out of logs and tracebacks
        return f"Credentials(source={self.source!r})"


def _token_from_env() -> tuple[str, str] | None:
    for var in TOKEN_ENV_VARS:
        token = os.getenv(var)
        if token:
            return token.strip(), var
    return None


def _load_dotenv(dotenv_path: str | None) -> Path | None:
    """Load the first existing .env file without overriding the environment."""
    candidates = (dotenv_path,) if dotenv_path else DOTENV_LOCATIONS
    for location in candidates:
        env_file = Path(location)
        if env_file.exists():
            load_dotenv(str(env_file), override=False)
            get_logger().debug(f"Loaded environment variables from {env_file}")
            return env_file
    return None


def _token_from_gh_cli() -> str | None:
    gh = shutil.which('gh')
    if not gh:
        return None
    try:
        proc = subprocess.run(
            [gh, 'auth', 'token'],
            capture_output=True,
            text=True,
            check=False,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        get_logger().debug(f"gh auth token failed: {exc}")
        return None
    token = proc.stdout.strip()
    if proc.returncode != 0 or not token:
        return None
    return token


def get_authentication_recommendations() -> list[str]:
    recommendations = [
        "Pass --token or set GITHUB_TOKEN (or GHX_TOKEN)",
        "Or create .env file with GITHUB_TOKEN=your_token",
    ]
    if shutil.which('gh'):
        recommendations.append("Or run 'gh auth login' so 'gh auth token' succeeds")
    else:
        recommendations.append("Or install GitHub CLI and run 'gh auth login'")
    recommendations.append("The token needs the 'project' scope (and 'read:org' for organization projects)")
    return recommendations


def load_credentials(token: str | None = None, config: GhxConfig | None = None) -> Credentials:
    logger = get_logger()
    if token:
        return Credentials(token=token.strip(), source='explicit')

    found = _token_from_env()
    if found:
        logger.debug(f"Found GitHub token in {found[1]}")
        return Credentials(token=found[0], source=found[1])

    load_env = config.env_load_dotenv if config is not None else True
    if load_env:
        dotenv_path = config.env_dotenv_path if config is not None else None
        env_file = _load_dotenv(dotenv_path)
        if env_file is not None:
            found = _token_from_env()
            if found:
                return Credentials(token=found[0], source=str(env_file))

    cli_token = _token_from_gh_cli()
    if cli_token:
        logger.debug("Using token from 'gh auth token'")
        return Credentials(token=cli_token, source='gh')

    raise ValidationError(
        "No GitHub token found. " + "; ".join(get_authentication_recommendations())
    )


__all__ = ['Credentials', 'TOKEN_ENV_VARS', 'get_authentication_recommendations', 'load_credentials']
