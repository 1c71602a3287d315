"""Centralized retry / backoff helpers for the GraphQL transport.

``run_with_retries`` wraps a thunk with bounded exponential backoff plus
jitter. Only transient failures are retried: HTTP 429/502/503/504,
connection errors, timeouts and GitHub's rate-limit / abuse messages. Any
other failure propagates immediately.

Environment overrides:
  GHX_RETRY_ATTEMPTS (default 3)
  GHX_RETRY_BASE (seconds base, default 0.5)
  GHX_RETRY_MAX_SLEEP (cap on a single sleep, unset by default)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)
TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


class TransientHTTPError(Exception):
    """Raised by a request thunk to ask for a retry of a transient response."""

    def __init__(self, response: requests.Response):
        super().__init__(f"HTTP {response.status_code}: {response.text[:200]}")
        self.response = response


def _extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from error output.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: int(os.environ.get("GHX_RETRY_ATTEMPTS", "3")))
    base_sleep: float = field(
        default_factory=lambda: float(os.environ.get("GHX_RETRY_BASE", "0.5"))
    )


def is_transient(output: str) -> bool:
    out_lower = output.lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def _retry_hint(exc: BaseException) -> str | None:
    """Return the text to inspect for backoff hints, or None if not retryable."""
    if isinstance(exc, TransientHTTPError):
        response = exc.response
        header = response.headers.get("Retry-After") if response.headers else None
        return f"retry-after: {header}" if header else response.text or ""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return str(exc)
    text = str(exc)
    if is_transient(text):
        return text
    return None


def _compute_sleep(attempt: int, cfg: RetryConfig, out: str) -> float:
    explicit = _extract_explicit_backoff(out)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("GHX_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            hint = _retry_hint(exc)
            if hint is None or attempt >= attempts:
                raise
            sleep_for = _compute_sleep(attempt, cfg, hint)
            get_logger().warning(
                f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
                error=str(exc)[:200],
            )
            sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = [
    "RetryConfig",
    "TRANSIENT_STATUSES",
    "TransientHTTPError",
    "is_transient",
    "run_with_retries",
]
