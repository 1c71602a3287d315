"""Runtime helpers for ghx CLI orchestration."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from typing import Any, Protocol

from .config import ConfigError, GhxConfig, load_config
from .errors import GhxError, classify_error, redact
from .logging import configure_logging, get_logger
from .ux import print_error, set_quiet


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str | None], GhxConfig] = load_config
) -> GhxConfig:
    """Load GhxConfig and apply global flag overrides for the given namespace."""
    if not hasattr(args, "config"):
        raise AttributeError("Command namespace is missing 'config' attribute")
    cfg = loader(args.config)
    if getattr(args, "log_json", False):
        cfg.logging_json_enabled = True
    level = getattr(args, "log_level", None)
    if level:
        cfg.logging_level = level
    quiet = bool(getattr(args, "quiet", False)) or os.environ.get("GHX_QUIET") == "1"
    set_quiet(quiet)
    if quiet and not level:
        cfg.logging_level = "WARNING"
    configure_logging(json_logging=cfg.logging_json_enabled, level=cfg.logging_level)
    return cfg


def _report_failure(command: str, exc: BaseException) -> None:
    info = classify_error(exc)
    get_logger().log_error(
        f"command {command} failed",
        error=info.message,
        category=info.category,
        transient=info.transient,
    )
    print_error(redact(str(exc)))
    cause = exc.__cause__
    if cause is not None and str(cause) and str(cause) not in str(exc):
        print_error(f"caused by: {redact(str(cause))}")


def execute_command(handler: _HandlerCallable, args: Any, command: str) -> int:
    """Run a command handler, mapping ghx errors to exit code 1."""
    start = time.monotonic()
    logger = get_logger()
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except (GhxError, ConfigError) as exc:
        _report_failure(command, exc)
        exit_code = 1
    duration_ms = max(0.0, time.monotonic() - start) * 1000
    logger.log_performance(f"command_{command.replace(' ', '_')}", duration_ms, exit_code=exit_code)
    return exit_code


__all__ = ["prepare_config", "execute_command"]
