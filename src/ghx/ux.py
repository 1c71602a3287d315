"""Terminal output helpers for the ghx CLI (ANSI colors, summary boxes)."""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:  # pragma: no cover
    from .bulk import BulkResult
    from .importer import ImportResult


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"


def _supports_color(stream: TextIO | None = None) -> bool:
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return False
    if not hasattr(stream, "isatty") or not stream.isatty():
        return False
    return os.environ.get("TERM") != "dumb"


_QUIET = False


def set_quiet(value: bool) -> None:
    global _QUIET  # noqa: PLW0603
    _QUIET = value


def is_quiet() -> bool:
    return _QUIET or os.environ.get("GHX_QUIET", "").lower() in {"1", "true", "yes"}


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    """Apply color to text if terminal supports it."""
    if not _supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


def print_success(message: str, stream: TextIO | None = None) -> None:
    if is_quiet():
        return
    stream = stream or sys.stdout
    print(colorize("✓", Colors.GREEN, bold=True, stream=stream) + " " + message, file=stream)


def print_error(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stderr
    print(colorize("✗", Colors.RED, bold=True, stream=stream) + " " + message, file=stream)


def print_warning(message: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stderr
    print(colorize("⚠", Colors.YELLOW, bold=True, stream=stream) + " " + message, file=stream)


def print_summary_box(
    title: str, items: Sequence[tuple[str, str | int]], stream: TextIO | None = None
) -> None:
    """Print a formatted summary box with key-value pairs."""
    stream = stream or sys.stdout
    max_key_len = max((len(k) for k, _ in items), default=0)

    print(colorize(f"\n{title}", Colors.CYAN, bold=True, stream=stream), file=stream)
    print(colorize("─" * 60, Colors.DIM, stream=stream), file=stream)
    for key, value in items:
        value_str = str(value)
        if isinstance(value, bool):
            value_colored = colorize(value_str, Colors.GREEN if value else Colors.DIM, stream=stream)
        elif isinstance(value, int) and value > 0:
            value_colored = colorize(value_str, Colors.GREEN, bold=True, stream=stream)
        else:
            value_colored = value_str
        print(f"  {key.ljust(max_key_len)}  {value_colored}", file=stream)
    print(colorize("─" * 60, Colors.DIM, stream=stream), file=stream)


def render_import_result(result: ImportResult, stream: TextIO | None = None) -> None:
    title = "Import plan (dry run)" if result.dry_run else "Project imported"
    rows: list[tuple[str, str | int]] = [("Title", result.project_title)]
    if not result.dry_run:
        rows += [("Project ID", result.project_id), ("URL", result.project_url)]
    rows += [
        ("Fields", result.field_count),
        ("Items", result.item_count),
        ("Views", result.view_count),
    ]
    print_summary_box(title, rows, stream=stream)


def render_bulk_result(action: str, result: BulkResult, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    print_summary_box(
        f"Bulk {action}",
        [
            ("Attempted", result.attempted),
            ("Succeeded", result.succeeded),
            ("Failed", result.failed),
        ],
        stream=stream,
    )
    if result.cancelled:
        print_warning("run cancelled; remaining items were not attempted")
    for error in result.errors:
        print_error(error)


__all__ = [
    "Colors",
    "colorize",
    "is_quiet",
    "print_error",
    "print_success",
    "print_summary_box",
    "print_warning",
    "render_bulk_result",
    "render_import_result",
    "set_quiet",
]
