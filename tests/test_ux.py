"""Tests for UX helpers module."""

from __future__ import annotations

import io

import pytest

from ghx import ux
from ghx.bulk import BulkResult
from ghx.importer import ImportResult
from ghx.ux import (
    Colors,
    colorize,
    print_error,
    print_success,
    print_summary_box,
    render_bulk_result,
    render_import_result,
)


def _tty() -> io.StringIO:
    stream = io.StringIO()
    stream.isatty = lambda: True  # type: ignore[method-assign]
    return stream


def test_colorize_with_tty_support(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test colorize adds colors when TTY is supported."""
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.setenv("TERM", "xterm-256color")

    result = colorize("test", Colors.RED, bold=True, stream=_tty())
    assert result == f"{Colors.BOLD}{Colors.RED}test{Colors.RESET}"


def test_colorize_respects_no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")
    assert colorize("test", Colors.RED, bold=True, stream=_tty()) == "test"


def test_colorize_dumb_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.setenv("TERM", "dumb")
    assert colorize("test", Colors.GREEN, stream=_tty()) == "test"


def test_colorize_no_tty() -> None:
    assert colorize("test", Colors.GREEN, stream=io.StringIO()) == "test"


def test_quiet_suppresses_success_but_not_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    ux.set_quiet(True)
    out, err = io.StringIO(), io.StringIO()
    print_success("done", stream=out)
    print_error("broken", stream=err)
    assert out.getvalue() == ""
    assert "broken" in err.getvalue()


def test_quiet_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    assert not ux.is_quiet()
    monkeypatch.setenv("GHX_QUIET", "true")
    assert ux.is_quiet()


def test_summary_box_aligns_keys() -> None:
    stream = io.StringIO()
    print_summary_box("Summary", [("Attempted", 5), ("Failed", 0)], stream=stream)
    lines = stream.getvalue().splitlines()
    assert "Summary" in lines[1]
    assert "  Attempted  5" in lines
    assert "  Failed     0" in lines


def test_render_import_result_dry_run_hides_ids() -> None:
    stream = io.StringIO()
    result = ImportResult(
        project_id="",
        project_title="Roadmap",
        project_url="",
        item_count=3,
        field_count=2,
        view_count=1,
        dry_run=True,
    )
    render_import_result(result, stream=stream)
    text = stream.getvalue()
    assert "Import plan (dry run)" in text
    assert "Project ID" not in text
    assert "Items" in text


def test_render_bulk_result_lists_errors(capsys: pytest.CaptureFixture[str]) -> None:
    result = BulkResult(attempted=2, succeeded=1, failed=1, errors=["item #2: boom"], cancelled=True)
    render_bulk_result("archive-bulk", result)
    out, err = capsys.readouterr()
    assert "Bulk archive-bulk" in out
    assert "item #2: boom" in err
    assert "run cancelled" in err
