from __future__ import annotations

import json
import os
import signal
from pathlib import Path
from typing import Any

import pytest
from fakes import FakeProjectService, make_item

from ghx import cli
from ghx.bundle import read_bundle
from ghx.errors import TransportError


@pytest.fixture
def service(monkeypatch: pytest.MonkeyPatch) -> FakeProjectService:
    svc = FakeProjectService(items=[make_item(n, labels=("bug",) if n < 3 else ()) for n in range(1, 6)])
    monkeypatch.setattr(cli, "_build_service", lambda cfg, args: svc)
    return svc


@pytest.fixture
def bundle_file(tmp_path: Path) -> Path:
    path = tmp_path / "bundle.json"
    path.write_text(
        json.dumps(
            {
                "metadata": {"version": "1.0", "exported_at": "2025-01-01T00:00:00Z"},
                "project": {"title": "Copied"},
                "fields": [{"name": "Estimate", "data_type": "NUMBER"}],
                "items": [{"title": "Draft", "type": "DraftIssue", "fields": {"Estimate": 2}}],
                "views": [{"name": "Table", "layout": "TABLE_LAYOUT"}],
            }
        )
    )
    return path


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, str, str]:
    rc = cli.main(list(argv))
    out, err = capsys.readouterr()
    return rc, out, err


# ---- export ------------------------------------------------------------


def test_export_writes_bundle(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    out_file = tmp_path / "roadmap.yaml"
    rc, out, _ = _run(capsys, "export", "octo-org/7", "-o", str(out_file))

    assert rc == 0
    assert "Exported project 'Roadmap'" in out
    assert "5 item(s)" in out
    bundle = read_bundle(out_file)
    assert len(bundle.items or []) == 5
    assert out_file.read_text().startswith("metadata:")


def test_export_without_items(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    out_file = tmp_path / "roadmap.json"
    rc, _, _ = _run(capsys, "export", "octo-org/7", "-o", str(out_file), "--no-include-items")
    assert rc == 0
    assert "items" not in json.loads(out_file.read_text())


def test_export_bad_reference(service: FakeProjectService, capsys) -> None:
    rc, _, err = _run(capsys, "export", "octo-org", "-o", "x.json")
    assert rc == 1
    assert "expected owner/number" in err
    assert service.calls == []


def test_export_unknown_project(service: FakeProjectService, capsys) -> None:
    rc, _, err = _run(capsys, "export", "someone-else/1", "-o", "x.json")
    assert rc == 1
    assert "project not found" in err


def test_export_fetch_failure_names_stage(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    service.fail_on["fetch_views"] = TransportError("list_views: HTTP 500")
    out_file = tmp_path / "roadmap.json"
    rc, _, err = _run(capsys, "export", "octo-org/7", "-o", str(out_file))
    assert rc == 1
    assert "export failed while fetching views" in err
    assert not out_file.exists()


# ---- import ------------------------------------------------------------


def test_import_dry_run_json(service: FakeProjectService, bundle_file: Path, capsys) -> None:
    rc, out, _ = _run(
        capsys, "import", "--file", str(bundle_file), "--owner", "octocat", "--dry-run", "--json"
    )
    assert rc == 0
    payload = json.loads(out)
    assert payload["dry_run"] is True
    assert (payload["field_count"], payload["item_count"], payload["view_count"]) == (1, 1, 1)
    assert "create_project" not in service.call_names()


def test_import_live_summary(service: FakeProjectService, bundle_file: Path, capsys) -> None:
    rc, out, _ = _run(capsys, "import", "--file", str(bundle_file), "--owner", "octocat")
    assert rc == 0
    assert "Project imported" in out
    assert "PVT_new_1" in out


def test_import_invalid_strategy_fails_before_connecting(
    monkeypatch: pytest.MonkeyPatch, bundle_file: Path, capsys
) -> None:
    def _unexpected(cfg: Any, args: Any) -> Any:
        raise AssertionError("service should not be built")

    monkeypatch.setattr(cli, "_build_service", _unexpected)
    rc, _, err = _run(
        capsys, "import", "--file", str(bundle_file), "--owner", "octocat", "--merge-strategy", "overwrite"
    )
    assert rc == 1
    assert "invalid merge strategy: overwrite" in err


def test_import_missing_file(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    rc, _, err = _run(capsys, "import", "--file", str(tmp_path / "nope.json"), "--owner", "octocat")
    assert rc == 1
    assert "failed to read bundle file" in err


def test_import_stage_failure_reports_project(service: FakeProjectService, bundle_file: Path, capsys) -> None:
    service.fail_on["create_view"] = TransportError("create_view: HTTP 502")
    rc, _, err = _run(capsys, "import", "--file", str(bundle_file), "--owner", "octocat")
    assert rc == 1
    assert "import failed during views" in err
    assert "PVT_new_1" in err


# ---- bulk --------------------------------------------------------------


def test_archive_bulk_partial_failure_exits_zero(service: FakeProjectService, capsys) -> None:
    service.fail_items["PVTI_octo-org_app_3"] = TransportError("archive_item: HTTP 502")
    rc, out, _ = _run(capsys, "item", "archive-bulk", "octo-org/7", "--items", "1-5", "--json")
    assert rc == 0
    assert json.loads(out) == {
        "attempted": 5,
        "succeeded": 4,
        "failed": 1,
        "errors": ["item #3: archive_item: HTTP 502"],
        "cancelled": False,
    }


def test_fail_on_partial(service: FakeProjectService, capsys) -> None:
    service.fail_items["PVTI_octo-org_app_3"] = TransportError("archive_item: HTTP 502")
    rc, _, err = _run(
        capsys, "item", "archive-bulk", "octo-org/7", "--items", "1-5", "--fail-on-partial"
    )
    assert rc == 1
    assert "item #3: archive_item: HTTP 502" in err


def test_update_bulk_by_filter(service: FakeProjectService, capsys) -> None:
    rc, out, _ = _run(
        capsys,
        "item",
        "update-bulk",
        "octo-org/7",
        "--filter",
        "label:bug",
        "--field",
        "Status",
        "--value",
        "Done",
    )
    assert rc == 0
    assert "Bulk update-bulk" in out
    assert [c[2] for c in service.calls_named("set_field_value")] == [
        "PVTI_octo-org_app_1",
        "PVTI_octo-org_app_2",
    ]


def test_update_bulk_unknown_field(service: FakeProjectService, capsys) -> None:
    rc, _, err = _run(
        capsys, "item", "update-bulk", "octo-org/7", "--items", "1", "--field", "Priority", "--value", "P1"
    )
    assert rc == 1
    assert "field 'Priority' not found" in err
    assert service.calls_named("set_field_value") == []


def test_bulk_requires_a_source(service: FakeProjectService, capsys) -> None:
    rc, _, err = _run(capsys, "item", "delete-bulk", "octo-org/7")
    assert rc == 1
    assert "at least one target source" in err
    assert service.calls == []


def test_bulk_bad_range(service: FakeProjectService, capsys) -> None:
    rc, _, err = _run(capsys, "item", "delete-bulk", "octo-org/7", "--items", "6-5")
    assert rc == 1
    assert "start number cannot be greater than end number" in err
    assert "delete_item" not in service.call_names()


def test_bulk_no_matches(service: FakeProjectService, capsys) -> None:
    rc, out, _ = _run(capsys, "item", "delete-bulk", "octo-org/7", "--filter", "label:wontfix")
    assert rc == 0
    assert "No items matched" in out


def test_bulk_from_file(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    ids = tmp_path / "ids.txt"
    ids.write_text("octo-org/app#4\nhttps://github.com/octo-org/app/issues/5\n")
    rc, _, _ = _run(capsys, "item", "delete-bulk", "octo-org/7", "--from-file", str(ids))
    assert rc == 0
    assert [c[2] for c in service.calls_named("delete_item")] == [
        "PVTI_octo-org_app_4",
        "PVTI_octo-org_app_5",
    ]


def test_interrupt_cancels_remaining_items(service: FakeProjectService, capsys) -> None:
    service.hooks["delete_item"] = lambda *args: os.kill(os.getpid(), signal.SIGINT)
    rc, out, _ = _run(capsys, "item", "delete-bulk", "octo-org/7", "--items", "1-5", "--json")
    assert rc == cli.CANCELLED_EXIT_CODE
    payload = json.loads(out)
    assert payload["cancelled"] is True
    assert payload["attempted"] < 5


# ---- schema / globals --------------------------------------------------


def test_schema_writes_files(tmp_path: Path, capsys) -> None:
    rc, out, _ = _run(capsys, "schema", "--output-dir", str(tmp_path / "schemas"))
    assert rc == 0
    assert "Generated 2 schema file(s)" in out
    written = sorted(p.name for p in (tmp_path / "schemas").iterdir())
    assert written == ["ghx_bulk_result.schema.json", "ghx_bundle.schema.json"]


def test_schema_stdout(capsys) -> None:
    rc, out, _ = _run(capsys, "schema", "--stdout")
    assert rc == 0
    assert set(json.loads(out)) == {"bundle", "bulk_result"}


def test_quiet_suppresses_success_output(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    rc, out, _ = _run(capsys, "--quiet", "export", "octo-org/7", "-o", str(tmp_path / "b.json"))
    assert rc == 0
    assert "Exported project" not in out
    assert "item(s)" not in out


def test_missing_config_file(capsys) -> None:
    rc, _, err = _run(capsys, "--config", "absent.yaml", "schema", "--stdout")
    assert rc == 1
    assert "Configuration file not found" in err


def test_log_json_emits_structured_logs(service: FakeProjectService, tmp_path: Path, capsys) -> None:
    rc, _, err = _run(
        capsys, "--log-json", "--log-level", "INFO", "export", "octo-org/7", "-o", str(tmp_path / "b.json")
    )
    assert rc == 0
    operations = [json.loads(line).get("operation") for line in err.splitlines() if line.startswith("{")]
    assert "export_written" in operations
