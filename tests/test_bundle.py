from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from ghx.bundle import (
    FORMAT_VERSION,
    Bundle,
    BundleField,
    BundleFieldOption,
    BundleItem,
    BundleMetadata,
    BundleProject,
    BundleView,
    decode_document,
    dump_bundle,
    infer_format,
    load_bundle,
    read_bundle,
    write_bundle,
)
from ghx.errors import BundleFormatError


def _bundle(**collections) -> Bundle:
    return Bundle(
        metadata=BundleMetadata(
            version=FORMAT_VERSION,
            exported_at="2025-01-02T03:04:05Z",
            exported_by="octocat",
            tool_version="0.3.0",
        ),
        project=BundleProject(
            title="Roadmap",
            id="PVT_1",
            description="Quarterly",
            url="https://github.com/orgs/octo-org/projects/7",
            owner="octo-org",
            number=7,
        ),
        **collections,
    )


def _full_bundle() -> Bundle:
    return _bundle(
        items=[
            BundleItem(title="Ship it", type="Issue", id="PVTI_1", url="https://github.com/o/r/issues/1",
                       fields={"Status": "Done", "Estimate": 3}),
            BundleItem(title="Draft", id="PVTI_2", body="notes"),
        ],
        fields=[
            BundleField(
                name="Status",
                data_type="SINGLE_SELECT",
                id="F_1",
                options=[BundleFieldOption(name="Done", id="OPT_1", color="GREEN")],
            ),
            BundleField(name="Estimate", data_type="NUMBER", id="F_2"),
        ],
        views=[BundleView(name="Board", layout="BOARD_LAYOUT", id="V_1")],
    )


def test_json_and_yaml_encode_the_same_document() -> None:
    bundle = _full_bundle()
    from_json = json.loads(dump_bundle(bundle, "json"))
    from_yaml = yaml.safe_load(dump_bundle(bundle, "yaml"))
    assert from_json == from_yaml
    assert list(from_json) == ["metadata", "project", "items", "fields", "views"]
    assert from_json["fields"][0]["options"] == [{"id": "OPT_1", "name": "Done", "color": "GREEN"}]
    assert "options" not in from_json["fields"][1]
    assert "body" not in from_json["items"][0]
    assert "url" not in from_json["items"][1]


def test_unrequested_collections_are_absent_not_empty() -> None:
    doc = json.loads(dump_bundle(_bundle(items=[]), "json"))
    assert doc["items"] == []
    assert "fields" not in doc
    assert "views" not in doc


def test_load_defaults_missing_collections_to_none() -> None:
    bundle = load_bundle(json.dumps({"metadata": {"version": "1.0"}, "project": {"title": "Only"}}))
    assert bundle.project.title == "Only"
    assert bundle.items is None and bundle.fields is None and bundle.views is None


def test_yaml_fallback_when_json_fails() -> None:
    text = dump_bundle(_full_bundle(), "yaml")
    with pytest.raises(json.JSONDecodeError):
        json.loads(text)
    bundle = load_bundle(text)
    assert bundle.project.title == "Roadmap"
    assert [i.title for i in bundle.items or []] == ["Ship it", "Draft"]
    assert bundle.fields and bundle.fields[0].options and bundle.fields[0].options[0].name == "Done"


def test_unquoted_yaml_timestamps_become_strings() -> None:
    text = (
        "metadata:\n"
        "  version: '1.0'\n"
        "  exported_at: 2025-01-02T03:04:05Z\n"
        "project:\n"
        "  title: Roadmap\n"
        "items:\n"
        "  - title: Dated\n"
        "    fields:\n"
        "      Due: 2025-02-01\n"
    )
    bundle = load_bundle(text)
    assert bundle.metadata.exported_at == "2025-01-02T03:04:05Z"
    assert bundle.items is not None
    assert bundle.items[0].fields == {"Due": "2025-02-01"}


def test_missing_title_is_rejected() -> None:
    with pytest.raises(BundleFormatError, match="title"):
        load_bundle(json.dumps({"metadata": {"version": "1.0"}, "project": {"id": "PVT_1"}}))


@pytest.mark.parametrize("payload", ["[1, 2, 3]", "just a string", ""])
def test_non_mapping_documents_are_rejected(payload: str) -> None:
    with pytest.raises(BundleFormatError):
        decode_document(payload)


def test_unparseable_bytes_are_rejected() -> None:
    with pytest.raises(BundleFormatError, match="failed to parse bundle"):
        decode_document("{not json: [unterminated")


def test_invalid_utf8_is_a_format_error(tmp_path: Path) -> None:
    raw = b'{"metadata": {"version": "1.0"}, "project": {"title": "\xff"}}'
    with pytest.raises(BundleFormatError, match="not valid UTF-8"):
        load_bundle(raw)
    path = tmp_path / "latin1.json"
    path.write_bytes(raw)
    with pytest.raises(BundleFormatError, match="not valid UTF-8"):
        read_bundle(path)


@pytest.mark.parametrize("version", ["1.1.0-rc1", "1.0+build.5", "1"])
def test_semver_like_versions_are_accepted(version: str) -> None:
    bundle = load_bundle(json.dumps({"metadata": {"version": version}, "project": {"title": "T"}}))
    assert bundle.metadata.version == version


@pytest.mark.parametrize("version", ["v1", "1..0", "latest"])
def test_malformed_versions_are_rejected(version: str) -> None:
    with pytest.raises(BundleFormatError):
        load_bundle(json.dumps({"metadata": {"version": version}, "project": {"title": "T"}}))


def test_newer_minor_version_with_extra_keys_is_accepted() -> None:
    doc = {
        "metadata": {"version": "1.3", "exported_at": "x", "new_key": True},
        "project": {"title": "Later", "labels": ["extra"]},
        "items": [{"title": "a", "type": "Issue", "url": "https://github.com/o/r/issues/1", "reactions": 3}],
    }
    bundle = load_bundle(json.dumps(doc))
    assert bundle.metadata.version == "1.3"
    assert bundle.items and bundle.items[0].type == "Issue"


def test_unknown_major_falls_back_to_latest_reader() -> None:
    doc = {"metadata": {"version": "2.0"}, "project": {"title": "Future"}}
    assert load_bundle(json.dumps(doc)).project.title == "Future"


def test_item_type_defaults_from_url() -> None:
    doc = {
        "metadata": {"version": "1.0"},
        "project": {"title": "T"},
        "items": [{"title": "linked", "url": "https://github.com/o/r/issues/9"}, {"title": "draft"}],
    }
    items = load_bundle(json.dumps(doc)).items or []
    assert [i.type for i in items] == ["Issue", "DraftIssue"]


def test_write_bundle_round_trips(tmp_path: Path) -> None:
    target = write_bundle(tmp_path / "out" / "bundle.yaml", _full_bundle(), "yaml")
    assert target.exists()
    assert read_bundle(target).to_dict() == _full_bundle().to_dict()
    assert [p.name for p in target.parent.iterdir()] == ["bundle.yaml"]


def test_write_bundle_leaves_no_file_on_bad_format(tmp_path: Path) -> None:
    target = tmp_path / "bundle.xml"
    with pytest.raises(BundleFormatError, match="unsupported format"):
        write_bundle(target, _full_bundle(), "xml")
    assert list(tmp_path.iterdir()) == []


def test_read_bundle_missing_file(tmp_path: Path) -> None:
    with pytest.raises(BundleFormatError, match="failed to read"):
        read_bundle(tmp_path / "nope.json")


def test_infer_format() -> None:
    assert infer_format("x.yml") == "yaml"
    assert infer_format("x.YAML") == "yaml"
    assert infer_format("x.json") == "json"
    assert infer_format("x.out", default="yaml") == "yaml"
