"""Versioned project bundle: data model, encoding and tolerant decoding.

A bundle is one project's configuration and content as a plain document::

    metadata: {version, exported_at, exported_by, tool_version}
    project:  {id, title, description?, url, owner, number, closed}
    items:    [{id, title, body?, type, url?, fields: {name: value}}]
    fields:   [{id, name, data_type, options?}]
    views:    [{id, name, layout}]

``items``, ``fields`` and ``views`` are ``None`` when they were not exported
and are then left out of the document entirely; readers treat a missing
collection as empty.

Decoding tries JSON first and falls back to YAML, so a document that is
valid in both is read as JSON. ``metadata.version`` selects the reader by
major version; keys added in later minor versions are optional.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator

from .errors import BundleFormatError
from .logging import get_logger
from .schemas import get_schemas

FORMAT_VERSION = "1.0"
BUNDLE_FORMATS = ("json", "yaml")
DEFAULT_VIEW_LAYOUT = "TABLE_LAYOUT"
_MAJOR_RE = re.compile(r"[0-9]+")


@dataclass
class BundleMetadata:
    version: str
    exported_at: str
    exported_by: str = ""
    tool_version: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exported_at": self.exported_at,
            "exported_by": self.exported_by,
            "tool_version": self.tool_version,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BundleMetadata:
        return cls(
            version=str(raw.get("version")),
            exported_at=str(raw.get("exported_at") or ""),
            exported_by=str(raw.get("exported_by") or ""),
            tool_version=str(raw.get("tool_version") or ""),
        )


@dataclass
class BundleProject:
    title: str
    id: str | None = None
    description: str | None = None
    url: str | None = None
    owner: str | None = None
    number: int | None = None
    closed: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.description:
            out["description"] = self.description
        out.update(url=self.url, owner=self.owner, number=self.number, closed=self.closed)
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BundleProject:
        return cls(
            title=str(raw["title"]),
            id=raw.get("id"),
            description=raw.get("description") or None,
            url=raw.get("url"),
            owner=raw.get("owner"),
            number=raw.get("number"),
            closed=bool(raw.get("closed", False)),
        )


@dataclass
class BundleFieldOption:
    name: str
    id: str | None = None
    color: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.color:
            out["color"] = self.color
        if self.description:
            out["description"] = self.description
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BundleFieldOption:
        return cls(
            name=str(raw["name"]),
            id=raw.get("id"),
            color=raw.get("color") or None,
            description=raw.get("description") or None,
        )


@dataclass
class BundleField:
    name: str
    data_type: str
    id: str | None = None
    options: list[BundleFieldOption] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "name": self.name, "data_type": self.data_type}
        if self.options is not None:
            out["options"] = [option.to_dict() for option in self.options]
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BundleField:
        options_raw = raw.get("options")
        options = (
            [BundleFieldOption.from_dict(o) for o in options_raw if isinstance(o, Mapping)]
            if isinstance(options_raw, list)
            else None
        )
        return cls(
            name=str(raw["name"]),
            data_type=str(raw["data_type"]).upper(),
            id=raw.get("id"),
            options=options,
        )


@dataclass
class BundleItem:
    title: str
    type: str = "DraftIssue"
    id: str | None = None
    body: str | None = None
    url: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.body:
            out["body"] = self.body
        out["type"] = self.type
        if self.url:
            out["url"] = self.url
        if self.fields:
            out["fields"] = dict(self.fields)
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BundleItem:
        url = raw.get("url") or None
        default_type = "Issue" if url else "DraftIssue"
        fields = raw.get("fields")
        return cls(
            title=str(raw["title"]),
            type=str(raw.get("type") or default_type),
            id=raw.get("id"),
            body=raw.get("body") or None,
            url=url,
            fields=dict(fields) if isinstance(fields, Mapping) else {},
        )


@dataclass
class BundleView:
    name: str
    layout: str = DEFAULT_VIEW_LAYOUT
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "layout": self.layout}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> BundleView:
        return cls(
            name=str(raw["name"]),
            layout=str(raw.get("layout") or DEFAULT_VIEW_LAYOUT),
            id=raw.get("id"),
        )


@dataclass
class Bundle:
    metadata: BundleMetadata
    project: BundleProject
    items: list[BundleItem] | None = None
    fields: list[BundleField] | None = None
    views: list[BundleView] | None = None

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "metadata": self.metadata.to_dict(),
            "project": self.project.to_dict(),
        }
        if self.items is not None:
            doc["items"] = [item.to_dict() for item in self.items]
        if self.fields is not None:
            doc["fields"] = [f.to_dict() for f in self.fields]
        if self.views is not None:
            doc["views"] = [view.to_dict() for view in self.views]
        return doc


# ---- encoding ----------------------------------------------------------


def dump_bundle(bundle: Bundle, fmt: str = "json") -> str:
    fmt = fmt.lower()
    doc = bundle.to_dict()
    if fmt == "json":
        return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    raise BundleFormatError(f"unsupported format: {fmt} (supported: {', '.join(BUNDLE_FORMATS)})")


def write_bundle(path: str | Path, bundle: Bundle, fmt: str = "json") -> Path:
    """Encode and write ``bundle``; the target is replaced only on success."""
    target = Path(path)
    text = dump_bundle(bundle, fmt)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target


def infer_format(path: str | Path, default: str = "json") -> str:
    suffix = Path(path).suffix.lower()
    if suffix in {".yaml", ".yml"}:
        return "yaml"
    if suffix == ".json":
        return "json"
    return default


# ---- decoding ----------------------------------------------------------


def _normalise_scalars(value: Any) -> Any:
    """YAML turns unquoted timestamps into datetimes; keep them as ISO strings."""
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _normalise_scalars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalise_scalars(v) for v in value]
    return value


def decode_document(data: str | bytes) -> dict[str, Any]:
    """Decode bundle bytes as JSON, falling back to YAML."""
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise BundleFormatError(f"bundle is not valid UTF-8: {exc}") from exc
    else:
        text = data
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as json_exc:
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as yaml_exc:
            raise BundleFormatError(
                f"failed to parse bundle as JSON ({json_exc}) or YAML ({yaml_exc})"
            ) from yaml_exc
    if not isinstance(doc, dict):
        raise BundleFormatError("bundle must be a JSON or YAML object with 'metadata' and 'project'")
    return _normalise_scalars(doc)


def validate_document(doc: Mapping[str, Any]) -> None:
    validator = Draft7Validator(get_schemas()["bundle"])
    errors = sorted(validator.iter_errors(doc), key=lambda e: list(e.absolute_path))
    if errors:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
            for err in errors[:5]
        )
        raise BundleFormatError(f"invalid bundle: {details}")


def _collection(doc: Mapping[str, Any], key: str, factory: Callable[[Mapping[str, Any]], Any]) -> list[Any] | None:
    raw = doc.get(key)
    if raw is None:
        return None
    return [factory(entry) for entry in raw]


def _read_v1(doc: Mapping[str, Any]) -> Bundle:
    return Bundle(
        metadata=BundleMetadata.from_dict(doc["metadata"]),
        project=BundleProject.from_dict(doc["project"]),
        items=_collection(doc, "items", BundleItem.from_dict),
        fields=_collection(doc, "fields", BundleField.from_dict),
        views=_collection(doc, "views", BundleView.from_dict),
    )


_READERS: dict[int, Callable[[Mapping[str, Any]], Bundle]] = {1: _read_v1}


def major_version(version: str) -> int:
    match = _MAJOR_RE.match(str(version))
    if match is None:
        raise BundleFormatError(f"invalid bundle version: {version!r}")
    return int(match.group(0))


def bundle_from_document(doc: Mapping[str, Any]) -> Bundle:
    validate_document(doc)
    version = str(doc["metadata"]["version"])
    major = major_version(version)
    reader = _READERS.get(major)
    if reader is None:
        latest = max(_READERS)
        get_logger().warning(
            f"bundle format {version} is newer than supported {FORMAT_VERSION}; reading as {latest}.x"
        )
        reader = _READERS[latest]
    return reader(doc)


def load_bundle(data: str | bytes) -> Bundle:
    return bundle_from_document(decode_document(data))


def read_bundle(path: str | Path) -> Bundle:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as exc:
        raise BundleFormatError(f"failed to read bundle file {p}: {exc}") from exc
    return load_bundle(data)


__all__ = [
    "BUNDLE_FORMATS",
    "Bundle",
    "BundleField",
    "BundleFieldOption",
    "BundleItem",
    "BundleMetadata",
    "BundleProject",
    "BundleView",
    "FORMAT_VERSION",
    "bundle_from_document",
    "decode_document",
    "dump_bundle",
    "infer_format",
    "load_bundle",
    "read_bundle",
    "validate_document",
    "write_bundle",
]
