"""JSON Schemas for the artifacts ghx reads and writes.

The bundle schema pins the top-level layout and the keys the importer relies
on; nested objects stay open (``additionalProperties`` allowed) so newer
minor format versions can add keys without breaking older readers.
"""

from __future__ import annotations

from typing import Any

from .schema_registry import get_schema_descriptor

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"

_NULLABLE_STRING = {"type": ["string", "null"]}


def _bundle_schema() -> dict[str, Any]:
    descriptor = get_schema_descriptor("bundle")
    option = {
        "type": "object",
        "required": ["name"],
        "properties": {
            "id": _NULLABLE_STRING,
            "name": {"type": "string"},
            "color": _NULLABLE_STRING,
            "description": _NULLABLE_STRING,
        },
    }
    return {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"ghx bundle schema v{descriptor.version}",
        "title": "ProjectBundle",
        "type": "object",
        "required": ["metadata", "project"],
        "properties": {
            "metadata": {
                "type": "object",
                "required": ["version"],
                "properties": {
                    "version": {"type": "string", "pattern": r"^[0-9]+(\.[0-9]+)*([-+][0-9A-Za-z.-]+)?$"},
                    "exported_at": {"type": "string"},
                    "exported_by": {"type": "string"},
                    "tool_version": {"type": "string"},
                },
            },
            "project": {
                "type": "object",
                "required": ["title"],
                "properties": {
                    "id": _NULLABLE_STRING,
                    "title": {"type": "string", "minLength": 1},
                    "description": _NULLABLE_STRING,
                    "url": _NULLABLE_STRING,
                    "owner": _NULLABLE_STRING,
                    "number": {"type": ["integer", "null"]},
                    "closed": {"type": "boolean"},
                },
            },
            "items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["title"],
                    "properties": {
                        "id": _NULLABLE_STRING,
                        "title": {"type": "string"},
                        "body": _NULLABLE_STRING,
                        "type": {"enum": ["Issue", "PullRequest", "DraftIssue"]},
                        "url": _NULLABLE_STRING,
                        "fields": {"type": "object"},
                    },
                },
            },
            "fields": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["name", "data_type"],
                    "properties": {
                        "id": _NULLABLE_STRING,
                        "name": {"type": "string", "minLength": 1},
                        "data_type": {"type": "string"},
                        "options": {"type": "array", "items": option},
                    },
                },
            },
            "views": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["name"],
                    "properties": {
                        "id": _NULLABLE_STRING,
                        "name": {"type": "string"},
                        "layout": {"type": "string"},
                    },
                },
            },
        },
    }


def _bulk_result_schema() -> dict[str, Any]:
    descriptor = get_schema_descriptor("bulk_result")
    count = {"type": "integer", "minimum": 0}
    return {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"ghx bulk result schema v{descriptor.version}",
        "title": "BulkResult",
        "type": "object",
        "required": ["attempted", "succeeded", "failed", "errors"],
        "properties": {
            "attempted": count,
            "succeeded": count,
            "failed": count,
            "errors": {"type": "array", "items": {"type": "string"}},
            "cancelled": {"type": "boolean"},
        },
        "additionalProperties": False,
    }


def get_schemas() -> dict[str, Any]:
    """Return a mapping of schema name -> JSON Schema dictionary.

    Keys:
        bundle:      Schema of an export bundle (JSON or YAML encoded).
        bulk_result: Schema of the summary emitted by bulk item commands.
    """
    return {
        "bundle": _bundle_schema(),
        "bulk_result": _bulk_result_schema(),
    }


__all__ = ["get_schemas", "SCHEMA_URL"]
