"""Central schema registry with version metadata and filenames."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SchemaDescriptor:
    """Describes a schema artifact shipped with ghx."""

    name: str
    version: str
    filename: str
    description: str


_REGISTRY: dict[str, SchemaDescriptor] = {
    "bundle": SchemaDescriptor(
        name="bundle",
        version="1.0",
        filename="ghx_bundle.schema.json",
        description="Portable export bundle of one GitHub project (metadata, project, items, fields, views).",
    ),
    "bulk_result": SchemaDescriptor(
        name="bulk_result",
        version="1",
        filename="ghx_bulk_result.schema.json",
        description="Aggregated outcome of a bulk item mutation run.",
    ),
}


def get_schema_descriptor(name: str) -> SchemaDescriptor:
    """Return a copy of a schema descriptor by name."""

    try:
        descriptor = _REGISTRY[name]
    except KeyError as exc:
        raise KeyError(f"Unknown schema '{name}'") from exc
    return replace(descriptor)


def get_schema_registry() -> dict[str, SchemaDescriptor]:
    return {name: replace(descriptor) for name, descriptor in _REGISTRY.items()}


def iter_schema_descriptors() -> Iterable[SchemaDescriptor]:
    for descriptor in _REGISTRY.values():
        yield replace(descriptor)


__all__ = [
    "SchemaDescriptor",
    "get_schema_descriptor",
    "get_schema_registry",
    "iter_schema_descriptors",
]
