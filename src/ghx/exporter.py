"""Serialize one project into a portable :class:`~ghx.bundle.Bundle`.

Export is all-or-nothing: every requested collection is fetched before the
bundle exists, and a fetch failure raises :class:`~ghx.errors.ExportError`
naming the stage, so no partial file is ever written.
"""

from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from . import __version__
from .bundle import (
    Bundle,
    BundleField,
    BundleFieldOption,
    BundleItem,
    BundleMetadata,
    BundleProject,
    BundleView,
    FORMAT_VERSION,
    write_bundle,
)
from .concurrency import CancellationToken
from .errors import ExportError, GhxError
from .logging import get_logger
from .owner import ProjectHandle
from .projects import EXPORTABLE_DATA_TYPES, ProjectField, ProjectItem, ProjectView


class ExportSource(Protocol):
    def fetch_fields(self, project_id: str) -> list[ProjectField]: ...

    def fetch_items(self, project_id: str) -> list[ProjectItem]: ...

    def fetch_views(self, project_id: str) -> list[ProjectView]: ...


@dataclass(frozen=True)
class ExportOptions:
    include_items: bool = True
    include_fields: bool = True
    include_views: bool = True
    include_workflows: bool = True


def _exported_by() -> str:
    for var in ("GHX_EXPORTED_BY", "GITHUB_ACTOR"):
        value = os.getenv(var)
        if value:
            return value
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "ghx"


def _field_to_bundle(project_field: ProjectField) -> BundleField:
    options = None
    if project_field.data_type == "SINGLE_SELECT":
        options = [
            BundleFieldOption(
                name=o.name, id=o.id, color=o.color, description=o.description
            )
            for o in project_field.options
        ]
    return BundleField(
        name=project_field.name,
        data_type=project_field.data_type,
        id=project_field.id,
        options=options,
    )


def _item_to_bundle(item: ProjectItem) -> BundleItem:
    return BundleItem(
        title=item.title,
        type=item.content_type,
        id=item.id,
        body=item.body,
        url=item.url,
        fields=dict(item.field_values),
    )


def _fetch(stage: str, fetch: Any, project_id: str, cancel: CancellationToken | None) -> Any:
    if cancel is not None and cancel.cancelled:
        raise ExportError(stage, GhxError("export cancelled"))
    try:
        return fetch(project_id)
    except GhxError as exc:
        raise ExportError(stage, exc) from exc


def export_project(
    service: ExportSource,
    handle: ProjectHandle,
    options: ExportOptions | None = None,
    *,
    cancel: CancellationToken | None = None,
    now: datetime | None = None,
) -> Bundle:
    """Build a bundle for ``handle`` containing the requested collections."""
    options = options or ExportOptions()
    logger = get_logger()
    exported_at = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    bundle = Bundle(
        metadata=BundleMetadata(
            version=FORMAT_VERSION,
            exported_at=exported_at,
            exported_by=_exported_by(),
            tool_version=__version__,
        ),
        project=BundleProject(
            title=handle.title,
            id=handle.id,
            description=handle.description,
            url=handle.url,
            owner=handle.owner,
            number=handle.number,
            closed=handle.closed,
        ),
    )

    with logger.timed_operation("export", project=handle.reference):
        if options.include_fields:
            fields = _fetch("fields", service.fetch_fields, handle.id, cancel)
            bundle.fields = [
                _field_to_bundle(f) for f in fields if f.data_type in EXPORTABLE_DATA_TYPES
            ]
        if options.include_items:
            items = _fetch("items", service.fetch_items, handle.id, cancel)
            bundle.items = [_item_to_bundle(item) for item in items]
        if options.include_views:
            views = _fetch("views", service.fetch_views, handle.id, cancel)
            bundle.views = [
                BundleView(name=v.name, layout=v.layout, id=v.id) for v in views
            ]
        if options.include_workflows:
            logger.info(f"workflows are not part of bundle format {FORMAT_VERSION}; skipped")
    return bundle


def export_to_file(
    service: ExportSource,
    handle: ProjectHandle,
    path: str | Path,
    fmt: str = "json",
    options: ExportOptions | None = None,
    *,
    cancel: CancellationToken | None = None,
) -> Bundle:
    bundle = export_project(service, handle, options, cancel=cancel)
    write_bundle(path, bundle, fmt)
    get_logger().log_operation(
        "export_written",
        path=str(path),
        format=fmt,
        items=len(bundle.items or []),
        fields=len(bundle.fields or []),
        views=len(bundle.views or []),
    )
    return bundle


__all__ = ["ExportOptions", "export_project", "export_to_file"]
