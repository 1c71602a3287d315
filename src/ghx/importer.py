"""Reconstruct a project from a bundle.

Import always targets a *new* project. The work happens in fixed stages::

    project shell -> fields -> items -> views

Fields come before items because item values reference the ids of created
fields. A failing stage raises :class:`~ghx.errors.ImportStageError`;
earlier stages are not rolled back.

Both dry-run and live runs go through :func:`plan_import`, so a dry run
reports exactly the counts a live run would produce.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .bundle import Bundle, BundleField, BundleItem, BundleView, load_bundle
from .concurrency import CancellationToken
from .errors import GhxError, ImportStageError, ValidationError
from .logging import get_logger
from .owner import OwnerNode
from .projects import FieldOption, ProjectField, field_value_input


class ImportTarget(Protocol):
    def resolve_owner(self, login: str) -> OwnerNode: ...

    def create_project(
        self, owner_id: str, title: str, description: str | None = None
    ) -> dict[str, Any]: ...

    def fetch_fields(self, project_id: str) -> list[ProjectField]: ...

    def create_field(
        self,
        project_id: str,
        name: str,
        data_type: str,
        options: list[FieldOption] | None = None,
    ) -> ProjectField: ...

    def update_field_options(self, field_id: str, options: list[FieldOption]) -> ProjectField: ...

    def add_draft_issue(self, project_id: str, title: str, body: str | None = None) -> str: ...

    def resolve_content_id(self, url: str) -> str: ...

    def add_content(self, project_id: str, content_id: str) -> str: ...

    def set_field_value(
        self, project_id: str, item_id: str, field_id: str, value: dict[str, Any]
    ) -> None: ...

    def create_view(self, project_id: str, name: str, layout: str) -> Any: ...


class MergeStrategy(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"
    APPEND = "append"
    SKIP_CONFLICTS = "skip_conflicts"


VALID_MERGE_STRATEGIES = tuple(s.value for s in MergeStrategy)

# Fields every freshly created project already has.
DEFAULT_PROJECT_FIELDS = (
    "Title",
    "Assignees",
    "Status",
    "Labels",
    "Linked pull requests",
    "Milestone",
    "Repository",
    "Reviewers",
    "Parent issue",
    "Sub-issues progress",
)
APPENDED_FIELD_SUFFIX = "imported"


class FieldAction(str, Enum):
    CREATE = "create"
    REUSE = "reuse"
    REPLACE = "replace"
    SKIP = "skip"


@dataclass(frozen=True)
class PlannedField:
    source: BundleField
    action: FieldAction
    target_name: str


@dataclass(frozen=True)
class ImportPlan:
    strategy: MergeStrategy
    fields: tuple[PlannedField, ...]
    items: tuple[BundleItem, ...]
    views: tuple[BundleView, ...]

    @property
    def field_count(self) -> int:
        return sum(1 for planned in self.fields if planned.action is not FieldAction.SKIP)

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def view_count(self) -> int:
        return len(self.views)

    @property
    def skipped_fields(self) -> frozenset[str]:
        return frozenset(
            p.source.name.casefold() for p in self.fields if p.action is FieldAction.SKIP
        )


@dataclass(frozen=True)
class ImportOptions:
    owner: str
    dry_run: bool = False
    skip_items: bool = False
    skip_fields: bool = False
    merge_strategy: str = MergeStrategy.MERGE.value


@dataclass(frozen=True)
class ImportResult:
    project_id: str
    project_title: str
    project_url: str
    item_count: int
    field_count: int
    view_count: int
    dry_run: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "project_title": self.project_title,
            "project_url": self.project_url,
            "item_count": self.item_count,
            "field_count": self.field_count,
            "view_count": self.view_count,
            "dry_run": self.dry_run,
        }


def validate_merge_strategy(value: str | MergeStrategy) -> MergeStrategy:
    if isinstance(value, MergeStrategy):
        return value
    normalized = str(value).strip().lower()
    try:
        return MergeStrategy(normalized)
    except ValueError:
        raise ValidationError(
            f"invalid merge strategy: {value} (valid: {', '.join(VALID_MERGE_STRATEGIES)})"
        ) from None


def _appended_name(name: str, taken: set[str]) -> str:
    candidate = f"{name} ({APPENDED_FIELD_SUFFIX})"
    counter = 2
    while candidate.casefold() in taken:
        candidate = f"{name} ({APPENDED_FIELD_SUFFIX} {counter})"
        counter += 1
    return candidate


def _plan_fields(
    fields: Iterable[BundleField], strategy: MergeStrategy, existing: Iterable[str]
) -> tuple[PlannedField, ...]:
    taken = {name.casefold() for name in existing}
    planned: list[PlannedField] = []
    for source in fields:
        key = source.name.casefold()
        if key not in taken:
            action, target = FieldAction.CREATE, source.name
        elif strategy is MergeStrategy.MERGE:
            action, target = FieldAction.REUSE, source.name
        elif strategy is MergeStrategy.REPLACE:
            action, target = FieldAction.REPLACE, source.name
        elif strategy is MergeStrategy.APPEND:
            action, target = FieldAction.CREATE, _appended_name(source.name, taken)
        else:
            action, target = FieldAction.SKIP, source.name
        taken.add(target.casefold())
        planned.append(PlannedField(source=source, action=action, target_name=target))
    return tuple(planned)


def _plan_items(items: Iterable[BundleItem], strategy: MergeStrategy) -> tuple[BundleItem, ...]:
    if strategy is MergeStrategy.APPEND:
        return tuple(items)
    seen: set[str] = set()
    planned: list[BundleItem] = []
    for item in items:
        if item.url:
            if item.url in seen:
                continue
            seen.add(item.url)
        planned.append(item)
    return tuple(planned)


def plan_import(
    bundle: Bundle,
    strategy: str | MergeStrategy = MergeStrategy.MERGE,
    *,
    skip_fields: bool = False,
    skip_items: bool = False,
    existing_fields: Iterable[str] = DEFAULT_PROJECT_FIELDS,
) -> ImportPlan:
    """Decide what an import will create, independent of dry-run."""
    resolved = validate_merge_strategy(strategy)
    fields = () if skip_fields else _plan_fields(bundle.fields or [], resolved, existing_fields)
    items = () if skip_items else _plan_items(bundle.items or [], resolved)
    return ImportPlan(
        strategy=resolved,
        fields=fields,
        items=items,
        views=tuple(bundle.views or []),
    )


def _to_options(source: BundleField) -> list[FieldOption]:
    return [
        FieldOption(id="", name=o.name, color=o.color, description=o.description)
        for o in source.options or []
    ]


class _Importer:
    def __init__(
        self, service: ImportTarget, plan: ImportPlan, cancel: CancellationToken | None
    ) -> None:
        self.service = service
        self.plan = plan
        self.cancel = cancel
        self.logger = get_logger()
        self.project_id: str | None = None

    def _stage(self, stage: str, exc: BaseException) -> ImportStageError:
        return ImportStageError(stage, exc, project_id=self.project_id)

    def _check_cancelled(self, stage: str) -> None:
        if self.cancel is not None and self.cancel.cancelled:
            raise self._stage(stage, GhxError("import cancelled"))

    def create_project(self, owner: OwnerNode, bundle: Bundle) -> dict[str, Any]:
        try:
            project = self.service.create_project(
                owner.id, bundle.project.title, bundle.project.description
            )
        except GhxError as exc:
            raise self._stage("project", exc) from exc
        self.project_id = str(project["id"])
        return project

    def import_fields(self) -> dict[str, ProjectField]:
        assert self.project_id is not None
        field_map: dict[str, ProjectField] = {}
        try:
            existing: dict[str, ProjectField] = {}
            if any(p.action in (FieldAction.REUSE, FieldAction.REPLACE) for p in self.plan.fields):
                existing = {f.name.casefold(): f for f in self.service.fetch_fields(self.project_id)}
            for planned in self.plan.fields:
                self._check_cancelled("fields")
                if planned.action is FieldAction.SKIP:
                    self.logger.info(f"skipping conflicting field '{planned.source.name}'")
                    continue
                target = existing.get(planned.target_name.casefold())
                if planned.action is FieldAction.REPLACE and target is not None:
                    if target.data_type == "SINGLE_SELECT" and planned.source.options is not None:
                        target = self.service.update_field_options(
                            target.id, _to_options(planned.source)
                        )
                elif planned.action is FieldAction.CREATE or target is None:
                    target = self.service.create_field(
                        self.project_id,
                        planned.target_name,
                        planned.source.data_type,
                        _to_options(planned.source),
                    )
                self.logger.log_item_action(planned.action.value, f"field:{planned.target_name}")
                field_map[planned.source.name.casefold()] = target
        except ImportStageError:
            raise
        except GhxError as exc:
            raise self._stage("fields", exc) from exc
        return field_map

    def existing_fields(self) -> dict[str, ProjectField]:
        """Fields the new project already carries, for item values when fields are skipped."""
        assert self.project_id is not None
        try:
            return {f.name.casefold(): f for f in self.service.fetch_fields(self.project_id)}
        except GhxError as exc:
            raise self._stage("fields", exc) from exc

    def _create_item(self, item: BundleItem) -> str:
        assert self.project_id is not None
        if item.type == "DraftIssue" or not item.url:
            return self.service.add_draft_issue(self.project_id, item.title, item.body)
        content_id = self.service.resolve_content_id(item.url)
        return self.service.add_content(self.project_id, content_id)

    def _set_values(self, item: BundleItem, item_id: str, field_map: dict[str, ProjectField]) -> None:
        assert self.project_id is not None
        for name, value in item.fields.items():
            key = name.casefold()
            if key in self.plan.skipped_fields:
                continue
            target = field_map.get(key)
            if target is None:
                self.logger.warning(f"item '{item.title}': no field '{name}' in target project; value skipped")
                continue
            try:
                value_input = field_value_input(target, value)
            except ValidationError as exc:
                self.logger.warning(f"item '{item.title}': {exc}; value skipped")
                continue
            self.service.set_field_value(self.project_id, item_id, target.id, value_input)

    def import_items(self, field_map: dict[str, ProjectField]) -> None:
        try:
            for item in self.plan.items:
                self._check_cancelled("items")
                item_id = self._create_item(item)
                self._set_values(item, item_id, field_map)
                self.logger.log_item_action("import", item.url or item.title)
        except ImportStageError:
            raise
        except GhxError as exc:
            raise self._stage("items", exc) from exc

    def import_views(self) -> None:
        assert self.project_id is not None
        try:
            for view in self.plan.views:
                self._check_cancelled("views")
                self.service.create_view(self.project_id, view.name, view.layout)
        except ImportStageError:
            raise
        except GhxError as exc:
            raise self._stage("views", exc) from exc


def import_bundle(
    service: ImportTarget,
    data: str | bytes | Bundle,
    options: ImportOptions,
    *,
    cancel: CancellationToken | None = None,
) -> ImportResult:
    strategy = validate_merge_strategy(options.merge_strategy)
    if not options.owner or not options.owner.strip():
        raise ValidationError("owner is required for import")
    bundle = data if isinstance(data, Bundle) else load_bundle(data)
    plan = plan_import(
        bundle, strategy, skip_fields=options.skip_fields, skip_items=options.skip_items
    )
    logger = get_logger()
    owner = service.resolve_owner(options.owner.strip())

    if options.dry_run:
        logger.log_operation(
            "import_plan",
            dry_run=True,
            strategy=strategy.value,
            fields=plan.field_count,
            items=plan.item_count,
            views=plan.view_count,
        )
        return ImportResult(
            project_id="",
            project_title=bundle.project.title,
            project_url="",
            item_count=plan.item_count,
            field_count=plan.field_count,
            view_count=plan.view_count,
            dry_run=True,
        )

    importer = _Importer(service, plan, cancel)
    with logger.timed_operation("import", owner=owner.login, strategy=strategy.value):
        project = importer.create_project(owner, bundle)
        field_map = importer.import_fields() if plan.fields else {}
        if plan.items:
            if not plan.fields:
                field_map = importer.existing_fields()
            importer.import_items(field_map)
        if plan.views:
            importer.import_views()

    return ImportResult(
        project_id=str(project["id"]),
        project_title=str(project.get("title") or bundle.project.title),
        project_url=str(project.get("url") or ""),
        item_count=plan.item_count,
        field_count=plan.field_count,
        view_count=plan.view_count,
        dry_run=False,
    )


__all__ = [
    "DEFAULT_PROJECT_FIELDS",
    "FieldAction",
    "ImportOptions",
    "ImportPlan",
    "ImportResult",
    "MergeStrategy",
    "PlannedField",
    "VALID_MERGE_STRATEGIES",
    "import_bundle",
    "plan_import",
    "validate_merge_strategy",
]
