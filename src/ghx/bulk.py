"""Bulk item mutations with partial-failure semantics.

The executor applies one mutation (:class:`UpdateField`, :class:`DeleteItem`
or :class:`ArchiveItem`) to every identifier of a target list, in order,
and never stops early on a failing item. Per-item failures are collected as
``"item #<id>: <cause>"`` strings; the aggregate always satisfies::

    succeeded + failed == attempted
    len(errors) == failed

Targets are assembled from a numeric range, live filters
(``label:``, ``assignee:``, ``state:``) and identifier files, then
deduplicated preserving first-seen order.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Union

from .concurrency import CancellationToken, ConcurrencyConfig, get_optimal_worker_count
from .errors import GhxError, ResolutionError, ValidationError
from .logging import get_logger
from .owner import ProjectHandle
from .projects import ProjectField, ProjectItem, field_value_input, find_field
from .references import is_item_reference, parse_item_reference

# Partial failures are reported, not fatal, unless --fail-on-partial is given.
BULK_PARTIAL_FAILURE_EXIT_CODE = 0
PROJECT_ITEM_ID_PREFIX = "PVTI_"
SUPPORTED_FILTERS = ("label", "assignee", "state")
SUPPORTED_STATES = ("open", "closed")


class BulkTargetService(Protocol):
    def fetch_fields(self, project_id: str) -> list[ProjectField]: ...

    def fetch_items(self, project_id: str) -> list[ProjectItem]: ...

    def viewer_login(self) -> str: ...

    def set_field_value(
        self, project_id: str, item_id: str, field_id: str, value: dict[str, Any]
    ) -> None: ...

    def delete_item(self, project_id: str, item_id: str) -> None: ...

    def archive_item(self, project_id: str, item_id: str) -> None: ...


# ---- mutation specs ----------------------------------------------------


@dataclass(frozen=True)
class UpdateField:
    field_name: str
    value: str


@dataclass(frozen=True)
class DeleteItem:
    pass


@dataclass(frozen=True)
class ArchiveItem:
    pass


MutationSpec = Union[UpdateField, DeleteItem, ArchiveItem]


@dataclass
class BulkResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.cancelled

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": list(self.errors),
            "cancelled": self.cancelled,
        }


class _ResultAccumulator:
    """Lock-protected tally; errors are reported in target order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._succeeded = 0
        self._errors: list[tuple[int, str]] = []

    def record(self, index: int, error: str | None) -> None:
        with self._lock:
            if error is None:
                self._succeeded += 1
            else:
                self._errors.append((index, error))

    def build(self, cancelled: bool) -> BulkResult:
        with self._lock:
            errors = [message for _, message in sorted(self._errors)]
            return BulkResult(
                attempted=self._succeeded + len(errors),
                succeeded=self._succeeded,
                failed=len(errors),
                errors=errors,
                cancelled=cancelled,
            )


# ---- target assembly ---------------------------------------------------


def remove_duplicates(values: Iterable[str]) -> list[str]:
    """Drop repeated identifiers, keeping the first occurrence."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _parse_int(literal: str, what: str) -> int:
    text = literal.strip()
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f"invalid {what}: {literal!r}")
    return int(text)


def parse_number_range(range_str: str) -> list[str]:
    """Expand ``start-end`` (inclusive), a single number, or a comma list of both."""
    if not range_str or not range_str.strip():
        raise ValidationError("empty item range")
    identifiers: list[str] = []
    for part in range_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            bounds = part.split("-")
            if len(bounds) != 2:
                raise ValidationError(f"invalid range format: {part!r}")
            start = _parse_int(bounds[0], "start number")
            end = _parse_int(bounds[1], "end number")
            if start > end:
                raise ValidationError(
                    f"start number cannot be greater than end number: {part!r}"
                )
            identifiers.extend(str(n) for n in range(start, end + 1))
        else:
            identifiers.append(str(_parse_int(part, "number")))
    if not identifiers:
        raise ValidationError(f"invalid range format: {range_str!r}")
    return identifiers


def read_identifiers_file(path: str | Path) -> list[str]:
    """One identifier per line; blank lines and ``#`` comments are ignored."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"failed to read items file {p}: {exc}") from exc
    identifiers: list[str] = []
    for line in text.splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        identifiers.append(entry)
    return identifiers


@dataclass(frozen=True)
class ItemFilter:
    kind: str
    value: str

    def matches(self, item: ProjectItem, viewer: str | None = None) -> bool:
        wanted = self.value.casefold()
        if self.kind == "label":
            return any(label.casefold() == wanted for label in item.labels)
        if self.kind == "assignee":
            login = viewer if self.value == "@me" and viewer else self.value
            return any(a.casefold() == login.casefold() for a in item.assignees)
        if self.kind == "state":
            if item.state is None:
                return False
            state = "open" if item.state.upper() == "OPEN" else "closed"
            return state == wanted
        return False


def parse_filter(expr: str) -> ItemFilter:
    kind, sep, value = expr.partition(":")
    kind, value = kind.strip().lower(), value.strip()
    if not sep or not kind or not value:
        raise ValidationError(f"invalid filter format: {expr!r} (expected 'key:value')")
    if kind not in SUPPORTED_FILTERS:
        raise ValidationError(
            f"unsupported filter type: {kind} (supported: {', '.join(SUPPORTED_FILTERS)})"
        )
    if kind == "state" and value.lower() not in SUPPORTED_STATES:
        raise ValidationError(f"unsupported state: {value} (supported: open, closed)")
    return ItemFilter(kind=kind, value=value)


def build_targets(
    service: BulkTargetService,
    handle: ProjectHandle,
    *,
    item_range: str | None = None,
    filters: Sequence[str] = (),
    from_file: str | Path | None = None,
) -> list[str]:
    """Union all target sources, deduplicated in first-seen order.

    Local sources are validated before filters hit the network. Filters
    query the project's items at call time.
    """
    if not item_range and not filters and from_file is None:
        raise ValidationError("at least one target source is required (--items, --filter or --from-file)")
    from_range = parse_number_range(item_range) if item_range else []
    parsed_filters = [parse_filter(expr) for expr in filters]
    from_list = read_identifiers_file(from_file) if from_file is not None else []

    from_filters: list[str] = []
    if parsed_filters:
        viewer = None
        if any(f.kind == "assignee" and f.value == "@me" for f in parsed_filters):
            viewer = service.viewer_login()
        items = service.fetch_items(handle.id)
        for item_filter in parsed_filters:
            from_filters.extend(item.id for item in items if item_filter.matches(item, viewer))
    return remove_duplicates([*from_range, *from_filters, *from_list])


# ---- identifier resolution ---------------------------------------------


class ItemIndex:
    """Snapshot of a project's items for resolving user identifiers."""

    def __init__(self, items: Iterable[ProjectItem]):
        self._by_number: dict[int, list[ProjectItem]] = {}
        for item in items:
            if item.number is not None:
                self._by_number.setdefault(item.number, []).append(item)

    def resolve(self, identifier: str) -> str:
        text = identifier.strip()
        if text.startswith(PROJECT_ITEM_ID_PREFIX):
            return text
        if is_item_reference(text):
            ref = parse_item_reference(text)
            for candidate in self._by_number.get(ref.number, []):
                if (candidate.repository or "").casefold() == ref.repository.casefold():
                    return candidate.id
            raise ResolutionError(f"{ref} is not in this project")
        if text.isascii() and text.isdigit():
            matches = self._by_number.get(int(text), [])
            if not matches:
                raise ResolutionError("no project item with that number")
            if len(matches) > 1:
                repos = ", ".join(sorted(m.repository or "?" for m in matches))
                raise ResolutionError(f"number is ambiguous across repositories ({repos})")
            return matches[0].id
        raise ValidationError(f"unrecognized item identifier: {identifier!r}")


# ---- executor ----------------------------------------------------------


class BulkMutationExecutor:
    def __init__(
        self,
        service: BulkTargetService,
        handle: ProjectHandle,
        concurrency: ConcurrencyConfig | None = None,
    ):
        self.service = service
        self.handle = handle
        self.concurrency = concurrency or ConcurrencyConfig()
        self.logger = get_logger()

    def prepare(self, spec: MutationSpec) -> Callable[[str], None]:
        """Turn a mutation into a per-item callable; bad input fails here, before any mutation."""
        project_id = self.handle.id
        if isinstance(spec, UpdateField):
            if not spec.field_name.strip():
                raise ValidationError("field name is required")
            fields = self.service.fetch_fields(project_id)
            target = find_field(fields, spec.field_name)
            if target is None:
                available = ", ".join(f.name for f in fields) or "none"
                raise ValidationError(
                    f"field '{spec.field_name}' not found in project (available: {available})"
                )
            value_input = field_value_input(target, spec.value)
            return lambda item_id: self.service.set_field_value(
                project_id, item_id, target.id, value_input
            )
        if isinstance(spec, DeleteItem):
            return lambda item_id: self.service.delete_item(project_id, item_id)
        if isinstance(spec, ArchiveItem):
            return lambda item_id: self.service.archive_item(project_id, item_id)
        raise ValidationError(f"unsupported mutation: {spec!r}")

    def _apply(
        self,
        index: int,
        identifier: str,
        mutate: Callable[[str], None],
        items: ItemIndex,
        action: str,
        accumulator: _ResultAccumulator,
    ) -> None:
        try:
            mutate(items.resolve(identifier))
        except (GhxError, ValueError) as exc:
            accumulator.record(index, f"item #{identifier}: {exc}")
            self.logger.debug(f"item {action} failed", item=identifier, error=str(exc))
            return
        accumulator.record(index, None)
        self.logger.log_item_action(action, identifier)

    def run(
        self,
        targets: Sequence[str],
        spec: MutationSpec,
        cancel: CancellationToken | None = None,
    ) -> BulkResult:
        mutate = self.prepare(spec)
        action = type(spec).__name__.lower()
        items = ItemIndex(self.service.fetch_items(self.handle.id))
        accumulator = _ResultAccumulator()
        cancelled = False

        workers = 1
        if self.concurrency.enabled:
            workers = get_optimal_worker_count(len(targets), self.concurrency.max_workers)

        with self.logger.timed_operation(f"bulk_{action}", project=self.handle.reference, targets=len(targets)):
            if workers <= 1:
                for index, identifier in enumerate(targets):
                    if cancel is not None and cancel.cancelled:
                        cancelled = True
                        break
                    self._apply(index, identifier, mutate, items, action, accumulator)
            else:
                def worker(index: int, identifier: str) -> bool:
                    if cancel is not None and cancel.cancelled:
                        return False
                    self._apply(index, identifier, mutate, items, action, accumulator)
                    return True

                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = [pool.submit(worker, i, t) for i, t in enumerate(targets)]
                    started = [f.result() for f in futures]
                cancelled = not all(started)

        result = accumulator.build(cancelled)
        self.logger.log_operation(
            f"bulk_{action}_complete",
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed,
            cancelled=result.cancelled,
        )
        return result


__all__ = [
    "ArchiveItem",
    "BULK_PARTIAL_FAILURE_EXIT_CODE",
    "BulkMutationExecutor",
    "BulkResult",
    "DeleteItem",
    "ItemFilter",
    "ItemIndex",
    "MutationSpec",
    "UpdateField",
    "build_targets",
    "parse_filter",
    "parse_number_range",
    "read_identifiers_file",
    "remove_duplicates",
]
