"""ghx CLI.

Subcommands:
  export            -> write one project to a JSON/YAML bundle
  import            -> create a new project from a bundle (with --dry-run)
  item update-bulk  -> set one field value on many items
  item delete-bulk  -> delete many items from a project
  item archive-bulk -> archive many items
  schema            -> write JSON Schemas for the bundle and bulk result
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .bulk import (
    BULK_PARTIAL_FAILURE_EXIT_CODE,
    ArchiveItem,
    BulkMutationExecutor,
    DeleteItem,
    MutationSpec,
    UpdateField,
    build_targets,
)
from .bundle import BUNDLE_FORMATS, infer_format
from .concurrency import CancellationToken, ConcurrencyConfig
from .config import ConfigError, GhxConfig
from .credentials import load_credentials
from .errors import ValidationError
from .exporter import ExportOptions, export_to_file
from .github_graphql import GraphQLClient
from .importer import (
    VALID_MERGE_STRATEGIES,
    ImportOptions,
    import_bundle,
    validate_merge_strategy,
)
from .projects import ProjectService
from .references import parse_project_reference
from .retry import RetryConfig
from .runtime import execute_command, prepare_config
from .schema_registry import iter_schema_descriptors
from .schemas import get_schemas
from .ux import (
    is_quiet,
    print_error,
    print_success,
    render_bulk_result,
    render_import_result,
)

CANCELLED_EXIT_CODE = 130
_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("project", help="Project reference (owner/number)")
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="EXPR",
        help="Select items by label:<name>, assignee:<login|@me> or state:<open|closed> (repeatable)",
    )
    parser.add_argument("--items", metavar="RANGE", help="Item numbers, e.g. 34-46 or 1,3,5-7")
    parser.add_argument("--from-file", metavar="PATH", help="File with one item identifier per line")
    parser.add_argument(
        "--fail-on-partial",
        action="store_true",
        help="Exit non-zero when any item fails (default: partial failures exit 0)",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands."""
    p = _FormatterArgumentParser(
        prog="ghx", description="GitHub Projects (v2) export, import and bulk item operations"
    )
    p.add_argument("--config", help="Path to ghx.config.yaml (default: ./ghx.config.yaml if present)")
    p.add_argument("--token", help="GitHub token (default: env, .env or 'gh auth token')")
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational output (env: GHX_QUIET=1)",
    )
    p.add_argument("--log-json", action="store_true", help="Emit structured JSON logs on stderr")
    p.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pe = sub.add_parser("export", help="Export a project to a JSON/YAML bundle")
    pe.add_argument("project", help="Project reference (owner/number)")
    pe.add_argument("--output", "-o", required=True, help="Bundle file to write")
    pe.add_argument("--format", "-f", choices=BUNDLE_FORMATS, help="Bundle format (default: from extension/config)")
    for collection in ("items", "fields", "views", "workflows"):
        pe.add_argument(
            f"--include-{collection}",
            action=argparse.BooleanOptionalAction,
            default=True,
            help=f"Include {collection} in the bundle",
        )

    pi = sub.add_parser("import", help="Create a project from a bundle")
    pi.add_argument("--file", required=True, help="Bundle file (JSON or YAML)")
    pi.add_argument("--owner", required=True, help="User or organization that will own the project")
    pi.add_argument("--dry-run", action="store_true", help="Report what would be created")
    pi.add_argument("--skip-items", action="store_true")
    pi.add_argument("--skip-fields", action="store_true")
    pi.add_argument(
        "--merge-strategy",
        default="merge",
        metavar="STRATEGY",
        help=f"Conflict handling: {', '.join(VALID_MERGE_STRATEGIES)} (default: merge)",
    )
    pi.add_argument("--json", action="store_true", help="Print the result as JSON")

    item = sub.add_parser("item", help="Bulk item operations")
    item_sub = item.add_subparsers(
        dest="item_cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<action>",
    )
    pu = item_sub.add_parser("update-bulk", help="Set a field value on many items")
    _add_target_arguments(pu)
    pu.add_argument("--field", required=True, help="Field name")
    pu.add_argument("--value", required=True, help="New value (option name, iteration title, number, date, text)")
    pd = item_sub.add_parser("delete-bulk", help="Delete many items from the project")
    _add_target_arguments(pd)
    pa = item_sub.add_parser("archive-bulk", help="Archive many items")
    _add_target_arguments(pa)

    psc = sub.add_parser("schema", help="Write JSON Schemas for the bundle and bulk result")
    psc.add_argument("--output-dir", default=".", help="Directory for the schema files")
    psc.add_argument("--stdout", action="store_true", help="Print schemas instead of writing files")
    return p


def _build_service(cfg: GhxConfig, args: argparse.Namespace) -> ProjectService:
    credentials = load_credentials(getattr(args, "token", None), cfg)
    retry = RetryConfig()
    if cfg.retry_attempts is not None:
        retry.attempts = cfg.retry_attempts
    if cfg.retry_base_sleep is not None:
        retry.base_sleep = cfg.retry_base_sleep
    client = GraphQLClient(
        credentials,
        graphql_url=cfg.github_graphql_url,
        timeout=cfg.github_timeout,
        retry=retry,
    )
    return ProjectService(client)


@contextmanager
def _sigint_cancels(token: CancellationToken) -> Iterator[None]:
    """First Ctrl-C cancels between items; the default handler is restored afterwards."""
    try:
        previous = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    except ValueError:  # not in the main thread
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)


def _cmd_export(cfg: GhxConfig, args: argparse.Namespace) -> int:
    ref = parse_project_reference(args.project)
    if not args.output.strip():
        raise ValidationError("--output must not be empty")
    fmt = args.format or infer_format(args.output, cfg.export_format)
    service = _build_service(cfg, args)
    handle = service.resolve_project(ref.owner, ref.number)
    options = ExportOptions(
        include_items=args.include_items,
        include_fields=args.include_fields,
        include_views=args.include_views,
        include_workflows=args.include_workflows,
    )
    bundle = export_to_file(service, handle, args.output, fmt, options)
    print_success(f"Exported project '{handle.title}' to {args.output} ({fmt})")
    if is_quiet():
        return 0
    if bundle.items is not None:
        print(f"  • {len(bundle.items)} item(s)")
    if bundle.fields is not None:
        print(f"  • {len(bundle.fields)} field(s)")
    if bundle.views is not None:
        print(f"  • {len(bundle.views)} view(s)")
    return 0


def _cmd_import(cfg: GhxConfig, args: argparse.Namespace) -> int:
    validate_merge_strategy(args.merge_strategy)
    options = ImportOptions(
        owner=args.owner,
        dry_run=args.dry_run,
        skip_items=args.skip_items,
        skip_fields=args.skip_fields,
        merge_strategy=args.merge_strategy,
    )
    path = Path(args.file)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ValidationError(f"failed to read bundle file {path}: {exc}") from exc
    service = _build_service(cfg, args)
    result = import_bundle(service, data, options)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        render_import_result(result)
    return 0


def _mutation_spec(args: argparse.Namespace) -> MutationSpec:
    if args.item_cmd == "update-bulk":
        return UpdateField(field_name=args.field, value=args.value)
    if args.item_cmd == "delete-bulk":
        return DeleteItem()
    return ArchiveItem()


def _cmd_item_bulk(cfg: GhxConfig, args: argparse.Namespace) -> int:
    ref = parse_project_reference(args.project)
    if not (args.items or args.filter or args.from_file):
        raise ValidationError("at least one target source is required (--items, --filter or --from-file)")
    spec = _mutation_spec(args)
    service = _build_service(cfg, args)
    handle = service.resolve_project(ref.owner, ref.number)
    targets = build_targets(
        service,
        handle,
        item_range=args.items,
        filters=args.filter,
        from_file=args.from_file,
    )
    if not targets:
        print_success("No items matched; nothing to do")
        return 0
    executor = BulkMutationExecutor(service, handle, ConcurrencyConfig.from_config(cfg))
    token = CancellationToken()
    with _sigint_cancels(token):
        result = executor.run(targets, spec, cancel=token)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        render_bulk_result(args.item_cmd, result)
    if result.cancelled:
        return CANCELLED_EXIT_CODE
    if result.failed and args.fail_on_partial:
        return 1
    if result.failed:
        return BULK_PARTIAL_FAILURE_EXIT_CODE
    return 0


def _cmd_schema(args: argparse.Namespace) -> int:
    schemas = get_schemas()
    if args.stdout:
        print(json.dumps(schemas, indent=2))
        return 0
    out_dir = Path(args.output_dir)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        files_written = []
        for descriptor in iter_schema_descriptors():
            target = out_dir / descriptor.filename
            target.write_text(json.dumps(schemas[descriptor.name], indent=2) + "\n", encoding="utf-8")
            files_written.append(str(target))
    except OSError as exc:
        print_error(f"Failed to write schema files: {exc}")
        return 1
    print_success(f"Generated {len(files_written)} schema file(s)")
    for f in files_written:
        print(f"  • {f}")
    return 0


def _command_name(args: argparse.Namespace) -> str:
    if args.cmd == "item":
        return f"item {args.item_cmd}"
    return str(args.cmd)


def _build_handlers(args: argparse.Namespace, cfg: GhxConfig) -> dict[str, Any]:
    return {
        "export": lambda: _cmd_export(cfg, args),
        "import": lambda: _cmd_import(cfg, args),
        "item update-bulk": lambda: _cmd_item_bulk(cfg, args),
        "item delete-bulk": lambda: _cmd_item_bulk(cfg, args),
        "item archive-bulk": lambda: _cmd_item_bulk(cfg, args),
        "schema": lambda: _cmd_schema(args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = _command_name(args)
    try:
        cfg = prepare_config(args)
    except ConfigError as exc:
        print_error(str(exc), stream=sys.stderr)
        return 1
    handlers = _build_handlers(args, cfg)
    handler = handlers.get(command)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    return execute_command(handler, args, command)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
