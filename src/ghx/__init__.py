"""ghx - GitHub Projects (v2) portability and bulk mutation.

High-level public API (stable):

from ghx import GraphQLClient, ProjectService, load_credentials, export_project

client = GraphQLClient(load_credentials())
service = ProjectService(client)
handle = service.resolve_project('octo-org', 7)
bundle = export_project(service, handle)

The CLI (``ghx`` / ``python -m ghx``) delegates to this library.

Note:
- Import a bundle with :func:`ghx.importer.import_bundle`.
- Mutate many items with :class:`ghx.bulk.BulkMutationExecutor`.
"""

from __future__ import annotations

from typing import Any

# Version constant (sync manually with pyproject)
__version__ = "0.3.0"

_LAZY_EXPORTS = {
    "GraphQLClient": ("github_graphql", "GraphQLClient"),
    "ProjectService": ("projects", "ProjectService"),
    "load_credentials": ("credentials", "load_credentials"),
    "load_config": ("config", "load_config"),
    "export_project": ("exporter", "export_project"),
    "import_bundle": ("importer", "import_bundle"),
    "BulkMutationExecutor": ("bulk", "BulkMutationExecutor"),
}


def __getattr__(name: str) -> Any:
    """Lazily import the public API to keep ``import ghx`` cheap."""
    target = _LAZY_EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    from importlib import import_module

    module = import_module(f".{target[0]}", __name__)
    return getattr(module, target[1])


__all__ = [
    "BulkMutationExecutor",
    "GraphQLClient",
    "ProjectService",
    "__version__",
    "export_project",
    "import_bundle",
    "load_config",
    "load_credentials",
]
