"""Owner-type resolution for GitHub Projects (v2).

A project reference ``owner/number`` does not say whether ``owner`` is a user
or an organization. Resolution queries the user path first and falls back to
the organization path; when both fail the *user-path* error is reported as
the cause.

The two-path lookup is modelled as a tagged result (:class:`Resolved` or
:class:`NotFound`) so callers that want both errors can inspect them;
:func:`resolve_project` unwraps it into a :class:`ProjectHandle` or raises
:class:`~ghx.errors.ResolutionError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Union

from .errors import ResolutionError, TransportError
from .logging import get_logger


class GraphQLQuerier(Protocol):
    def query(
        self, operation: str, document: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...


class OwnerKind(str, Enum):
    USER = "User"
    ORGANIZATION = "Organization"

    @property
    def root_field(self) -> str:
        return "user" if self is OwnerKind.USER else "organization"


@dataclass(frozen=True)
class ProjectHandle:
    id: str
    number: int
    owner: str
    owner_kind: OwnerKind
    title: str
    closed: bool = False
    url: str | None = None
    description: str | None = None

    @property
    def reference(self) -> str:
        return f"{self.owner}/{self.number}"


@dataclass(frozen=True)
class OwnerNode:
    id: str
    login: str
    kind: OwnerKind


@dataclass(frozen=True)
class Resolved:
    handle: ProjectHandle


@dataclass(frozen=True)
class NotFound:
    owner: str
    number: int
    user_error: Exception
    org_error: Exception


LookupResult = Union[Resolved, NotFound]

_PROJECT_QUERY = """
query($owner: String!, $number: Int!) {{
  {root}(login: $owner) {{
    projectV2(number: $number) {{
      id
      number
      title
      closed
      url
      shortDescription
      owner {{
        ... on User {{ login }}
        ... on Organization {{ login }}
      }}
    }}
  }}
}}
"""

_OWNER_QUERY = """
query($login: String!) {{
  {root}(login: $login) {{
    id
    login
  }}
}}
"""

_LOOKUP_ORDER = (OwnerKind.USER, OwnerKind.ORGANIZATION)


def _fetch_project(client: GraphQLQuerier, kind: OwnerKind, owner: str, number: int) -> ProjectHandle:
    data = client.query(
        f"get_{kind.root_field}_project",
        _PROJECT_QUERY.format(root=kind.root_field),
        {"owner": owner, "number": number},
    )
    owner_payload = data.get(kind.root_field)
    if not isinstance(owner_payload, Mapping):
        raise ResolutionError(f"{kind.root_field} '{owner}' not found")
    project = owner_payload.get("projectV2")
    if not isinstance(project, Mapping) or not isinstance(project.get("id"), str):
        raise ResolutionError(f"project {owner}/{number} not found for {kind.root_field} '{owner}'")
    owner_login = owner
    owner_obj = project.get("owner")
    if isinstance(owner_obj, Mapping) and isinstance(owner_obj.get("login"), str):
        owner_login = owner_obj["login"]
    return ProjectHandle(
        id=project["id"],
        number=int(project.get("number") or number),
        owner=owner_login,
        owner_kind=kind,
        title=str(project.get("title") or ""),
        closed=bool(project.get("closed", False)),
        url=project.get("url") if isinstance(project.get("url"), str) else None,
        description=project.get("shortDescription") or None,
    )


def lookup_project(client: GraphQLQuerier, owner: str, number: int) -> LookupResult:
    """Try the user path, then the organization path."""
    errors: list[Exception] = []
    for kind in _LOOKUP_ORDER:
        try:
            handle = _fetch_project(client, kind, owner, number)
        except (TransportError, ResolutionError) as exc:
            get_logger().debug(f"project lookup via {kind.root_field} failed", error=str(exc))
            errors.append(exc)
            continue
        return Resolved(handle)
    return NotFound(owner=owner, number=number, user_error=errors[0], org_error=errors[1])


def resolve_project(client: GraphQLQuerier, owner: str, number: int) -> ProjectHandle:
    result = lookup_project(client, owner, number)
    if isinstance(result, NotFound):
        raise ResolutionError(
            f"project not found for user or organization {owner}: {result.user_error}"
        ) from result.user_error
    return result.handle


def resolve_owner(client: GraphQLQuerier, login: str) -> OwnerNode:
    """Resolve an owner login to its node id with the same user-first fallback."""
    user_error: Exception | None = None
    for kind in _LOOKUP_ORDER:
        try:
            data = client.query(
                f"get_{kind.root_field}_id",
                _OWNER_QUERY.format(root=kind.root_field),
                {"login": login},
            )
        except TransportError as exc:
            user_error = user_error or exc
            continue
        payload = data.get(kind.root_field)
        if isinstance(payload, Mapping) and isinstance(payload.get("id"), str):
            return OwnerNode(id=payload["id"], login=str(payload.get("login") or login), kind=kind)
        user_error = user_error or ResolutionError(f"{kind.root_field} '{login}' not found")
    raise ResolutionError(f"owner not found as user or organization: {login}") from user_error


__all__ = [
    "GraphQLQuerier",
    "LookupResult",
    "NotFound",
    "OwnerKind",
    "OwnerNode",
    "ProjectHandle",
    "Resolved",
    "lookup_project",
    "resolve_owner",
    "resolve_project",
]
