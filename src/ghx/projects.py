# ruff: noqa: PLR0912

"""GraphQL operations on Projects (v2) used by export, import and bulk.

:class:`ProjectService` wraps a GraphQL client (anything with ``query`` and
``mutate``) and turns raw payloads into the typed records below. Transport
failures propagate as :class:`~ghx.errors.TransportError`; a payload missing
the expected shape raises :class:`~ghx.github_graphql.GitHubAPIError`.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

from . import owner as owner_resolution
from .errors import ValidationError
from .github_graphql import GitHubAPIError
from .logging import get_logger
from .owner import OwnerNode, ProjectHandle

ITEMS_PAGE_SIZE = 100
EXPORTABLE_DATA_TYPES = frozenset({"TEXT", "NUMBER", "DATE", "SINGLE_SELECT", "ITERATION"})
DEFAULT_OPTION_COLOR = "GRAY"
TITLE_FIELD = "Title"


class GraphQLTransport(Protocol):
    def query(
        self, operation: str, document: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...

    def mutate(
        self, operation: str, document: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class FieldOption:
    id: str
    name: str
    color: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Iteration:
    id: str
    title: str
    start_date: str | None = None


def _nodes(payload: Any) -> list[Mapping[str, Any]]:
    """Accept both a plain list and a ``{nodes: [...]}`` connection."""
    if isinstance(payload, Mapping):
        payload = payload.get("nodes")
    if not isinstance(payload, list):
        return []
    return [node for node in payload if isinstance(node, Mapping)]


@dataclass(frozen=True)
class ProjectField:
    id: str
    name: str
    data_type: str
    options: tuple[FieldOption, ...] = ()
    iterations: tuple[Iteration, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ProjectField:
        options = tuple(
            FieldOption(
                id=str(node.get("id")),
                name=str(node.get("name")),
                color=node.get("color") if isinstance(node.get("color"), str) else None,
                description=node.get("description") or None,
            )
            for node in _nodes(payload.get("options"))
            if isinstance(node.get("name"), str)
        )
        iterations: tuple[Iteration, ...] = ()
        configuration = payload.get("configuration")
        if isinstance(configuration, Mapping):
            iterations = tuple(
                Iteration(
                    id=str(node.get("id")),
                    title=str(node.get("title")),
                    start_date=node.get("startDate"),
                )
                for node in [
                    *_nodes(configuration.get("iterations")),
                    *_nodes(configuration.get("completedIterations")),
                ]
            )
        return cls(
            id=str(payload.get("id")),
            name=str(payload.get("name")),
            data_type=str(payload.get("dataType", "")),
            options=options,
            iterations=iterations,
        )

    def option_id(self, name: str) -> str | None:
        key = name.casefold()
        for option in self.options:
            if option.name.casefold() == key:
                return option.id
        return None

    def iteration_id(self, title: str) -> str | None:
        key = title.casefold()
        for iteration in self.iterations:
            if iteration.title.casefold() == key:
                return iteration.id
        return None


@dataclass(frozen=True)
class ProjectItem:
    id: str
    content_type: str
    title: str
    body: str | None = None
    url: str | None = None
    number: int | None = None
    repository: str | None = None
    state: str | None = None
    labels: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()
    field_values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ProjectItem:
        content = payload.get("content")
        content = content if isinstance(content, Mapping) else {}
        content_type = str(content.get("__typename") or payload.get("type") or "DraftIssue")
        if content_type == "DRAFT_ISSUE":
            content_type = "DraftIssue"
        repository = content.get("repository")
        number = content.get("number")
        return cls(
            id=str(payload.get("id")),
            content_type=content_type,
            title=str(content.get("title") or ""),
            body=content.get("body") or None,
            url=content.get("url") if isinstance(content.get("url"), str) else None,
            number=number if isinstance(number, int) else None,
            repository=(
                repository.get("nameWithOwner") if isinstance(repository, Mapping) else None
            ),
            state=content.get("state") if isinstance(content.get("state"), str) else None,
            labels=tuple(
                str(node.get("name")) for node in _nodes(content.get("labels")) if node.get("name")
            ),
            assignees=tuple(
                str(node.get("login"))
                for node in _nodes(content.get("assignees"))
                if node.get("login")
            ),
            field_values=_parse_field_values(payload.get("fieldValues")),
        )


@dataclass(frozen=True)
class ProjectView:
    id: str
    name: str
    layout: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ProjectView:
        return cls(
            id=str(payload.get("id")),
            name=str(payload.get("name")),
            layout=str(payload.get("layout") or "TABLE_LAYOUT"),
        )


def _parse_field_values(payload: Any) -> dict[str, Any]:
    """Map field name to a plain value, skipping the Title field."""
    values: dict[str, Any] = {}
    for node in _nodes(payload):
        field_info = node.get("field")
        name = field_info.get("name") if isinstance(field_info, Mapping) else None
        if not isinstance(name, str) or name == TITLE_FIELD:
            continue
        typename = node.get("__typename")
        if typename == "ProjectV2ItemFieldTextValue":
            value: Any = node.get("text")
        elif typename == "ProjectV2ItemFieldNumberValue":
            value = node.get("number")
        elif typename == "ProjectV2ItemFieldDateValue":
            value = node.get("date")
        elif typename == "ProjectV2ItemFieldSingleSelectValue":
            value = node.get("name")
        elif typename == "ProjectV2ItemFieldIterationValue":
            value = node.get("title")
        else:
            continue
        if value is not None:
            values[name] = value
    return values


def field_value_input(project_field: ProjectField, raw: Any) -> dict[str, Any]:
    """Convert a user/bundle value to a ``ProjectV2FieldValue`` input object."""
    data_type = project_field.data_type
    if data_type == "TEXT":
        return {"text": str(raw)}
    if data_type == "NUMBER":
        if isinstance(raw, bool):
            raise ValidationError(f"invalid number for field '{project_field.name}': {raw!r}")
        try:
            return {"number": float(raw)}
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"invalid number for field '{project_field.name}': {raw!r}"
            ) from exc
    if data_type == "DATE":
        text = str(raw).strip()
        try:
            date.fromisoformat(text[:10])
        except ValueError as exc:
            raise ValidationError(
                f"invalid date for field '{project_field.name}': {raw!r} (expected YYYY-MM-DD)"
            ) from exc
        return {"date": text[:10]}
    if data_type == "SINGLE_SELECT":
        option_id = project_field.option_id(str(raw))
        if option_id is None:
            available = ", ".join(o.name for o in project_field.options) or "none"
            raise ValidationError(
                f"option '{raw}' not found for field '{project_field.name}' (available: {available})"
            )
        return {"singleSelectOptionId": option_id}
    if data_type == "ITERATION":
        iteration_id = project_field.iteration_id(str(raw))
        if iteration_id is None:
            raise ValidationError(f"iteration '{raw}' not found for field '{project_field.name}'")
        return {"iterationId": iteration_id}
    raise ValidationError(
        f"field '{project_field.name}' has type {data_type} which cannot be set directly"
    )


def find_field(fields: list[ProjectField], name: str) -> ProjectField | None:
    key = name.casefold()
    for candidate in fields:
        if candidate.name.casefold() == key:
            return candidate
    return None


def _dig(data: Mapping[str, Any], operation: str, *path: str) -> Any:
    current: Any = data
    for key in path:
        if not isinstance(current, Mapping) or current.get(key) is None:
            raise GitHubAPIError(
                f"{operation}: response missing '{'.'.join(path)}'", operation=operation
            )
        current = current[key]
    return current


_FIELDS_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 100) {
        nodes {
          ... on ProjectV2FieldCommon { id name dataType }
          ... on ProjectV2SingleSelectField {
            options { id name color description }
          }
          ... on ProjectV2IterationField {
            configuration {
              iterations { id title startDate }
              completedIterations { id title startDate }
            }
          }
        }
      }
    }
  }
}
"""

_CONTENT_FRAGMENT = """
          title
          body
          url
          number
          state
          repository { nameWithOwner }
          labels(first: 20) { nodes { name } }
          assignees(first: 20) { nodes { login } }
"""

_ITEMS_QUERY = (
    """
query($projectId: ID!, $first: Int!, $after: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
          id
          type
          content {
            __typename
            ... on DraftIssue { title body }
            ... on Issue {"""
    + _CONTENT_FRAGMENT
    + """            }
            ... on PullRequest {"""
    + _CONTENT_FRAGMENT
    + """            }
          }
          fieldValues(first: 50) {
            nodes {
              __typename
              ... on ProjectV2ItemFieldTextValue { text field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldNumberValue { number field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldDateValue { date field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldSingleSelectValue { name field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldIterationValue { title field { ... on ProjectV2FieldCommon { name } } }
            }
          }
        }
      }
    }
  }
}
"""
)

_VIEWS_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      views(first: 50) { nodes { id name layout } }
    }
  }
}
"""

_VIEWER_QUERY = "query { viewer { login } }"

_CREATE_PROJECT = """
mutation($ownerId: ID!, $title: String!) {
  createProjectV2(input: {ownerId: $ownerId, title: $title}) {
    projectV2 { id number title url closed }
  }
}
"""

_UPDATE_PROJECT_DESCRIPTION = """
mutation($projectId: ID!, $shortDescription: String!) {
  updateProjectV2(input: {projectId: $projectId, shortDescription: $shortDescription}) {
    projectV2 { id }
  }
}
"""

_FIELD_SELECTION = """
    projectV2Field {
      ... on ProjectV2FieldCommon { id name dataType }
      ... on ProjectV2SingleSelectField { options { id name color description } }
    }
"""

_CREATE_FIELD = (
    """
mutation($input: CreateProjectV2FieldInput!) {
  createProjectV2Field(input: $input) {"""
    + _FIELD_SELECTION
    + """  }
}
"""
)

_UPDATE_FIELD = (
    """
mutation($input: UpdateProjectV2FieldInput!) {
  updateProjectV2Field(input: $input) {"""
    + _FIELD_SELECTION
    + """  }
}
"""
)

_ADD_DRAFT_ISSUE = """
mutation($projectId: ID!, $title: String!, $body: String) {
  addProjectV2DraftIssue(input: {projectId: $projectId, title: $title, body: $body}) {
    projectItem { id }
  }
}
"""

_RESOLVE_CONTENT = """
query($url: URI!) {
  resource(url: $url) {
    __typename
    ... on Issue { id }
    ... on PullRequest { id }
  }
}
"""

_ADD_ITEM_BY_ID = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

_UPDATE_ITEM_FIELD_VALUE = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $value: ProjectV2FieldValue!) {
  updateProjectV2ItemFieldValue(
    input: {projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: $value}
  ) {
    projectV2Item { id }
  }
}
"""

_DELETE_ITEM = """
mutation($projectId: ID!, $itemId: ID!) {
  deleteProjectV2Item(input: {projectId: $projectId, itemId: $itemId}) {
    deletedItemId
  }
}
"""

_ARCHIVE_ITEM = """
mutation($projectId: ID!, $itemId: ID!) {
  archiveProjectV2Item(input: {projectId: $projectId, itemId: $itemId}) {
    item { id }
  }
}
"""

_CREATE_VIEW = """
mutation($projectId: ID!, $name: String!, $layout: ProjectV2ViewLayout!) {
  createProjectV2View(input: {projectId: $projectId, name: $name, layout: $layout}) {
    projectV2View { id name layout }
  }
}
"""


def _option_inputs(options: list[FieldOption]) -> list[dict[str, str]]:
    return [
        {
            "name": option.name,
            "color": option.color or DEFAULT_OPTION_COLOR,
            "description": option.description or "",
        }
        for option in options
    ]


class ProjectService:
    """Projects (v2) queries and mutations over a GraphQL transport."""

    def __init__(self, client: GraphQLTransport):
        self.client = client
        self.logger = get_logger()

    # ---- resolution ---------------------------------------------------
    def resolve_project(self, owner: str, number: int) -> ProjectHandle:
        return owner_resolution.resolve_project(self.client, owner, number)

    def resolve_owner(self, login: str) -> OwnerNode:
        return owner_resolution.resolve_owner(self.client, login)

    def viewer_login(self) -> str:
        data = self.client.query("get_viewer", _VIEWER_QUERY)
        return str(_dig(data, "get_viewer", "viewer", "login"))

    # ---- reads --------------------------------------------------------
    def fetch_fields(self, project_id: str) -> list[ProjectField]:
        data = self.client.query("get_project_fields", _FIELDS_QUERY, {"projectId": project_id})
        project = _dig(data, "get_project_fields", "node")
        return [ProjectField.from_payload(node) for node in _nodes(project.get("fields"))]

    def iter_items(self, project_id: str) -> Iterator[ProjectItem]:
        cursor: str | None = None
        while True:
            data = self.client.query(
                "get_project_items",
                _ITEMS_QUERY,
                {"projectId": project_id, "first": ITEMS_PAGE_SIZE, "after": cursor},
            )
            connection = _dig(data, "get_project_items", "node", "items")
            for node in _nodes(connection):
                yield ProjectItem.from_payload(node)
            page_info = connection.get("pageInfo") if isinstance(connection, Mapping) else None
            if not isinstance(page_info, Mapping) or not page_info.get("hasNextPage"):
                return
            cursor = page_info.get("endCursor")
            if not cursor:
                return

    def fetch_items(self, project_id: str) -> list[ProjectItem]:
        return list(self.iter_items(project_id))

    def fetch_views(self, project_id: str) -> list[ProjectView]:
        data = self.client.query("get_project_views", _VIEWS_QUERY, {"projectId": project_id})
        project = _dig(data, "get_project_views", "node")
        return [ProjectView.from_payload(node) for node in _nodes(project.get("views"))]

    # ---- project / field mutations -----------------------------------
    def create_project(
        self, owner_id: str, title: str, description: str | None = None
    ) -> dict[str, Any]:
        data = self.client.mutate(
            "create_project", _CREATE_PROJECT, {"ownerId": owner_id, "title": title}
        )
        project = dict(_dig(data, "create_project", "createProjectV2", "projectV2"))
        if description:
            self.client.mutate(
                "update_project",
                _UPDATE_PROJECT_DESCRIPTION,
                {"projectId": project["id"], "shortDescription": description},
            )
        self.logger.log_operation("project_created", project_id=project.get("id"), title=title)
        return project

    def create_field(
        self,
        project_id: str,
        name: str,
        data_type: str,
        options: list[FieldOption] | None = None,
    ) -> ProjectField:
        payload: dict[str, Any] = {"projectId": project_id, "name": name, "dataType": data_type}
        if data_type == "SINGLE_SELECT":
            payload["singleSelectOptions"] = _option_inputs(options or [])
        data = self.client.mutate("create_field", _CREATE_FIELD, {"input": payload})
        return ProjectField.from_payload(
            _dig(data, "create_field", "createProjectV2Field", "projectV2Field")
        )

    def update_field_options(self, field_id: str, options: list[FieldOption]) -> ProjectField:
        payload = {"fieldId": field_id, "singleSelectOptions": _option_inputs(options)}
        data = self.client.mutate("update_field", _UPDATE_FIELD, {"input": payload})
        return ProjectField.from_payload(
            _dig(data, "update_field", "updateProjectV2Field", "projectV2Field")
        )

    # ---- item mutations ----------------------------------------------
    def add_draft_issue(self, project_id: str, title: str, body: str | None = None) -> str:
        data = self.client.mutate(
            "add_draft_issue",
            _ADD_DRAFT_ISSUE,
            {"projectId": project_id, "title": title, "body": body},
        )
        return str(_dig(data, "add_draft_issue", "addProjectV2DraftIssue", "projectItem", "id"))

    def resolve_content_id(self, url: str) -> str:
        data = self.client.query("resolve_content", _RESOLVE_CONTENT, {"url": url})
        resource = data.get("resource")
        if not isinstance(resource, Mapping) or not isinstance(resource.get("id"), str):
            raise GitHubAPIError(
                f"resolve_content: no issue or pull request at {url}", operation="resolve_content"
            )
        return str(resource["id"])

    def add_content(self, project_id: str, content_id: str) -> str:
        data = self.client.mutate(
            "add_item", _ADD_ITEM_BY_ID, {"projectId": project_id, "contentId": content_id}
        )
        return str(_dig(data, "add_item", "addProjectV2ItemById", "item", "id"))

    def set_field_value(
        self, project_id: str, item_id: str, field_id: str, value: dict[str, Any]
    ) -> None:
        self.client.mutate(
            "update_item_field",
            _UPDATE_ITEM_FIELD_VALUE,
            {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "value": value},
        )

    def delete_item(self, project_id: str, item_id: str) -> None:
        self.client.mutate("delete_item", _DELETE_ITEM, {"projectId": project_id, "itemId": item_id})

    def archive_item(self, project_id: str, item_id: str) -> None:
        self.client.mutate(
            "archive_item", _ARCHIVE_ITEM, {"projectId": project_id, "itemId": item_id}
        )

    # ---- views --------------------------------------------------------
    def create_view(self, project_id: str, name: str, layout: str) -> ProjectView:
        data = self.client.mutate(
            "create_view",
            _CREATE_VIEW,
            {"projectId": project_id, "name": name, "layout": layout},
        )
        return ProjectView.from_payload(
            _dig(data, "create_view", "createProjectV2View", "projectV2View")
        )


__all__ = [
    "EXPORTABLE_DATA_TYPES",
    "FieldOption",
    "Iteration",
    "ProjectField",
    "ProjectItem",
    "ProjectService",
    "ProjectView",
    "field_value_input",
    "find_field",
]
