import json
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from ghx.credentials import Credentials
from ghx.errors import TransportError
from ghx.github_graphql import GitHubAPIError, GraphQLClient
from ghx.retry import RetryConfig


@dataclass
class _DummyResponse:
    status_code: int
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    @property
    def text(self) -> str:
        payload = self.payload
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return str(payload)


class _DummySession:
    def __init__(self, responses: list[Any]):
        self._responses = responses
        self.request_log: list[tuple[str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}

    def post(
        self,
        url: str,
        *,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> _DummyResponse:
        self.request_log.append((url, {"json": json, "headers": dict(headers or {}), "timeout": timeout}))
        if not self._responses:
            raise AssertionError("No response queued for request")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(session: _DummySession, attempts: int = 3) -> GraphQLClient:
    return GraphQLClient(
        credentials=Credentials(token="ghp_" + "a" * 36, source="test"),
        session=session,  # type: ignore[arg-type]
        retry=RetryConfig(attempts=attempts, base_sleep=0),
    )


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GHX_RETRY_MAX_SLEEP", "0")


def test_query_posts_document_and_returns_data():
    session = _DummySession([_DummyResponse(200, {"data": {"viewer": {"login": "octocat"}}})])
    client = _client(session)

    data = client.query("get_viewer", "query { viewer { login } }", {"a": 1})

    assert data == {"viewer": {"login": "octocat"}}
    url, sent = session.request_log[0]
    assert url == "https://api.github.com/graphql"
    assert sent["json"] == {"query": "query { viewer { login } }", "variables": {"a": 1}}
    assert sent["headers"]["Authorization"].startswith("Bearer ghp_")
    assert sent["headers"]["User-Agent"].startswith("ghx/")


def test_graphql_errors_are_joined_with_operation_name():
    session = _DummySession(
        [_DummyResponse(200, {"errors": [{"message": "first"}, {"message": "second"}], "data": None})]
    )
    with pytest.raises(GitHubAPIError, match="add_item: first; second") as excinfo:
        _client(session).mutate("add_item", "mutation { x }")
    assert excinfo.value.operation == "add_item"


def test_http_error_status_is_reported():
    session = _DummySession([_DummyResponse(401, {"message": "Bad credentials"})])
    with pytest.raises(GitHubAPIError) as excinfo:
        _client(session).query("get_viewer", "query { viewer { login } }")
    assert excinfo.value.status == 401
    assert "Bad credentials" in (excinfo.value.response_text or "")
    assert len(session.request_log) == 1


def test_transient_status_is_retried():
    session = _DummySession(
        [
            _DummyResponse(502, "bad gateway"),
            _DummyResponse(200, {"data": {"ok": True}}),
        ]
    )
    assert _client(session).query("list_items", "query { ok }") == {"ok": True}
    assert len(session.request_log) == 2


def test_transient_status_gives_up_after_attempts():
    session = _DummySession([_DummyResponse(503, "unavailable") for _ in range(2)])
    with pytest.raises(GitHubAPIError, match="list_items: GitHub API failed with 503"):
        _client(session, attempts=2).query("list_items", "query { ok }")
    assert len(session.request_log) == 2


def test_connection_error_becomes_transport_error():
    session = _DummySession([requests.ConnectionError("reset") for _ in range(3)])
    with pytest.raises(TransportError, match="get_viewer: reset") as excinfo:
        _client(session).query("get_viewer", "query { viewer { login } }")
    assert excinfo.value.operation == "get_viewer"
    assert len(session.request_log) == 3


@pytest.mark.parametrize(
    "payload, message",
    [
        (ValueError("not json"), "malformed response"),
        (["a", "list"], "malformed response"),
        ({"data": None}, "response has no data"),
    ],
)
def test_malformed_bodies(payload: Any, message: str):
    session = _DummySession([_DummyResponse(200, payload)])
    with pytest.raises(GitHubAPIError, match=message):
        _client(session).query("get_viewer", "query { viewer { login } }")
