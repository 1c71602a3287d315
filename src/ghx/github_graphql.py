from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from . import __version__
from .credentials import Credentials
from .errors import TransportError
from .retry import TRANSIENT_STATUSES, RetryConfig, TransientHTTPError, run_with_retries

DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"
USER_AGENT = f"ghx/{__version__}"
HTTP_ERROR_STATUS = 400


class GitHubAPIError(TransportError):
    """Raised when the GitHub GraphQL API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message, operation=operation)
        self.status = status
        self.response_text = response_text


def _format_graphql_errors(errors: Any) -> str:
    if isinstance(errors, list):
        messages = [
            str(entry.get("message", entry)) if isinstance(entry, dict) else str(entry)
            for entry in errors
        ]
        return "; ".join(messages)
    return str(errors)


@dataclass
class GraphQLClient:
    """Thin GraphQL client for api.github.com.

    ``query`` and ``mutate`` take an operation name used in error messages and
    logs; GraphQL ``errors`` and non-2xx responses become
    :class:`GitHubAPIError`. Transient HTTP failures are retried.
    """

    credentials: Credentials
    graphql_url: str = DEFAULT_GRAPHQL_URL
    timeout: float = 30
    retry: RetryConfig | None = None
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.credentials.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def _post(self, operation: str, payload: dict[str, Any]) -> requests.Response:
        def _run() -> requests.Response:
            response = self._session.post(
                self.graphql_url,
                json=payload,
                headers=self._session.headers,
                timeout=self.timeout,
            )
            if response.status_code in TRANSIENT_STATUSES:
                raise TransientHTTPError(response)
            return response

        try:
            return run_with_retries(_run, cfg=self.retry)
        except TransientHTTPError as exc:
            raise GitHubAPIError(
                f"{operation}: GitHub API failed with {exc.response.status_code}",
                operation=operation,
                status=exc.response.status_code,
                response_text=exc.response.text,
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"{operation}: {exc}", operation=operation) from exc

    def execute(
        self, operation: str, document: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        payload = {"query": document, "variables": variables or {}}
        response = self._post(operation, payload)
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                f"{operation}: GitHub API failed with {response.status_code}",
                operation=operation,
                status=response.status_code,
                response_text=response.text,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise GitHubAPIError(
                f"{operation}: malformed response", operation=operation, response_text=response.text
            ) from exc
        if not isinstance(body, dict):
            raise GitHubAPIError(f"{operation}: malformed response", operation=operation)
        if body.get("errors"):
            raise GitHubAPIError(
                f"{operation}: {_format_graphql_errors(body['errors'])}", operation=operation
            )
        data = body.get("data")
        if not isinstance(data, dict):
            raise GitHubAPIError(f"{operation}: response has no data", operation=operation)
        return data

    def query(
        self, operation: str, document: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self.execute(operation, document, variables)

    def mutate(
        self, operation: str, document: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self.execute(operation, document, variables)


__all__ = ["DEFAULT_GRAPHQL_URL", "GitHubAPIError", "GraphQLClient"]
