"""Error taxonomy & redaction for ghx.

Every failure the pipeline raises derives from :class:`GhxError` so the CLI
can map it to a non-zero exit code with a human-readable message. The
taxonomy mirrors the pipeline's propagation policy:

- ``ValidationError``   detected before network I/O (bad flags, ranges, bundles)
- ``ResolutionError``   owner/project not found under either owner kind
- ``TransportError``    HTTP / GraphQL failures, wrapped with the operation name
- ``ExportError`` / ``ImportStageError``  stage wrappers for export and import

Partial bulk failures are *not* exceptions; they are collected in
``BulkResult.errors``.

Public helpers:
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"gho_[A-Za-z0-9]{20,40}"),  # OAuth tokens issued to the gh CLI
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"(?i)bearer\s+[A-Za-z0-9_\-.]{20,}"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class GhxError(RuntimeError):
    """Base class for every error surfaced by ghx."""


class ValidationError(GhxError):
    """Input rejected before any network call was issued."""


class BundleFormatError(ValidationError):
    """Bundle bytes could not be decoded or do not describe a project."""


class ResolutionError(GhxError):
    """Owner or project could not be resolved."""


class TransportError(GhxError):
    """The GitHub API call for ``operation`` failed."""

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class ExportError(GhxError):
    """Export aborted while fetching ``stage``; nothing was written."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"export failed while fetching {stage}: {cause}")
        self.stage = stage
        self.cause = cause


class ImportStageError(GhxError):
    """Import stopped at ``stage``. Earlier stages are not rolled back."""

    def __init__(self, stage: str, cause: BaseException, *, project_id: str | None = None):
        message = f"import failed during {stage}: {cause}"
        if project_id:
            message += f" (project {project_id} was already created; remove it manually if unwanted)"
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.project_id = project_id


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace token-looking substrings with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Explicit ghx types win; otherwise fall back to message keywords
    (rate limits and network hiccups are transient, YAML/JSON issues are parse
    errors).
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if "abuse" in low:
        return ErrorInfo("github.abuse", redact(msg), name, transient=True)
    if isinstance(exc, BundleFormatError):
        return ErrorInfo("parse", redact(msg), name)
    if isinstance(exc, ValidationError):
        return ErrorInfo("validation", redact(msg), name)
    if isinstance(exc, ResolutionError):
        return ErrorInfo("resolution", redact(msg), name)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if isinstance(exc, TransportError):
        details = {"operation": exc.operation} if exc.operation else None
        return ErrorInfo("transport", redact(msg), name, details=details)
    if any(k in low for k in ("yaml", "scannererror", "parsererror", "jsondecodeerror")):
        return ErrorInfo("parse", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "BundleFormatError",
    "ErrorInfo",
    "ExportError",
    "GhxError",
    "ImportStageError",
    "ResolutionError",
    "TransportError",
    "ValidationError",
    "classify_error",
    "redact",
]
