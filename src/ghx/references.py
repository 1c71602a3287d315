"""Parsers for human-entered project and item references.

Accepted forms::

    owner/number                                   project reference
    owner/repo#number                              item reference
    https://github.com/owner/repo/issues/number    item reference
    https://github.com/owner/repo/pull/number      item reference

A bare ``#number`` is rejected: item references always carry their
repository. All functions here are pure.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError

GITHUB_URL_PREFIX = 'https://github.com/'
_URL_KINDS = frozenset({'issues', 'pull'})


@dataclass(frozen=True)
class ProjectReference:
    owner: str
    number: int

    def __str__(self) -> str:
        return format_project_reference(self.owner, self.number)


@dataclass(frozen=True)
class ItemReference:
    owner: str
    repo: str
    number: int

    @property
    def repository(self) -> str:
        return f'{self.owner}/{self.repo}'

    def __str__(self) -> str:
        return format_item_reference(self.owner, self.repo, self.number)


def _parse_int(literal: str, what: str) -> int:
    text = literal.strip()
    # int() accepts "+5", " 5", "5_0" and non-ASCII digits; references only allow plain ASCII digits
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f'invalid {what}: {literal!r}')
    return int(text)


def parse_project_reference(ref: str) -> ProjectReference:
    """Parse ``owner/number``, splitting on the last ``/``."""
    owner, sep, number = ref.strip().rpartition('/')
    if not sep or not owner or not number:
        raise ValidationError(f'invalid project reference format: {ref!r} (expected owner/number)')
    return ProjectReference(owner=owner, number=_parse_int(number, 'project number in reference'))


def format_project_reference(owner: str, number: int) -> str:
    return f'{owner}/{number}'


def _parse_github_url(ref: str) -> ItemReference:
    path = ref[len(GITHUB_URL_PREFIX):].split('?', 1)[0].split('#', 1)[0]
    parts = [p for p in path.split('/') if p]
    if len(parts) < 4 or parts[2] not in _URL_KINDS:
        raise ValidationError(f'invalid GitHub URL format: {ref!r}')
    owner, repo, _, number = parts[:4]
    return ItemReference(owner=owner, repo=repo, number=_parse_int(number, 'item number in URL'))


def parse_item_reference(ref: str) -> ItemReference:
    text = ref.strip()
    if text.startswith(GITHUB_URL_PREFIX):
        return _parse_github_url(text)
    if '#' not in text:
        raise ValidationError(f'unrecognized item reference format: {ref!r}')
    repo_path, _, number = text.partition('#')
    if not repo_path:
        raise ValidationError(f'repository context required for reference: {ref!r}')
    if '#' in number:
        raise ValidationError(f'invalid item reference format: {ref!r}')
    repo_parts = repo_path.split('/')
    if len(repo_parts) != 2 or not all(repo_parts):
        raise ValidationError(f'invalid repository format in reference: {ref!r}')
    return ItemReference(
        owner=repo_parts[0],
        repo=repo_parts[1],
        number=_parse_int(number, 'item number in reference'),
    )


def format_item_reference(owner: str, repo: str, number: int) -> str:
    return f'{owner}/{repo}#{number}'


def is_item_reference(ref: str) -> bool:
    text = ref.strip()
    return text.startswith(GITHUB_URL_PREFIX) or '#' in text


__all__ = [
    'ItemReference',
    'ProjectReference',
    'format_item_reference',
    'format_project_reference',
    'is_item_reference',
    'parse_item_reference',
    'parse_project_reference',
]
