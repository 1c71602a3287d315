"""Concurrency support for ghx.

Bulk mutations run sequentially by default; when enabled they fan out over a
bounded ``ThreadPoolExecutor``. A :class:`CancellationToken` lets a caller
(for example a SIGINT handler) stop a long pipeline between items.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .config import GhxConfig


class ConcurrencyConfig:
    """Configuration for concurrency settings."""

    def __init__(self, enabled: bool = False, max_workers: int = 4):
        self.enabled = enabled
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, cfg: GhxConfig) -> ConcurrencyConfig:
        return cls(enabled=cfg.concurrency_enabled, max_workers=cfg.concurrency_max_workers)

    def __repr__(self) -> str:
        return f"ConcurrencyConfig(enabled={self.enabled}, max_workers={self.max_workers})"


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def get_optimal_worker_count(item_count: int, max_workers: int = 4) -> int:
    """Get optimal worker count based on the number of targets."""
    small_threshold = 5
    medium_threshold = 20
    large_threshold = 50
    if item_count <= small_threshold:
        return 1
    elif item_count <= medium_threshold:
        return min(2, max_workers)
    elif item_count <= large_threshold:
        return min(3, max_workers)
    else:
        return max_workers


__all__ = [
    "CancellationToken",
    "ConcurrencyConfig",
    "get_optimal_worker_count",
]
