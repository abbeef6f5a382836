from __future__ import annotations

import itertools
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

from proxy_monitor.errors import OperationInProgressError


class BusySet:
    """
    按实体 ID 记录正在进行中的单实体操作，阻止对同一实体的重复并发调用。
    不同实体之间互不影响。
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self._ids: set[int] = set()

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def snapshot(self) -> list[int]:
        return sorted(self._ids)

    @contextmanager
    def claim(self, entity_id: int) -> Iterator[None]:
        if entity_id in self._ids:
            raise OperationInProgressError(self.operation, entity_id)
        self._ids.add(entity_id)
        try:
            yield
        finally:
            self._ids.discard(entity_id)


class LatestRequestGate:
    """
    Last-request-wins per key.

    `issue(key)` hands out a ticket before the remote call; once the response
    arrives, `is_current(key, ticket)` tells whether a newer request for the
    same key has been issued in the meantime, in which case the response is
    stale and must be dropped.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest: dict[Hashable, int] = {}

    def issue(self, key: Hashable) -> int:
        ticket = next(self._counter)
        self._latest[key] = ticket
        return ticket

    def is_current(self, key: Hashable, ticket: int) -> bool:
        return self._latest.get(key) == ticket

    def invalidate(self) -> None:
        """Make every outstanding ticket stale (used on teardown)."""
        self._latest.clear()


__all__ = ["BusySet", "LatestRequestGate"]
