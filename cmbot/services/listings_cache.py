from __future__ import annotations

from datetime import datetime
from typing import Optional

from cmbot.models.market import EMPTY_SNAPSHOT, Snapshot


class ListingsCache:
    """
    Holds the current listings Snapshot.

    The snapshot is never edited; `set` rebinds a single attribute, so a
    reader either gets the old reference or the new one. Readers take no lock.
    """

    def __init__(self, initial: Snapshot = EMPTY_SNAPSHOT) -> None:
        self._current: Snapshot = initial
        self._version = 0

    def get(self) -> Snapshot:
        return self._current

    def set(self, snapshot: Snapshot) -> None:
        if not isinstance(snapshot, Snapshot):
            raise TypeError(f"expected Snapshot, got {type(snapshot).__name__}")
        self._current = snapshot
        self._version += 1

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_initialized(self) -> bool:
        return self._version > 0

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._current.fetched_at
