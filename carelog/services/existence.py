"""Tracking of which keys have a record on the server."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable, Iterator


class ExistenceTracker:
    """
    The set of keys known to have a persisted record on the server.

    Seeded from the last successful fetch and extended on every successful
    create.  This is the only place the create-or-update decision is read
    from.

    Args:
        keys: Keys known to exist

    """

    def __init__(self, keys: Iterable[Hashable] = ()) -> None:
        self._persisted: set[Hashable] = set(keys)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._persisted

    def __len__(self) -> int:
        return len(self._persisted)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(sorted(self._persisted))

    def reset(self, keys: Iterable[Hashable]) -> None:
        """
        Replace the known keys with those of a fresh fetch.

        Args:
            keys: Keys present in the fetch

        """
        self._persisted = set(keys)

    def mark_persisted(self, key: Hashable) -> None:
        """Record that the server now has a record for ``key``."""
        self._persisted.add(key)

    def is_persisted(self, key: Hashable) -> bool:
        """Whether the server is known to have a record for ``key``."""
        return key in self._persisted
