"""In-memory working copies of records, one per key."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from carelog.exc import UnknownField

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable, Mapping


@dataclass
class Draft:
    """The working copy of the record for one key."""

    #: The record key.
    key: Hashable
    #: Every field value, confirmed or not.
    fields: dict[str, Any]
    #: Whether the key was known to exist on the server when last checked.
    is_known_persisted: bool = False
    #: Fields edited since the last completed flush.
    pending_fields: set[str] = field(default_factory=set)
    #: The server-assigned identity of the record, once known.
    identity: Any = None
    #: Incremented on every edit; lets a flush tell whether edits arrived
    #: while it was running.
    revision: int = 0

    @property
    def is_dirty(self) -> bool:
        """Whether there are edits not yet confirmed by a flush."""
        return bool(self.pending_fields)


class KeyedDraftStore:
    """
    Map from key to the current best-known record for that key.

    Drafts are created lazily on first access, seeded from the last fetched
    server record for the key if there was one, else from ``defaults``.  There
    is at most one :class:`Draft` per key.

    Args:
        defaults: Every record field with its default value

    """

    def __init__(self, defaults: Mapping[str, Any]) -> None:
        #: The all-default record.
        self.defaults: dict[str, Any] = dict(defaults)
        self._drafts: dict[Hashable, Draft] = {}
        #: The records returned by the last fetch, by key.
        self._fetched: dict[Hashable, dict[str, Any]] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._drafts

    def __len__(self) -> int:
        return len(self._drafts)

    def _record_fields(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return {
            name: record.get(name, default) for name, default in self.defaults.items()
        }

    def load_snapshot(self, records: Iterable[Mapping[str, Any]]) -> set[Hashable]:
        """
        Remember the records of a fetch so later drafts are seeded from them.

        Existing drafts are left alone; use :meth:`replace` to overwrite them.

        Args:
            records: Fetched records, each carrying its ``key``

        Returns:
            The keys present in the fetch

        """
        self._fetched = {record["key"]: dict(record) for record in records}
        return set(self._fetched)

    def fetched(self, key: Hashable) -> dict[str, Any] | None:
        """
        Get the record for a key from the last fetch.

        Args:
            key: The record key

        Returns:
            A copy of the fetched record, or None if the fetch had none

        """
        record = self._fetched.get(key)
        return dict(record) if record is not None else None

    def get(self, key: Hashable) -> Draft:
        """
        Get the draft for a key, creating it if needed.

        Args:
            key: The record key

        Returns:
            The live draft

        """
        draft = self._drafts.get(key)
        if draft is None:
            record = self._fetched.get(key)
            draft = Draft(
                key=key,
                fields=self._record_fields(record or {}),
                is_known_persisted=record is not None,
                identity=record.get("id") if record is not None else None,
            )
            self._drafts[key] = draft
        return draft

    def peek(self, key: Hashable) -> Draft | None:
        """Get a copy of the draft for a key without creating one."""
        draft = self._drafts.get(key)
        return copy.deepcopy(draft) if draft is not None else None

    def merge_edit(self, key: Hashable, field_name: str, value: Any) -> Draft:
        """
        Apply a field edit to the draft for a key.

        Args:
            key: The record key
            field_name: The edited field
            value: The new value

        Raises:
            UnknownField: If the record has no such field

        Returns:
            The full updated draft

        """
        if field_name not in self.defaults:
            raise UnknownField(field_name)
        draft = self.get(key)
        draft.fields[field_name] = value
        draft.pending_fields.add(field_name)
        draft.revision += 1
        return draft

    def replace(
        self, key: Hashable, record: Mapping[str, Any], is_known_persisted: bool
    ) -> Draft:
        """
        Overwrite the draft for a key, discarding any unflushed edits.

        Args:
            key: The record key
            record: The new record
            is_known_persisted: Whether the record exists on the server

        Returns:
            The new draft

        """
        previous = self._drafts.get(key)
        draft = Draft(
            key=key,
            fields=self._record_fields(record),
            is_known_persisted=is_known_persisted,
            identity=record.get("id"),
            # Keep counting so a flush started before the replace sees a change
            revision=previous.revision + 1 if previous is not None else 0,
        )
        self._drafts[key] = draft
        return draft

    def mark_flushed(
        self,
        key: Hashable,
        revision: int,
        confirmed: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Record that a flush of a key completed.

        The pending fields are cleared only if the draft has not been edited
        since the flush read it; otherwise the newer edits stay pending so the
        next flush picks them up.

        Args:
            key: The record key
            revision: The draft revision the flush sent

        Keyword Args:
            confirmed: The record as stored by the server.  Applied to the
                draft only when no newer edits arrived.

        Returns:
            True if the draft is now clean, False if newer edits are pending

        """
        draft = self.get(key)
        draft.is_known_persisted = True
        if confirmed is not None and confirmed.get("id") is not None:
            draft.identity = confirmed["id"]
        if draft.revision != revision:
            return False
        if confirmed is not None:
            draft.fields = self._record_fields({**draft.fields, **confirmed})
        draft.pending_fields.clear()
        return True

    def dirty_keys(self) -> list[Hashable]:
        """Get the keys whose drafts have unflushed edits."""
        return [draft.key for draft in self._drafts.values() if draft.is_dirty]

    def revision(self, key: Hashable) -> int:
        """Get the current revision of the draft for a key, or -1 if none."""
        draft = self._drafts.get(key)
        return draft.revision if draft is not None else -1
