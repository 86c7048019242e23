"""
Subclub grouping keys.

Rows are grouped by their structured subclub id.  Rows recorded without
one fall back to a name key; when another row of the same batch carries
an id for that (normalized) name, the id wins so both kinds of row merge
into one group.
"""

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from settlement_kernel.domain.names import normalize_name

OTHERS = "OTHERS"


class SubclubKeyResolver:
    """Resolves (subclub_id, subclub_name) pairs to a stable grouping key."""

    def __init__(self, refs: Iterable[tuple[UUID | None, str | None]] = ()):
        self._id_by_name: dict[str, UUID] = {}
        for subclub_id, subclub_name in refs:
            if subclub_id is not None:
                self._id_by_name.setdefault(normalize_name(subclub_name or OTHERS), subclub_id)

    @classmethod
    def for_rows(cls, *row_groups: Iterable[Any]) -> "SubclubKeyResolver":
        """Build from any rows exposing ``subclub_id`` and ``subclub_name``."""
        refs = [
            (row.subclub_id, row.subclub_name)
            for rows in row_groups
            for row in rows
        ]
        return cls(refs)

    def subclub_id(self, subclub_id: UUID | None, subclub_name: str | None) -> UUID | None:
        if subclub_id is not None:
            return subclub_id
        return self._id_by_name.get(normalize_name(subclub_name or OTHERS))

    def key(self, subclub_id: UUID | None, subclub_name: str | None) -> str:
        resolved = self.subclub_id(subclub_id, subclub_name)
        if resolved is not None:
            return str(resolved)
        return f"name:{normalize_name(subclub_name) or OTHERS}"

    def key_of(self, row: Any) -> str:
        return self.key(row.subclub_id, row.subclub_name)
