"""
Entity identity and aliases.

Responsibility:
    A logical entity (player or agent) may own ledger rows recorded under
    several identifiers: its stable id, the source-system id from the
    import file, or the id of a per-period metric row.  ``AliasSet``
    captures all of them once per aggregation so ledger lookups are a
    set-membership test instead of ad-hoc string comparisons.

Architecture position:
    Kernel > Domain -- pure value types, zero I/O.

Invariants enforced:
    - The primary id is always a member of its own alias set.
    - Empty and None identifiers are never aliases.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from settlement_kernel.exceptions import InvalidIdentifierError


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class AliasSet:
    """Every identifier under which one entity's ledger rows may be keyed."""

    primary_id: str
    aliases: frozenset[str]

    @classmethod
    def of(cls, primary_id: Any, *others: Any) -> AliasSet:
        """Build an alias set, dropping empty identifiers.

        Raises:
            InvalidIdentifierError: if ``primary_id`` is empty.
        """
        primary = _clean(primary_id)
        if primary is None:
            raise InvalidIdentifierError("primary_id", str(primary_id))
        members = {primary}
        for other in others:
            cleaned = _clean(other)
            if cleaned is not None:
                members.add(cleaned)
        return cls(primary_id=primary, aliases=frozenset(members))

    def __contains__(self, alias: object) -> bool:
        return _clean(alias) in self.aliases

    def __len__(self) -> int:
        return len(self.aliases)

    def union(self, other: AliasSet) -> AliasSet:
        return AliasSet(self.primary_id, self.aliases | other.aliases)

    def without(self, excluded: Iterable[str]) -> AliasSet:
        """Drop ``excluded`` aliases; the primary id is always kept."""
        remaining = (self.aliases - frozenset(excluded)) | {self.primary_id}
        return AliasSet(self.primary_id, frozenset(remaining))


def coerce_uuid(value: Any, field_name: str) -> UUID:
    """Parse ``value`` as a UUID or raise InvalidIdentifierError."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidIdentifierError(field_name, str(value)) from None


def optional_uuid(value: Any, field_name: str) -> UUID | None:
    if value is None or value == "":
        return None
    return coerce_uuid(value, field_name)
