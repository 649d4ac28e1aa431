# app/core/roster.py

"""
Roster snapshot helpers.

Builds RosterEntry objects (with every name ordering precomputed) and an
index from normalized variant to entries for the exact-variant tier.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from app.models import RosterEntry, RosterRecord
from app.core.normalizers import name_variants, normalize, tokenize


class RosterProvider(ABC):
    """Source of a tenant's roster snapshot, fetched once per batch."""

    @abstractmethod
    def fetch(self, tenant_id: str) -> list[RosterEntry]:
        """Every roster entry of the tenant, variants precomputed."""


def build_roster_entry(record: RosterRecord) -> RosterEntry:
    """
    Turn a raw roster record into a matchable entry.

    Display name is the tutor name when present, else "SURNAME GIVEN".
    Variants: surname-first, given-first, tutor name, and any alternates.
    """
    surname_given = f"{record.last_name} {record.first_name}".strip()
    display_name = (record.tutor_name or "").strip() or surname_given or record.id

    variants: list[str] = []
    candidates = [
        *name_variants(record.last_name, record.first_name),
        normalize(record.tutor_name),
        normalize(surname_given),
        *(normalize(alt) for alt in record.alternate_names),
    ]
    for key in candidates:
        if key and key not in variants:
            variants.append(key)

    return RosterEntry(
        id=record.id,
        display_name=display_name,
        name_variants=frozenset(variants),
        tokens=frozenset(tokenize(display_name)),
    )


class Roster:
    """Read-only roster snapshot for one tenant, indexed by name variant."""

    def __init__(self, entries: Iterable[RosterEntry]):
        self.entries: list[RosterEntry] = list(entries)
        self.by_id: dict[str, RosterEntry] = {}
        self.by_variant: dict[str, list[RosterEntry]] = {}

        for entry in self.entries:
            self.by_id.setdefault(entry.id, entry)
            for variant in entry.name_variants:
                bucket = self.by_variant.setdefault(variant, [])
                if entry not in bucket:
                    bucket.append(entry)

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, keys: Sequence[str]) -> list[RosterEntry]:
        """Entries whose variants contain any of the keys, in roster order, deduplicated."""
        hits: dict[str, RosterEntry] = {}
        for key in keys:
            for entry in self.by_variant.get(key, []):
                hits.setdefault(entry.id, entry)
        order = {entry.id: i for i, entry in enumerate(self.entries)}
        return sorted(hits.values(), key=lambda e: order.get(e.id, 0))

    def display_name(self, entry_id: str) -> str | None:
        entry = self.by_id.get(entry_id)
        return entry.display_name if entry else None


def as_roster(roster: "Roster | Iterable[RosterEntry]") -> Roster:
    if isinstance(roster, Roster):
        return roster
    return Roster(roster)
