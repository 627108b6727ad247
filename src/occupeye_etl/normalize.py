"""Normalization functions for the Firestore → Postgres migration.

Building names are matched by exact string against BUILDING_NAME_MAP; no
case-folding or fuzzy matching is applied.
"""

from __future__ import annotations

from typing import Iterable

# ---------------------------------------------------------------------------
# Building-name lookup table
# ---------------------------------------------------------------------------

BUILDING_NAME_MAP: dict[str, str] = {
    "Peters": "Peters Building",
    "Peters Building": "Peters Building",
    "Lazaridis Hall": "Lazaridis Hall",
    "Science Building": "Science Building",
    "Science & Research": "Science Building",
    "Dr. Alvin Woods Building": "Dr. Alvin Woods Building",
    "Fred Nichols Campus Center": "Fred Nichols Campus Center",
    "Fred Nichols Campus Centre": "Fred Nichols Campus Center",
    "Schlegel": "Schlegel Building",
    "Schlegel Building": "Schlegel Building",
    "Bricker Academic Building": "Bricker Academic Building",
    "University Library": "University Library",
    "Arts": "Arts Building",
    "Arts Building": "Arts Building",
    "MLU": "Martin Luther University College",
}


# ---------------------------------------------------------------------------
# Rule 1: normalize_building_name
# ---------------------------------------------------------------------------

def normalize_building_name(name: str) -> str:
    """Return the canonical building name, or the input unchanged if unmapped."""
    return BUILDING_NAME_MAP.get(name, name)


# ---------------------------------------------------------------------------
# Rule 2: yes_flag
# ---------------------------------------------------------------------------

def yes_flag(value: str | None) -> bool:
    """True only for the literal string 'yes'."""
    return value == "yes"


# ---------------------------------------------------------------------------
# Rule 3: collect_building_names
# ---------------------------------------------------------------------------

def collect_building_names(*datasets: Iterable) -> list[str]:
    """Distinct normalized building names across datasets, first-seen order.

    Each dataset is an iterable of records exposing a ``building`` attribute.
    Records with an empty building are skipped.
    """
    seen: dict[str, None] = {}
    for records in datasets:
        for record in records:
            if not record.building:
                continue
            seen.setdefault(normalize_building_name(record.building), None)
    return list(seen)
