"""
naming.py - Reconcile boundary-dataset seat names with representative tables.

Boundary files mark reserved seats with a trailing category, e.g.
"Kandhamal SC" or "Kandhamal (SC)". The MLA/MP reference tables use the
bare seat name ("Kandhamal"), so names coming out of boundary data are
normalised before they are looked up or persisted. Names typed into the
reference tables are assumed clean and never pass through here.
"""

from __future__ import annotations

from typing import Optional

RESERVATION_CATEGORIES = ("SC", "ST", "OBC", "GEN")

# Bare " SC" forms first, then the parenthesised " (SC)" forms.
_RESERVATION_SUFFIXES: tuple[str, ...] = tuple(
    f" {category}" for category in RESERVATION_CATEGORIES
) + tuple(f" ({category})" for category in RESERVATION_CATEGORIES)


def normalize_constituency_name(raw_name: Optional[str]) -> str:
    """
    Strip a single trailing reservation marker from a seat name.

    Examples:
        >>> normalize_constituency_name("Kandhamal SC")
        'Kandhamal'
        >>> normalize_constituency_name("Kandhamal (SC)")
        'Kandhamal'
        >>> normalize_constituency_name("Kandhamal")
        'Kandhamal'

    Args:
        raw_name: Seat name as stored in the boundary file.

    Returns:
        The trimmed name without its reservation suffix, or "" for
        None/blank input.
    """
    if not raw_name:
        return ""

    cleaned = raw_name.strip()
    for suffix in _RESERVATION_SUFFIXES:
        if cleaned.endswith(suffix):
            cleaned = cleaned[: -len(suffix)]
            break

    return cleaned.strip()
