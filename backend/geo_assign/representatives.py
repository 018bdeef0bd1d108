"""
representatives.py - MLA / MP reference-table lookups.

Seat and state names reaching these functions come from third-party
boundary files or from administrator free text, so every value is
escaped before it is used in a LIKE pattern: a "%" or "_" inside a name
matches only itself. Matching is case-insensitive and whole-string.

A database error during a lookup rolls the session back, is logged and is
reported as "not found"; one failed lookup never prevents the other.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from geo_assign.models import MLARecord, MPRecord

logger = logging.getLogger(__name__)

_LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class RepresentativeMatch:
    """A resolved representative. Only ``name`` is persisted on reports."""

    name: str
    party: str = ""
    email: Optional[str] = None


def escape_like(value: str) -> str:
    """Escape LIKE metacharacters so the value is matched literally."""
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def _exact_ci(column, value: str):
    return column.ilike(escape_like(value.strip()), escape=_LIKE_ESCAPE)


# ── Lookups ───────────────────────────────────────────────────────────────────

def find_mla(session: Session, state: str, constituency: str) -> Optional[RepresentativeMatch]:
    """
    Look up the MLA for an assembly seat.

    Args:
        session:      Open database session.
        state:        State name, matched case-insensitively.
        constituency: Normalised assembly constituency name.

    Returns:
        RepresentativeMatch, or None if there is no row, the row has a
        blank name, or the query failed.
    """
    if not state or not state.strip() or not constituency or not constituency.strip():
        return None

    stmt = (
        select(MLARecord)
        .where(_exact_ci(MLARecord.state, state), _exact_ci(MLARecord.constituency, constituency))
        .limit(1)
    )
    try:
        record = session.scalars(stmt).first()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Database error looking up MLA for %s, %s: %s", constituency, state, exc)
        return None

    if record is None or not record.mla.strip():
        logger.warning("Could not find MLA for %s, %s", constituency, state)
        return None

    return RepresentativeMatch(name=record.mla.strip(), party=record.party, email=record.email)


def find_mp(session: Session, state: str, pc_name: str) -> Optional[RepresentativeMatch]:
    """
    Look up the MP for a parliamentary seat.

    Same matching and failure rules as find_mla.
    """
    if not state or not state.strip() or not pc_name or not pc_name.strip():
        return None

    stmt = (
        select(MPRecord)
        .where(_exact_ci(MPRecord.state, state), _exact_ci(MPRecord.pc_name, pc_name))
        .limit(1)
    )
    try:
        record = session.scalars(stmt).first()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Database error looking up MP for %s, %s: %s", pc_name, state, exc)
        return None

    if record is None or not record.mp_name.strip():
        logger.warning("Could not find MP for %s, %s", pc_name, state)
        return None

    return RepresentativeMatch(name=record.mp_name.strip(), party=record.party, email=record.email)


# ── Reference browsing ────────────────────────────────────────────────────────

def list_states(session: Session) -> list[str]:
    """Distinct state names present in the MLA table, sorted."""
    stmt = select(MLARecord.state).distinct().order_by(MLARecord.state)
    return list(session.scalars(stmt))


def list_constituencies(session: Session, state: str) -> list[str]:
    """Assembly constituency names for a state (case-insensitive), sorted."""
    stmt = (
        select(MLARecord.constituency)
        .where(_exact_ci(MLARecord.state, state))
        .distinct()
        .order_by(MLARecord.constituency)
    )
    return list(session.scalars(stmt))


def list_parliamentary_constituencies(session: Session, state: str) -> list[str]:
    """Parliamentary constituency names for a state (case-insensitive), sorted."""
    stmt = (
        select(MPRecord.pc_name)
        .where(_exact_ci(MPRecord.state, state))
        .distinct()
        .order_by(MPRecord.pc_name)
    )
    return list(session.scalars(stmt))


# ── Seeding ───────────────────────────────────────────────────────────────────

def _load_json_rows(path: Optional[Path]) -> list[dict]:
    """
    Read a JSON array of row objects, or an empty list if the file is
    absent or unreadable.
    """
    if path is None:
        return []
    try:
        with path.open(encoding="utf-8") as fh:
            rows = json.load(fh)
    except FileNotFoundError:
        logger.info("Reference data file not found, skipping seed: %s", path)
        return []
    except json.JSONDecodeError as exc:
        logger.error("Invalid JSON in %s: %s", path.name, exc)
        return []

    if not isinstance(rows, list):
        logger.error("Reference data in %s is not a JSON array", path.name)
        return []
    return [row for row in rows if isinstance(row, dict)]


def load_reference_tables(
    session: Session, mla_path: Optional[Path], mp_path: Optional[Path]
) -> tuple[int, int]:
    """
    Seed the MLA and MP tables from JSON files when they are empty.

    MLA rows need "state", "constituency", "mla"; MP rows need "state",
    "pc_name", "mp_name". Both accept optional "party" and "email".
    Tables that already hold rows are left untouched.

    Returns:
        (mla_rows_inserted, mp_rows_inserted)
    """
    inserted_mla = inserted_mp = 0

    if not session.scalar(select(func.count()).select_from(MLARecord)):
        seen: set[tuple[str, str]] = set()
        for row in _load_json_rows(mla_path):
            if not all(row.get(key) for key in ("state", "constituency", "mla")):
                logger.warning("Skipping incomplete MLA row: %r", row)
                continue
            key = (row["state"].strip().lower(), row["constituency"].strip().lower())
            if key in seen:
                logger.warning("Skipping duplicate MLA row for %s, %s", *key)
                continue
            seen.add(key)
            session.add(
                MLARecord(
                    state=row["state"].strip(),
                    constituency=row["constituency"].strip(),
                    mla=row["mla"].strip(),
                    party=(row.get("party") or "").strip(),
                    email=row.get("email"),
                )
            )
            inserted_mla += 1

    if not session.scalar(select(func.count()).select_from(MPRecord)):
        seen = set()
        for row in _load_json_rows(mp_path):
            if not all(row.get(key) for key in ("state", "pc_name", "mp_name")):
                logger.warning("Skipping incomplete MP row: %r", row)
                continue
            key = (row["state"].strip().lower(), row["pc_name"].strip().lower())
            if key in seen:
                logger.warning("Skipping duplicate MP row for %s, %s", *key)
                continue
            seen.add(key)
            session.add(
                MPRecord(
                    state=row["state"].strip(),
                    pc_name=row["pc_name"].strip(),
                    mp_name=row["mp_name"].strip(),
                    party=(row.get("party") or "").strip(),
                    email=row.get("email"),
                )
            )
            inserted_mp += 1

    session.commit()
    if inserted_mla or inserted_mp:
        logger.info("Seeded %d MLA and %d MP reference rows", inserted_mla, inserted_mp)
    return inserted_mla, inserted_mp
