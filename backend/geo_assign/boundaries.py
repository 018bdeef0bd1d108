"""
boundaries.py - Boundary dataset loading and point containment.

Responsible for:
    - Reading the assembly (AC) and parliamentary (PC) GeoJSON files once
      at startup.
    - Mapping each feature's loosely keyed property bag (ST_NAME vs
      st_name, AC_NAME vs ac_name, ...) onto a fixed BoundaryFeature.
    - Holding the process-wide, read-only BoundaryIndex.
    - Answering "which AC / PC contains this coordinate?".

A collection that fails to load is logged once and left empty; every
containment query against it then answers None.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from geo_assign.exceptions import BoundaryDataError
from geo_assign.raycast import point_in_geometry, validate_geometry

logger = logging.getLogger(__name__)

ASSEMBLY = "assembly"
PARLIAMENTARY = "parliamentary"

# ── Property keys ─────────────────────────────────────────────────────────────
# Tried in order; the first non-blank value wins.
_STATE_KEYS = ("ST_NAME", "st_name", "STATE_NAME", "state_name", "state")
_SEAT_KEYS = {
    ASSEMBLY: ("AC_NAME", "ac_name"),
    PARLIAMENTARY: ("PC_NAME", "pc_name"),
}
# PC files frequently carry only the seat name; the state then comes from
# the matching AC.
_STATE_REQUIRED = {ASSEMBLY: True, PARLIAMENTARY: False}


@dataclass(frozen=True)
class BoundaryFeature:
    """One electoral seat polygon with its required properties resolved."""

    name: str
    state: Optional[str]
    geometry: dict
    properties: dict = field(default_factory=dict, compare=False)


@dataclass
class BoundaryIndex:
    """
    Both boundary collections plus a loaded flag per collection.

    The default instance is empty and unloaded, which is exactly how the
    service behaves before (or after a failed) startup load.
    """

    assembly: list[BoundaryFeature] = field(default_factory=list)
    parliamentary: list[BoundaryFeature] = field(default_factory=list)
    assembly_loaded: bool = False
    parliamentary_loaded: bool = False

    @property
    def loaded(self) -> bool:
        return self.assembly_loaded and self.parliamentary_loaded


@dataclass(frozen=True)
class Containment:
    """First containing feature per collection, or None."""

    assembly: Optional[BoundaryFeature] = None
    parliamentary: Optional[BoundaryFeature] = None


# ── Parsing ───────────────────────────────────────────────────────────────────

def _first_value(properties: dict, keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = properties.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_features(raw_features: list[Any], kind: str) -> list[BoundaryFeature]:
    """
    Convert raw GeoJSON features into BoundaryFeature records.

    Args:
        raw_features: The "features" array of a FeatureCollection.
        kind:         ASSEMBLY or PARLIAMENTARY.

    Returns:
        Features in dataset order.

    Raises:
        BoundaryDataError: On the first feature missing a required
            property or carrying an unusable geometry.
    """
    seat_keys = _SEAT_KEYS[kind]
    features: list[BoundaryFeature] = []

    for position, raw in enumerate(raw_features):
        if not isinstance(raw, dict):
            raise BoundaryDataError(
                "Feature is not an object", {"collection": kind, "index": position}
            )
        properties = raw.get("properties") or {}

        name = _first_value(properties, seat_keys)
        if name is None:
            raise BoundaryDataError(
                f"Feature missing seat name (expected one of {', '.join(seat_keys)})",
                {"collection": kind, "index": position},
            )

        state = _first_value(properties, _STATE_KEYS)
        if state is None and _STATE_REQUIRED[kind]:
            raise BoundaryDataError(
                f"Feature missing state name (expected one of {', '.join(_STATE_KEYS)})",
                {"collection": kind, "index": position, "name": name},
            )

        geometry = raw.get("geometry")
        try:
            validate_geometry(geometry)
        except ValueError as exc:
            raise BoundaryDataError(
                f"Invalid geometry: {exc}",
                {"collection": kind, "index": position, "name": name},
            ) from exc

        features.append(
            BoundaryFeature(name=name, state=state, geometry=geometry, properties=properties)
        )

    return features


def _read_feature_collection(path: Path) -> list[Any]:
    try:
        with path.open(encoding="utf-8") as fh:
            collection = json.load(fh)
    except FileNotFoundError as exc:
        raise BoundaryDataError("Boundary file not found", {"path": path}) from exc
    except json.JSONDecodeError as exc:
        raise BoundaryDataError(f"Invalid JSON: {exc}", {"path": path}) from exc

    features = collection.get("features") if isinstance(collection, dict) else None
    if not isinstance(features, list):
        raise BoundaryDataError("File is not a GeoJSON FeatureCollection", {"path": path})
    return features


def load_collection(path: Path, kind: str) -> tuple[list[BoundaryFeature], bool]:
    """
    Load one boundary file, logging (once) rather than raising on failure.

    Returns:
        (features, loaded). On failure features is empty and loaded False.
    """
    try:
        features = parse_features(_read_feature_collection(path), kind)
    except BoundaryDataError as exc:
        logger.error(
            "Could not load %s boundaries; automatic assignment disabled: %s", kind, exc
        )
        return [], False

    logger.info("Loaded %d %s features from %s", len(features), kind, path.name)
    return features, True


def load_boundaries(assembly_path: Path, parliamentary_path: Path) -> BoundaryIndex:
    """
    Load both boundary collections into a fresh BoundaryIndex.

    This should be called exactly once at application startup.
    """
    assembly, assembly_loaded = load_collection(assembly_path, ASSEMBLY)
    parliamentary, parliamentary_loaded = load_collection(parliamentary_path, PARLIAMENTARY)
    return BoundaryIndex(
        assembly=assembly,
        parliamentary=parliamentary,
        assembly_loaded=assembly_loaded,
        parliamentary_loaded=parliamentary_loaded,
    )


# ── Process-wide index ────────────────────────────────────────────────────────
_index = BoundaryIndex()


def get_boundary_index() -> BoundaryIndex:
    """Return the current index; empty and unloaded until startup finishes."""
    return _index


def set_boundary_index(index: BoundaryIndex) -> None:
    global _index
    _index = index


# ── Containment ───────────────────────────────────────────────────────────────

def _first_containing(
    features: list[BoundaryFeature], lng: float, lat: float
) -> Optional[BoundaryFeature]:
    """
    Return the first feature in dataset order whose geometry contains the
    point. Overlapping source polygons therefore resolve to the earlier one.
    """
    for feature in features:
        try:
            if point_in_geometry(lng=lng, lat=lat, geometry=feature.geometry):
                return feature
        except (ValueError, TypeError, IndexError) as exc:
            logger.warning("Skipping malformed boundary %r: %s", feature.name, exc)
    return None


def locate(lat: float, lng: float, index: BoundaryIndex) -> Containment:
    """
    Find the containing AC and PC for a coordinate, independently.

    Args:
        lat:   Latitude in [-90, 90].
        lng:   Longitude in [-180, 180].
        index: Loaded boundary data.

    Returns:
        Containment with either side None when the collection is not
        loaded or no feature contains the point.

    Raises:
        ValueError: If the coordinate is outside the valid lat/lng range.
    """
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise ValueError(f"Coordinate out of range: ({lat}, {lng})")

    assembly = _first_containing(index.assembly, lng, lat) if index.assembly_loaded else None
    parliamentary = (
        _first_containing(index.parliamentary, lng, lat) if index.parliamentary_loaded else None
    )
    return Containment(assembly=assembly, parliamentary=parliamentary)
