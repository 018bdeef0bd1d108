"""
raycast.py - Point-in-polygon containment for constituency boundaries.

A horizontal ray is cast from the test point towards +lng; an odd number
of edge crossings means the point is inside the ring. Coordinates follow
GeoJSON order, i.e. every vertex is ``[lng, lat]``.

Reference:
    W. Randolph Franklin, "PNPOLY - Point Inclusion in Polygon Test"
    https://wrfranklin.org/Research/Short_Notes/pnpoly.html
"""

from __future__ import annotations

from typing import Sequence

Ring = Sequence[Sequence[float]]

SUPPORTED_GEOMETRY_TYPES = ("Polygon", "MultiPolygon")


def _is_point_in_ring(lng: float, lat: float, ring: Ring) -> bool:
    """
    Run the ray-casting test for a single linear ring.

    Rings with fewer than three vertices enclose nothing and return False.
    """
    n = len(ring)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]

        # yi != yj whenever the first clause holds, so the division is safe
        if ((yi > lat) != (yj > lat)) and (lng < (xj - xi) * (lat - yi) / (yj - yi) + xi):
            inside = not inside

        j = i

    return inside


def _test_polygon(lng: float, lat: float, rings: Sequence[Ring]) -> bool:
    """
    Test a point against one polygon: inside the outer ring and outside
    every interior ring (hole).
    """
    if not rings:
        return False

    if not _is_point_in_ring(lng, lat, rings[0]):
        return False

    return not any(_is_point_in_ring(lng, lat, hole) for hole in rings[1:])


def point_in_geometry(lng: float, lat: float, geometry: dict) -> bool:
    """
    Test whether a coordinate falls inside a Polygon or MultiPolygon.

    A MultiPolygon contains the point when any of its member polygons does.

    Args:
        lng:      Longitude of the test point.
        lat:      Latitude of the test point.
        geometry: GeoJSON geometry dict with "type" and "coordinates".

    Returns:
        True if the point is inside the geometry.

    Raises:
        ValueError: If the geometry type is not Polygon or MultiPolygon.
    """
    geo_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []

    if geo_type == "Polygon":
        return _test_polygon(lng, lat, coordinates)

    if geo_type == "MultiPolygon":
        return any(_test_polygon(lng, lat, polygon) for polygon in coordinates)

    raise ValueError(f"Unsupported geometry type: {geo_type!r}")


def validate_geometry(geometry: object) -> None:
    """
    Check the shape of a geometry before it is admitted to a collection.

    Raises:
        ValueError: If the geometry is not a Polygon/MultiPolygon dict whose
            coordinates nest to ``[lng, lat]`` pairs.
    """
    if not isinstance(geometry, dict):
        raise ValueError("geometry must be an object")

    geo_type = geometry.get("type")
    if geo_type not in SUPPORTED_GEOMETRY_TYPES:
        raise ValueError(f"Unsupported geometry type: {geo_type!r}")

    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        raise ValueError("geometry coordinates must be a list")

    polygons = [coordinates] if geo_type == "Polygon" else coordinates
    for polygon in polygons:
        if not isinstance(polygon, list):
            raise ValueError("polygon must be a list of rings")
        for ring in polygon:
            if not isinstance(ring, list) or any(
                not isinstance(vertex, (list, tuple)) or len(vertex) < 2 for vertex in ring
            ):
                raise ValueError("ring vertices must be [lng, lat] pairs")
