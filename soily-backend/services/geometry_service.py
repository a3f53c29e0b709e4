"""
services/geometry_service.py
----------------------------
Boundary geometry — derives area, perimeter and centre point from the farm
boundary the farmer draws on the map.

Input is an ordered ring of (longitude, latitude) pairs. The ring may be
explicitly closed (last point == first point) or left open; it is always
treated as closed.

    area       – acres, shoelace formula on a local equirectangular
                 projection centred on the ring's mean latitude
    perimeter  – km, haversine distance summed over every edge
    centre     – arithmetic mean of the distinct vertices

Field-sized polygons (a few km across at most) make the flat projection
error negligible next to GPS error.

Usage:
    from services.geometry_service import derive_boundary
    boundary = derive_boundary([[73.85, 18.52], [73.86, 18.52], [73.86, 18.53]])
"""

from __future__ import annotations

import numpy as np

from services.schemas import BoundaryGeometry, ValidationError, parse_coordinates


EARTH_RADIUS_M     = 6_371_008.8
SQ_METRES_PER_ACRE = 4046.8564224
MIN_POINTS         = 3
MIN_AREA_ACRES     = 1e-6


def _open_ring(points: list[tuple[float, float]]) -> list[tuple[float, float]]:
    """Drop the duplicated closing vertex, if present."""
    if len(points) > 1 and points[0] == points[-1]:
        return points[:-1]
    return points


def polygon_area_acres(lngs: np.ndarray, lats: np.ndarray) -> float:
    lat0 = np.radians(lats.mean())
    # Centred on the mean vertex to keep the products small
    x = EARTH_RADIUS_M * np.radians(lngs - lngs.mean()) * np.cos(lat0)
    y = EARTH_RADIUS_M * np.radians(lats - lats.mean())
    # Shoelace over the implicitly closed ring
    area_m2 = 0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))
    return float(area_m2 / SQ_METRES_PER_ACRE)


def ring_perimeter_km(lngs: np.ndarray, lats: np.ndarray) -> float:
    lam1, phi1 = np.radians(lngs), np.radians(lats)
    lam2, phi2 = np.roll(lam1, -1), np.roll(phi1, -1)
    h = (np.sin((phi2 - phi1) / 2) ** 2
         + np.cos(phi1) * np.cos(phi2) * np.sin((lam2 - lam1) / 2) ** 2)
    edges_m = 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))
    return float(edges_m.sum() / 1000.0)


def derive_boundary(coordinates) -> BoundaryGeometry:
    """
    Validate a raw coordinate ring and derive its geometry.

    Args:
        coordinates: [[longitude, latitude], ...] as sent by the map client.

    Returns:
        BoundaryGeometry with area (acres), perimeter (km) and centre point.

    Raises:
        ValidationError: fewer than 3 distinct points, or a zero-area ring.
    """
    points = _open_ring(parse_coordinates(coordinates))
    if len(set(points)) < MIN_POINTS:
        raise ValidationError(
            "coordinates", f"A boundary needs at least {MIN_POINTS} distinct points"
        )

    ring = np.array(points, dtype=float)
    lngs, lats = ring[:, 0], ring[:, 1]

    area = polygon_area_acres(lngs, lats)
    if area < MIN_AREA_ACRES:
        raise ValidationError("coordinates", "Boundary encloses no area")

    return BoundaryGeometry(
        coordinates      = points,
        area             = area,
        perimeter        = ring_perimeter_km(lngs, lats),
        center_latitude  = float(lats.mean()),
        center_longitude = float(lngs.mean()),
    )
