from __future__ import annotations

from typing import Iterable, Optional, Tuple

from models import Coordinate, Viewport


def bounding_box(coords: Iterable[Coordinate]) -> Optional[Tuple[float, float, float, float]]:
    """Smallest bbox holding every coordinate.

    Returns (min_lon, min_lat, max_lon, max_lat), or None for no coordinates.
    """
    points = list(coords)
    if not points:
        return None
    lats = [c.latitude for c in points]
    lons = [c.longitude for c in points]
    return (min(lons), min(lats), max(lons), max(lats))


def region_around(center: Coordinate, span: float) -> Viewport:
    return Viewport(
        latitude=center.latitude,
        longitude=center.longitude,
        latitude_delta=span,
        longitude_delta=span,
    )


def region_from_bbox(
    bbox: Tuple[float, float, float, float],
    *,
    padding: float,
    min_span: float,
) -> Viewport:
    """Center a region on the bbox with each axis scaled by ``padding``.

    An axis with no extent (all points on one line) falls back to ``min_span``.
    """
    min_lon, min_lat, max_lon, max_lat = bbox
    return Viewport(
        latitude=(min_lat + max_lat) / 2.0,
        longitude=(min_lon + max_lon) / 2.0,
        latitude_delta=max((max_lat - min_lat) * padding, min_span),
        longitude_delta=max((max_lon - min_lon) * padding, min_span),
    )
