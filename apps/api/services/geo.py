"""Map helpers: trust-level styling, bounds and proximity clustering."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

INDONESIA_BOUNDS = {
    "north": 6.0,
    "south": -11.0,
    "east": 141.0,
    "west": 95.0,
}
INDONESIA_CENTER: Tuple[float, float] = (-2.5489, 118.0149)
MAP_STYLES = {
    "STREETS": "mapbox://styles/mapbox/streets-v12",
    "SATELLITE": "mapbox://styles/mapbox/satellite-v9",
    "OUTDOORS": "mapbox://styles/mapbox/outdoors-v12",
    "LIGHT": "mapbox://styles/mapbox/light-v11",
}
EARTH_RADIUS_KM = 6371.0

TRUST_LEVEL_COLORS = {
    0: "#EF4444",
    1: "#F59E0B",
    2: "#10B981",
    3: "#3B82F6",
    4: "#8B5CF6",
}
TRUST_LEVEL_LABELS = {
    0: "Baru",
    1: "Menarik",
    2: "Terverifikasi",
    3: "Bersumber",
    4: "Terpercaya",
}
UNKNOWN_COLOR = "#6B7280"


def trust_level_color(level: Any) -> str:
    try:
        return TRUST_LEVEL_COLORS.get(int(level), UNKNOWN_COLOR)
    except (TypeError, ValueError):
        return UNKNOWN_COLOR


def trust_level_label(level: Any) -> str:
    try:
        return TRUST_LEVEL_LABELS.get(int(level), "Unknown")
    except (TypeError, ValueError):
        return "Unknown"


def point_of(item: Any) -> Optional[Tuple[float, float]]:
    """(lat, lng) of an item carrying latitude/longitude, or None."""
    latitude = getattr(item, "latitude", None)
    longitude = getattr(item, "longitude", None)
    if latitude is None or longitude is None:
        return None
    return float(latitude), float(longitude)


def within_indonesia(point: Tuple[float, float]) -> bool:
    lat, lng = point
    return (
        INDONESIA_BOUNDS["south"] <= lat <= INDONESIA_BOUNDS["north"]
        and INDONESIA_BOUNDS["west"] <= lng <= INDONESIA_BOUNDS["east"]
    )


def calculate_map_bounds(points: Sequence[Tuple[float, float]]) -> Optional[List[List[float]]]:
    """[[south, west], [north, east]] enclosing all points, or None when empty."""
    if not points:
        return None
    lats = [point[0] for point in points]
    lngs = [point[1] for point in points]
    return [
        [min(lats), min(lngs)],
        [max(lats), max(lngs)],
    ]


def haversine_km(first: Tuple[float, float], second: Tuple[float, float]) -> float:
    lat1, lng1 = first
    lat2, lng2 = second
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def group_by_proximity(items: Sequence[Any], threshold_km: float) -> List[List[Any]]:
    """Greedy clustering: each unassigned item seeds a group of its unassigned neighbours.

    Items without coordinates are skipped.
    """
    groups: List[List[Any]] = []
    assigned = set()
    for item in items:
        if item.id in assigned:
            continue
        seed = point_of(item)
        if seed is None:
            continue
        group = [item]
        assigned.add(item.id)
        for other in items:
            if other.id in assigned:
                continue
            other_point = point_of(other)
            if other_point is None:
                continue
            if haversine_km(seed, other_point) < threshold_km:
                group.append(other)
                assigned.add(other.id)
        groups.append(group)
    return groups


def marker_payload(item: Any) -> Dict[str, Any]:
    lat, lng = point_of(item)
    level = int(getattr(item, "trust_level", 0) or 0)
    return {
        "id": item.id,
        "title": item.title,
        "lat": lat,
        "lng": lng,
        "trust_level": level,
        "color": trust_level_color(level),
        "label": trust_level_label(level),
    }
