"""
Geospatial helpers: great-circle distance and a geohash grid.

The duplicate index stores one geohash cell per issue and looks up the
cells covering a search circle, so a submission only scans the open
issues of a handful of cells instead of the whole city.
"""

import math
from typing import Set, Tuple

EARTH_RADIUS_METERS = 6371000
_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE_MAP = {char: index for index, char in enumerate(_BASE32)}


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points using Haversine formula."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)
    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def geohash_encode(latitude: float, longitude: float, precision: int = 7) -> str:
    """Encode a coordinate as a geohash string of `precision` characters."""
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    chars = []
    bits = 0
    bit_count = 0
    even = True  # even bits refine longitude

    while len(chars) < precision:
        if even:
            mid = (lon_range[0] + lon_range[1]) / 2
            if longitude >= mid:
                bits = (bits << 1) | 1
                lon_range[0] = mid
            else:
                bits = bits << 1
                lon_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if latitude >= mid:
                bits = (bits << 1) | 1
                lat_range[0] = mid
            else:
                bits = bits << 1
                lat_range[1] = mid
        even = not even
        bit_count += 1
        if bit_count == 5:
            chars.append(_BASE32[bits])
            bits = 0
            bit_count = 0

    return "".join(chars)


def geohash_bounds(geohash: str) -> Tuple[float, float, float, float]:
    """Return (lat_min, lat_max, lon_min, lon_max) of a geohash cell."""
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    even = True

    for char in geohash:
        value = _DECODE_MAP[char]
        for shift in range(4, -1, -1):
            bit = (value >> shift) & 1
            target = lon_range if even else lat_range
            mid = (target[0] + target[1]) / 2
            if bit:
                target[0] = mid
            else:
                target[1] = mid
            even = not even

    return lat_range[0], lat_range[1], lon_range[0], lon_range[1]


def _wrap_longitude(longitude: float) -> float:
    return ((longitude + 180.0) % 360.0) - 180.0


def covering_cells(latitude: float, longitude: float, radius_meters: float, precision: int = 7) -> Set[str]:
    """
    Geohash cells that together cover a circle around the point.

    Always includes the 8 neighbours of the centre cell; widens the ring
    when the radius exceeds a cell's shorter side (high latitudes).
    """
    center = geohash_encode(latitude, longitude, precision)
    lat_min, lat_max, lon_min, lon_max = geohash_bounds(center)
    cell_height = lat_max - lat_min
    cell_width = lon_max - lon_min

    height_m = math.radians(cell_height) * EARTH_RADIUS_METERS
    width_m = math.radians(cell_width) * EARTH_RADIUS_METERS * max(math.cos(math.radians(latitude)), 1e-6)
    lat_rings = max(1, math.ceil(radius_meters / height_m))
    lon_rings = max(1, math.ceil(radius_meters / width_m))

    center_lat = (lat_min + lat_max) / 2
    center_lon = (lon_min + lon_max) / 2
    cells = set()
    for i in range(-lat_rings, lat_rings + 1):
        lat = center_lat + i * cell_height
        if lat < -90.0 or lat > 90.0:
            continue
        for j in range(-lon_rings, lon_rings + 1):
            lon = _wrap_longitude(center_lon + j * cell_width)
            cells.add(geohash_encode(lat, lon, precision))
    return cells
