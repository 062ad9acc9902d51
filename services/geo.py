"""Rectangular approximation of near-point geo queries."""

from __future__ import annotations

import math

from errors import ValidationError
from models.records import BoundingBox

EARTH_RADIUS_METERS = 6378137.0

# Below this the cosine term is treated as zero and the box spans all longitudes.
_MIN_COS_LATITUDE = 1e-12


def approximate(latitude: float, longitude: float, radius_meters: float) -> BoundingBox:
    """Return the lat/lon box that approximates a circle of ``radius_meters``.

    The box is square in degree space, so points in its corners may be
    farther away than the requested radius. Latitude bounds are clamped to
    [-90, 90]; when the longitude offset reaches half the globe (at or near the
    poles) the box covers the full [-180, 180] range. Longitudes are not
    wrapped, so a box near the antimeridian extends past +/-180 and misses
    points just across it.
    """
    if not all(math.isfinite(value) for value in (latitude, longitude, radius_meters)):
        raise ValidationError("Coordinates and radius must be finite numbers.")
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError(f"Latitude {latitude} is outside [-90, 90].")
    if radius_meters < 0:
        raise ValidationError(f"Radius {radius_meters} must not be negative.")

    lat_delta = math.degrees(radius_meters / EARTH_RADIUS_METERS)
    cos_lat = math.cos(math.radians(latitude))

    if cos_lat < _MIN_COS_LATITUDE:
        nw_lon, se_lon = -180.0, 180.0
    else:
        lon_delta = lat_delta / cos_lat
        if lon_delta >= 180.0:
            nw_lon, se_lon = -180.0, 180.0
        else:
            nw_lon, se_lon = longitude - lon_delta, longitude + lon_delta

    return BoundingBox(
        nw_lat=min(latitude + lat_delta, 90.0),
        nw_lon=nw_lon,
        se_lat=max(latitude - lat_delta, -90.0),
        se_lon=se_lon,
    )
