"""Parsing of NGSI-LD query string parameters into an ``EntityQuery``."""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from datastore.base import parse_rfc3339
from errors import ValidationError
from models.records import (
    GEO_RELATION_NEAR,
    GEO_RELATION_WITHIN,
    EntityQuery,
    GeoFilter,
    TemporalRange,
)

_REF_DEVICE_PATTERN = re.compile(r"""^refDevice==["']?(?P<device>[^"';]+)["']?$""")
_MAX_DISTANCE_PATTERN = re.compile(r"^maxDistance==(?P<distance>\d+(?:\.\d+)?)$")


def _split_list(value: Optional[str]) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def _parse_device(q: Optional[str]) -> Optional[str]:
    if not q:
        return None
    match = _REF_DEVICE_PATTERN.match(q.strip())
    if match is None:
        raise ValidationError(f"Unsupported query expression {q!r}.")
    return match.group("device")


def _load_coordinates(coordinates: Optional[str]) -> Any:
    if not coordinates:
        raise ValidationError("Geo queries require coordinates.")
    try:
        return json.loads(coordinates)
    except json.JSONDecodeError as exc:
        raise ValidationError("Coordinates must be a JSON array.") from exc


def _parse_point(coordinates: Optional[str]) -> tuple[float, float]:
    point = _load_coordinates(coordinates)
    if not isinstance(point, list) or len(point) != 2:
        raise ValidationError("Point coordinates must be [longitude, latitude].")
    try:
        longitude, latitude = float(point[0]), float(point[1])
    except (TypeError, ValueError) as exc:
        raise ValidationError("Point coordinates must be numbers.") from exc
    return latitude, longitude


def _parse_polygon_corners(coordinates: Optional[str]) -> tuple[float, float, float, float]:
    polygon = _load_coordinates(coordinates)
    if not isinstance(polygon, list) or not polygon:
        raise ValidationError("Polygon coordinates must be a non-empty array.")

    # GeoJSON polygons wrap their outer ring in an extra array.
    ring: List[Any] = polygon
    if isinstance(polygon[0], list) and polygon[0] and isinstance(polygon[0][0], list):
        ring = polygon[0]

    try:
        points = [(float(lon), float(lat)) for lon, lat in ring]
    except (TypeError, ValueError) as exc:
        raise ValidationError("Polygon coordinates must be [longitude, latitude] pairs.") from exc
    if len(points) < 2:
        raise ValidationError("Polygon needs at least two corners.")

    lons = [lon for lon, _ in points]
    lats = [lat for _, lat in points]
    return max(lats), min(lons), min(lats), max(lons)


def _parse_geo(
    georel: Optional[str],
    geometry: Optional[str],
    coordinates: Optional[str],
) -> Optional[GeoFilter]:
    if not georel:
        return None

    relation, _, modifier = georel.partition(";")
    relation = relation.strip()

    if relation == GEO_RELATION_NEAR:
        match = _MAX_DISTANCE_PATTERN.match(modifier.strip())
        if match is None:
            raise ValidationError("Near queries require maxDistance==<meters>.")
        if geometry not in (None, "Point"):
            raise ValidationError("Near queries require a Point geometry.")
        latitude, longitude = _parse_point(coordinates)
        return GeoFilter.near_point(latitude, longitude, float(match.group("distance")))

    if relation == GEO_RELATION_WITHIN:
        if geometry not in (None, "Polygon"):
            raise ValidationError("Within queries require a Polygon geometry.")
        return GeoFilter.within_rectangle(*_parse_polygon_corners(coordinates))

    return GeoFilter(relation=relation)


def _parse_temporal(
    timerel: Optional[str],
    time_at: Optional[str],
    end_time_at: Optional[str],
) -> Optional[TemporalRange]:
    if not timerel:
        return None
    if not time_at:
        raise ValidationError("Temporal queries require timeAt.")

    start = parse_rfc3339(time_at)
    if timerel == "before":
        return TemporalRange(time_to=start)
    if timerel == "after":
        return TemporalRange(time_from=start)
    if timerel == "between":
        if not end_time_at:
            raise ValidationError("timerel=between requires endTimeAt.")
        return TemporalRange(time_from=start, time_to=parse_rfc3339(end_time_at))
    raise ValidationError(f"Unsupported timerel {timerel!r}.")


def parse_entity_query(
    types: Optional[str] = None,
    attrs: Optional[str] = None,
    q: Optional[str] = None,
    georel: Optional[str] = None,
    geometry: Optional[str] = None,
    coordinates: Optional[str] = None,
    timerel: Optional[str] = None,
    time_at: Optional[str] = None,
    end_time_at: Optional[str] = None,
    limit: int = 0,
) -> EntityQuery:
    return EntityQuery(
        entity_types=_split_list(types),
        entity_attributes=_split_list(attrs),
        device_reference=_parse_device(q),
        temporal_range=_parse_temporal(timerel, time_at, end_time_at),
        geo_filter=_parse_geo(georel, geometry, coordinates),
        result_limit=limit,
    )
