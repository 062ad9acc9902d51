"""Translation of entity queries into measurement store parameters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, Optional, Tuple

from errors import UnsupportedRelationError, ValidationError
from models.records import (
    AIR_TEMPERATURE_OBSERVED,
    GEO_RELATION_NEAR,
    GEO_RELATION_WITHIN,
    WATER_TEMPERATURE_OBSERVED,
    BoundingBox,
    EntityQuery,
    GeoFilter,
    Measurement,
    MeasurementQuery,
)
from services import geo

DEVICE_ID_PREFIX = "urn:ngsi-ld:Device:"
TEMPERATURE_ATTRIBUTE = "temperature"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def strip_entity_prefix(entity_id: str) -> str:
    """Return the bare identifier of a (possibly namespaced) entity id."""
    if entity_id.startswith(DEVICE_ID_PREFIX):
        return entity_id[len(DEVICE_ID_PREFIX):]
    if entity_id.startswith("urn:ngsi-ld:"):
        parts = entity_id.split(":", 3)
        if len(parts) == 4:
            return parts[3]
    return entity_id


@dataclass(frozen=True)
class TranslatedQuery:
    params: MeasurementQuery
    include_air: bool
    include_water: bool


class QueryTranslator:
    """Maps an ``EntityQuery`` onto a single bounded store query."""

    def __init__(
        self,
        default_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.default_window = default_window
        self._clock = clock

    def translate(self, query: Optional[EntityQuery]) -> TranslatedQuery:
        if query is None:
            raise ValidationError("Entity query may not be None.")

        include_air, include_water = self._resolve_types(query)

        device_id = None
        if query.device_reference:
            device_id = strip_entity_prefix(query.device_reference)

        time_from, time_to = self._resolve_window(query)
        geo_relation, rect = self._resolve_geo(query.geo_filter)

        params = MeasurementQuery(
            device_id=device_id,
            time_from=time_from,
            time_to=time_to,
            geo_relation=geo_relation,
            rect=rect,
            limit=max(query.result_limit, 0),
        )
        return TranslatedQuery(params=params, include_air=include_air, include_water=include_water)

    def project(
        self,
        measurements: Iterable[Measurement],
        translated: TranslatedQuery,
    ) -> Iterator[Tuple[str, Measurement]]:
        """Yield ``(entity_type, measurement)`` for every record of a requested kind."""
        for measurement in measurements:
            if measurement.is_water:
                if translated.include_water:
                    yield WATER_TEMPERATURE_OBSERVED, measurement
            elif translated.include_air:
                yield AIR_TEMPERATURE_OBSERVED, measurement

    @staticmethod
    def _resolve_types(query: EntityQuery) -> Tuple[bool, bool]:
        include_air = AIR_TEMPERATURE_OBSERVED in query.entity_types
        include_water = WATER_TEMPERATURE_OBSERVED in query.entity_types
        if include_air or include_water:
            return include_air, include_water

        if TEMPERATURE_ATTRIBUTE not in query.entity_attributes:
            raise ValidationError(
                "Query does not specify a type or attribute provided by this service."
            )
        # The store cannot split air from water, so both kinds are requested
        # and separated at projection time.
        return True, True

    def _resolve_window(self, query: EntityQuery) -> Tuple[Optional[datetime], Optional[datetime]]:
        temporal = query.temporal_range
        if temporal is None:
            now = self._clock()
            return now - self.default_window, now
        return temporal.time_from, temporal.time_to

    @staticmethod
    def _resolve_geo(geo_filter: Optional[GeoFilter]) -> Tuple[Optional[str], Optional[BoundingBox]]:
        if geo_filter is None:
            return None, None

        if geo_filter.relation == GEO_RELATION_NEAR:
            if (
                geo_filter.latitude is None
                or geo_filter.longitude is None
                or geo_filter.max_distance is None
            ):
                raise ValidationError("Near-point queries need a point and a maximum distance.")
            rect = geo.approximate(
                geo_filter.latitude, geo_filter.longitude, geo_filter.max_distance
            )
            return GEO_RELATION_WITHIN, rect

        if geo_filter.relation == GEO_RELATION_WITHIN:
            if geo_filter.rectangle is None:
                raise ValidationError("Within-rectangle queries need two corner points.")
            return GEO_RELATION_WITHIN, geo_filter.rectangle

        raise UnsupportedRelationError(geo_filter.relation)
