"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional


AIR_TEMPERATURE_OBSERVED = "AirTemperatureObserved"
WATER_TEMPERATURE_OBSERVED = "WaterTemperatureObserved"

GEO_RELATION_NEAR = "near"
GEO_RELATION_WITHIN = "within"


@dataclass(slots=True)
class Measurement:
    """A single persisted temperature observation."""

    device: str
    latitude: float
    longitude: float
    temperature: float
    is_water: bool
    timestamp: datetime
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(slots=True)
class LegacyMeasurement:
    """A record in the previous storage layout, only read during migration."""

    id: int
    device: str
    latitude: float
    longitude: float
    temperature: float
    is_water: bool
    timestamp: datetime


@dataclass(frozen=True)
class BoundingBox:
    """Axis aligned lat/lon rectangle given by its north west and south east corners."""

    nw_lat: float
    nw_lon: float
    se_lat: float
    se_lon: float

    @property
    def min_lat(self) -> float:
        return min(self.nw_lat, self.se_lat)

    @property
    def max_lat(self) -> float:
        return max(self.nw_lat, self.se_lat)

    @property
    def min_lon(self) -> float:
        return min(self.nw_lon, self.se_lon)

    @property
    def max_lon(self) -> float:
        return max(self.nw_lon, self.se_lon)

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_lat <= latitude <= self.max_lat
            and self.min_lon <= longitude <= self.max_lon
        )


@dataclass(frozen=True)
class TemporalRange:
    """Half open time window, either bound may be absent."""

    time_from: Optional[datetime] = None
    time_to: Optional[datetime] = None


@dataclass(frozen=True)
class GeoFilter:
    """Geo restriction of an entity query.

    ``near`` uses ``latitude``, ``longitude`` and ``max_distance``; ``within``
    uses ``rectangle``. Other relation names are kept as given so they can be
    rejected further down.
    """

    relation: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    max_distance: Optional[float] = None
    rectangle: Optional[BoundingBox] = None

    @classmethod
    def near_point(cls, latitude: float, longitude: float, max_distance: float) -> "GeoFilter":
        return cls(
            relation=GEO_RELATION_NEAR,
            latitude=latitude,
            longitude=longitude,
            max_distance=max_distance,
        )

    @classmethod
    def within_rectangle(
        cls, lat0: float, lon0: float, lat1: float, lon1: float
    ) -> "GeoFilter":
        return cls(
            relation=GEO_RELATION_WITHIN,
            rectangle=BoundingBox(nw_lat=lat0, nw_lon=lon0, se_lat=lat1, se_lon=lon1),
        )


@dataclass(frozen=True)
class EntityQuery:
    """Caller owned request for observations."""

    entity_types: FrozenSet[str] = field(default_factory=frozenset)
    entity_attributes: FrozenSet[str] = field(default_factory=frozenset)
    device_reference: Optional[str] = None
    temporal_range: Optional[TemporalRange] = None
    geo_filter: Optional[GeoFilter] = None
    result_limit: int = 0


@dataclass(frozen=True)
class MeasurementQuery:
    """Concrete parameters accepted by ``MeasurementStore.query``."""

    device_id: Optional[str] = None
    time_from: Optional[datetime] = None
    time_to: Optional[datetime] = None
    geo_relation: Optional[str] = None
    rect: Optional[BoundingBox] = None
    limit: int = 0
