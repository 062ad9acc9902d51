"""Entity query boundary over the measurement store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from app.schemas import TemperatureEntity
from datastore.base import MeasurementStore
from errors import ValidationError
from models.records import (
    AIR_TEMPERATURE_OBSERVED,
    WATER_TEMPERATURE_OBSERVED,
    EntityQuery,
    Measurement,
)
from services.entities import to_entity
from services.translator import TEMPERATURE_ATTRIBUTE, QueryTranslator

EntityCallback = Callable[[TemperatureEntity], None]

PROVIDED_TYPES = frozenset({AIR_TEMPERATURE_OBSERVED, WATER_TEMPERATURE_OBSERVED})
LATEST_WINDOW = timedelta(hours=6)


class ContextSource:
    """Answers entity queries with air and water temperature observations."""

    def __init__(self, store: MeasurementStore, translator: Optional[QueryTranslator] = None) -> None:
        self.store = store
        self.translator = translator or QueryTranslator()

    def get_entities(self, query: Optional[EntityQuery], callback: EntityCallback) -> int:
        """Invoke ``callback`` once per matching entity, oldest first.

        Returns the number of entities delivered. An exception raised by the
        callback stops the iteration and propagates to the caller.
        """
        if query is None:
            raise ValidationError("GetEntities: query may not be None.")

        translated = self.translator.translate(query)
        params = translated.params
        measurements = self.store.query(
            device_id=params.device_id,
            time_from=params.time_from,
            time_to=params.time_to,
            geo_relation=params.geo_relation,
            rect=params.rect,
            limit=params.limit,
        )

        delivered = 0
        for entity_type, measurement in self.translator.project(measurements, translated):
            callback(to_entity(entity_type, measurement))
            delivered += 1
        return delivered

    def query_entities(self, query: Optional[EntityQuery]) -> List[TemperatureEntity]:
        entities: List[TemperatureEntity] = []
        self.get_entities(query, entities.append)
        return entities

    def latest_temperatures(self, now: Optional[datetime] = None) -> List[Measurement]:
        """Return the most recent measurement per device reported in the last six hours."""
        current = now or datetime.now(timezone.utc)
        recent = self.store.query(time_from=current - LATEST_WINDOW, time_to=current)

        latest: Dict[str, Measurement] = {}
        for measurement in recent:
            latest[measurement.device] = measurement
        return sorted(latest.values(), key=lambda item: item.device)

    @staticmethod
    def provides_type(type_name: str) -> bool:
        return type_name in PROVIDED_TYPES

    @staticmethod
    def provides_attribute(attribute_name: str) -> bool:
        return attribute_name == TEMPERATURE_ATTRIBUTE

    @staticmethod
    def provides_entities_with_matching_id(entity_id: str) -> bool:
        return any(entity_id.startswith(f"urn:ngsi-ld:{type_name}:") for type_name in PROVIDED_TYPES)
