from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from datastore.memory import InMemoryMeasurementStore
from errors import ValidationError
from models.records import (
    AIR_TEMPERATURE_OBSERVED,
    WATER_TEMPERATURE_OBSERVED,
    EntityQuery,
    GeoFilter,
    TemporalRange,
)
from services.context_source import ContextSource
from services.translator import QueryTranslator

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture()
def store() -> InMemoryMeasurementStore:
    return InMemoryMeasurementStore()


@pytest.fixture()
def source(store: InMemoryMeasurementStore) -> ContextSource:
    return ContextSource(store, QueryTranslator(clock=lambda: NOW))


def test_default_window_returns_air_and_water(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    observed = NOW - timedelta(hours=1)
    store.insert("mydevice", 64.278, 17.182, 12.7, True, _iso(observed))
    store.insert("mydevice", 64.278, 17.182, 15.2, False, _iso(observed + timedelta(seconds=1)))

    entities = source.query_entities(EntityQuery(entity_attributes=frozenset({"temperature"})))

    assert [entity.type for entity in entities] == [WATER_TEMPERATURE_OBSERVED, AIR_TEMPERATURE_OBSERVED]
    assert [entity.temperature.value for entity in entities] == [12.7, 15.2]


def test_type_only_query_returns_matching_kind(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    store.insert("mydevice", 64.278, 17.182, 12.7, True, _iso(NOW - timedelta(hours=1)))
    store.insert("mydevice", 64.278, 17.182, 15.2, False, _iso(NOW - timedelta(minutes=30)))

    entities = source.query_entities(EntityQuery(entity_types=frozenset({WATER_TEMPERATURE_OBSERVED})))

    assert len(entities) == 1
    entity = entities[0]
    assert entity.id == "urn:ngsi-ld:WaterTemperatureObserved:temperature:mydevice"
    assert entity.location.value.coordinates == [17.182, 64.278]
    assert entity.ref_device is not None
    assert entity.ref_device.object == "urn:ngsi-ld:Device:mydevice"
    assert entity.date_observed.value.value == _iso(NOW - timedelta(hours=1))


def test_measurements_outside_default_window_are_excluded(
    store: InMemoryMeasurementStore, source: ContextSource
) -> None:
    store.insert("mydevice", 64.0, 17.0, 1.0, False, _iso(NOW - timedelta(days=2)))

    assert source.query_entities(EntityQuery(entity_attributes=frozenset({"temperature"}))) == []


def test_device_time_and_area_filters_are_applied(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    store.insert("mydevice", 64.278, 17.182, 12.7, True, _iso(NOW - timedelta(days=3)))
    store.insert("mydevice", 60.0, 15.0, 12.7, True, _iso(NOW - timedelta(days=3, minutes=-1)))
    store.insert("other", 64.278, 17.182, 12.7, True, _iso(NOW - timedelta(days=3, minutes=-2)))

    query = EntityQuery(
        entity_types=frozenset({WATER_TEMPERATURE_OBSERVED}),
        device_reference="urn:ngsi-ld:Device:mydevice",
        temporal_range=TemporalRange(time_from=NOW - timedelta(days=4), time_to=NOW),
        geo_filter=GeoFilter.near_point(64.278, 17.182, 500),
    )

    entities = source.query_entities(query)

    assert len(entities) == 1
    assert entities[0].location.value.coordinates == [17.182, 64.278]


def test_entity_without_device_has_no_reference(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    store.insert("", 64.0, 17.0, 1.0, False, _iso(NOW - timedelta(minutes=5)))

    entities = source.query_entities(EntityQuery(entity_types=frozenset({AIR_TEMPERATURE_OBSERVED})))

    assert entities[0].ref_device is None


def test_callback_error_stops_delivery(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    for minute in (1, 2, 3):
        store.insert("mydevice", 64.0, 17.0, float(minute), False, _iso(NOW - timedelta(minutes=minute)))
    delivered = []

    def callback(entity) -> None:
        delivered.append(entity)
        raise RuntimeError("client went away")

    with pytest.raises(RuntimeError):
        source.get_entities(EntityQuery(entity_attributes=frozenset({"temperature"})), callback)

    assert len(delivered) == 1


def test_get_entities_returns_delivered_count(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    for minute in (1, 2):
        store.insert("mydevice", 64.0, 17.0, 1.0, True, _iso(NOW - timedelta(minutes=minute)))

    count = source.get_entities(EntityQuery(entity_attributes=frozenset({"temperature"})), lambda _: None)

    assert count == 2


def test_none_query_is_rejected(source: ContextSource) -> None:
    with pytest.raises(ValidationError):
        source.get_entities(None, lambda _: None)


def test_latest_temperatures_keeps_newest_per_device(store: InMemoryMeasurementStore, source: ContextSource) -> None:
    store.insert("b", 64.0, 17.0, 1.0, False, _iso(NOW - timedelta(hours=2)))
    store.insert("b", 64.0, 17.0, 2.0, False, _iso(NOW - timedelta(hours=1)))
    store.insert("a", 64.0, 17.0, 3.0, True, _iso(NOW - timedelta(minutes=10)))
    store.insert("c", 64.0, 17.0, 4.0, False, _iso(NOW - timedelta(hours=7)))

    latest = source.latest_temperatures(now=NOW)

    assert [(row.device, row.temperature) for row in latest] == [("a", 3.0), ("b", 2.0)]


def test_capability_checks() -> None:
    assert ContextSource.provides_type(WATER_TEMPERATURE_OBSERVED)
    assert not ContextSource.provides_type("Device")
    assert ContextSource.provides_attribute("temperature")
    assert not ContextSource.provides_attribute("humidity")
    assert ContextSource.provides_entities_with_matching_id(
        "urn:ngsi-ld:AirTemperatureObserved:temperature:mydevice"
    )
    assert not ContextSource.provides_entities_with_matching_id("urn:ngsi-ld:Device:mydevice")
