from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

import pytest

from datastore.memory import InMemoryMeasurementStore
from errors import StoreError
from messaging.schemas import STORE_TEMPERATURE_UPDATE_TYPE, STORE_WATER_TEMPERATURE_UPDATE_TYPE
from services.ingestion import IngestOutcome, IngestionStats, TemperatureIngestor


def _payload(temp: float = 12.749, timestamp: str | None = "2024-05-01T12:00:00Z", device: str | None = "mydevice") -> bytes:
    origin = {"latitude": 64.278, "longitude": 17.182}
    if device is not None:
        origin["device"] = device
    body = {"origin": origin, "temp": temp}
    if timestamp is not None:
        body["timestamp"] = timestamp
    return json.dumps(body).encode()


class RecordingStore(InMemoryMeasurementStore):
    def __init__(self) -> None:
        super().__init__()
        self.insert_calls = 0

    def insert(self, *args, **kwargs):
        self.insert_calls += 1
        return super().insert(*args, **kwargs)


class BrokenStore(InMemoryMeasurementStore):
    def insert(self, *args, **kwargs):
        raise StoreError("connection reset")


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def ingestor(store: RecordingStore) -> TemperatureIngestor:
    return TemperatureIngestor(store)


def test_temperature_message_is_stored_rounded(ingestor: TemperatureIngestor, store: RecordingStore) -> None:
    outcome = ingestor.handle_temperature(_payload())

    assert outcome is IngestOutcome.stored
    rows = store.query()
    assert len(rows) == 1
    assert rows[0].device == "mydevice"
    assert rows[0].temperature == 12.7
    assert rows[0].is_water is False
    assert rows[0].timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("handler_name", "is_water"),
    [
        ("handle_temperature", False),
        ("handle_water_temperature", True),
        ("handle_store_temperature_command", False),
        ("handle_store_water_temperature_command", True),
    ],
)
def test_each_handler_sets_water_flag(
    ingestor: TemperatureIngestor, store: RecordingStore, handler_name: str, is_water: bool
) -> None:
    outcome = getattr(ingestor, handler_name)(_payload())

    assert outcome is IngestOutcome.stored
    assert store.query()[0].is_water is is_water


def test_duplicate_message_is_logged_and_dropped(
    ingestor: TemperatureIngestor, store: RecordingStore, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="services.ingestion")

    first = ingestor.handle_water_temperature(_payload())
    second = ingestor.handle_water_temperature(_payload(temp=3.0))

    assert first is IngestOutcome.stored
    assert second is IngestOutcome.duplicate
    assert len(store.query()) == 1
    assert store.query()[0].temperature == 12.7
    assert any(record.message == "Ignored duplicate temperature message" for record in caplog.records)


@pytest.mark.parametrize(
    "body",
    [b"not json", b"{}", b'{"origin": {"device": "x"}, "temp": "warm", "timestamp": "2024-05-01T12:00:00Z"}'],
)
def test_malformed_payload_is_rejected(
    ingestor: TemperatureIngestor, store: RecordingStore, body: bytes, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR, logger="services.ingestion")

    outcome = ingestor.handle_temperature(body)

    assert outcome is IngestOutcome.rejected
    assert store.insert_calls == 0
    assert any(record.message == "Failed to unmarshal message" for record in caplog.records)


@pytest.mark.parametrize("timestamp", [None, ""])
def test_missing_timestamp_never_reaches_store(
    ingestor: TemperatureIngestor, store: RecordingStore, timestamp: str | None
) -> None:
    outcome = ingestor.handle_temperature(_payload(timestamp=timestamp))

    assert outcome is IngestOutcome.rejected
    assert store.insert_calls == 0


def test_unparseable_timestamp_is_rejected(ingestor: TemperatureIngestor, store: RecordingStore) -> None:
    outcome = ingestor.handle_temperature(_payload(timestamp="yesterday"))

    assert outcome is IngestOutcome.rejected
    assert store.query() == []


def test_messages_without_device_are_all_kept(ingestor: TemperatureIngestor, store: RecordingStore) -> None:
    ingestor.handle_temperature(_payload(device=None))
    ingestor.handle_temperature(_payload(device=None))

    rows = store.query()
    assert len(rows) == 2
    assert {row.device for row in rows} == {""}


def test_store_failure_is_reported_as_failed(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="services.ingestion")
    ingestor = TemperatureIngestor(BrokenStore())

    outcome = ingestor.handle_temperature(_payload())

    assert outcome is IngestOutcome.failed
    assert any(record.exc_info for record in caplog.records)


def test_stats_count_every_outcome(ingestor: TemperatureIngestor) -> None:
    ingestor.handle_temperature(_payload())
    ingestor.handle_temperature(_payload())
    ingestor.handle_temperature(b"[]")
    ingestor.handle_water_temperature(_payload(timestamp="2024-05-01T13:00:00Z"))

    assert ingestor.stats.snapshot() == {
        "received": 4,
        "stored": 2,
        "duplicate": 1,
        "rejected": 1,
        "failed": 0,
    }


def test_stats_can_be_shared_between_ingestors() -> None:
    stats = IngestionStats()
    TemperatureIngestor(InMemoryMeasurementStore(), stats).handle_temperature(_payload())
    TemperatureIngestor(InMemoryMeasurementStore(), stats).handle_temperature(_payload())

    assert stats.snapshot()["stored"] == 2


def test_half_tenths_in_telemetry_round_away_from_zero(ingestor: TemperatureIngestor, store: RecordingStore) -> None:
    for minute, temp in enumerate((12.25, 0.25, -0.75)):
        ingestor.handle_temperature(_payload(temp=temp, timestamp=f"2024-05-01T12:0{minute}:00Z"))

    assert [row.temperature for row in store.query()] == [12.3, 0.3, -0.8]


def test_command_content_type_selects_water_flag(ingestor: TemperatureIngestor, store: RecordingStore) -> None:
    air = ingestor.handle_command(STORE_TEMPERATURE_UPDATE_TYPE, _payload())
    water = ingestor.handle_command(
        STORE_WATER_TEMPERATURE_UPDATE_TYPE, _payload(timestamp="2024-05-01T12:05:00Z")
    )
    unknown = ingestor.handle_command("text/plain", _payload(timestamp="2024-05-01T12:10:00Z"))

    assert (air, water, unknown) == (IngestOutcome.stored, IngestOutcome.stored, IngestOutcome.rejected)
    assert [row.is_water for row in store.query()] == [False, True]
    assert ingestor.stats.snapshot()["received"] == 3
