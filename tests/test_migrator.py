from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from datastore.memory import InMemoryMeasurementStore
from datastore.sql import SqlMeasurementStore, create_store_engine
from errors import StoreError
from services.migrator import MigrationSummary, migrate

T0 = datetime(2023, 1, 1, 8, 0, tzinfo=timezone.utc)


class FailingInsertStore(InMemoryMeasurementStore):
    def insert(self, *args, **kwargs):
        raise StoreError("disk full")


def test_migrate_moves_legacy_rows_into_current_layout() -> None:
    store = InMemoryMeasurementStore()
    store.add_legacy("sensor-1", 62.0, 17.0, 3.14, True, T0)
    store.add_legacy("sensor-2", 62.1, 17.1, -2.0, False, T0 + timedelta(minutes=10))

    summary = migrate(store)

    assert summary == MigrationSummary(migrated=2, discarded=0)
    assert store.fetch_legacy(10) == []
    rows = store.query()
    assert [(row.device, row.temperature, row.is_water) for row in rows] == [
        ("sensor-1", 3.1, True),
        ("sensor-2", -2.0, False),
    ]
    assert rows[0].timestamp == T0


def test_conflicting_legacy_rows_are_discarded_and_deleted() -> None:
    store = InMemoryMeasurementStore()
    store.insert("sensor-1", 62.0, 17.0, 5.0, False, T0.isoformat())
    store.add_legacy("sensor-1", 62.0, 17.0, 4.0, False, T0)
    store.add_legacy("sensor-1", 62.0, 17.0, 4.5, False, T0 + timedelta(hours=1))

    summary = migrate(store)

    assert summary.migrated == 1
    assert summary.discarded == 1
    assert summary.total == 2
    assert store.fetch_legacy(10) == []
    assert [row.temperature for row in store.query()] == [5.0, 4.5]


def test_second_run_is_a_no_op() -> None:
    store = InMemoryMeasurementStore()
    store.add_legacy("sensor-1", 62.0, 17.0, 4.0, False, T0)
    migrate(store)

    assert migrate(store) == MigrationSummary()
    assert len(store.query()) == 1


def test_migrate_drains_multiple_batches() -> None:
    store = SqlMeasurementStore(create_store_engine("sqlite+pysqlite:///:memory:"))
    for minute in range(250):
        store.add_legacy("sensor-1", 62.0, 17.0, 1.0, False, T0 + timedelta(minutes=minute))

    summary = migrate(store, batch_size=100)

    assert summary.migrated == 250
    assert store.fetch_legacy(1) == []
    assert len(store.query()) == 250
    store.dispose()


def test_store_failure_propagates_and_keeps_legacy_rows() -> None:
    store = FailingInsertStore()
    store.add_legacy("sensor-1", 62.0, 17.0, 4.0, False, T0)

    with pytest.raises(StoreError):
        migrate(store)

    assert len(store.fetch_legacy(10)) == 1


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        migrate(InMemoryMeasurementStore(), batch_size=0)
