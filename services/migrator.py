"""One-shot migration of legacy measurements into the current layout."""

from __future__ import annotations

from dataclasses import dataclass

from datastore.base import MeasurementStore
from errors import ConflictError

DEFAULT_BATCH_SIZE = 100


@dataclass
class MigrationSummary:
    migrated: int = 0
    discarded: int = 0

    @property
    def total(self) -> int:
        return self.migrated + self.discarded


def migrate(store: MeasurementStore, batch_size: int = DEFAULT_BATCH_SIZE) -> MigrationSummary:
    """Move every legacy record into the current layout.

    A record whose (device, timestamp) already exists in the current layout is
    discarded. Either way the legacy row is deleted once its insert attempt has
    completed, so an interrupted run resumes where it stopped. Any other error
    propagates and leaves the remaining legacy rows in place.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive.")

    summary = MigrationSummary()
    while True:
        batch = store.fetch_legacy(batch_size)
        if not batch:
            return summary

        for record in batch:
            try:
                store.insert(
                    record.device,
                    record.latitude,
                    record.longitude,
                    record.temperature,
                    record.is_water,
                    record.timestamp.isoformat(),
                )
            except ConflictError:
                summary.discarded += 1
            else:
                summary.migrated += 1
            store.delete_legacy(record.id)
