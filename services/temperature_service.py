"""Wiring of the store, query and ingestion components."""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Dict, Optional

from datastore.base import MeasurementStore
from datastore.sql import SqlMeasurementStore, build_default_store
from messaging.subscriber import TelemetrySubscriber
from services.context_source import ContextSource
from services.ingestion import TemperatureIngestor
from services.migrator import MigrationSummary, migrate
from services.translator import QueryTranslator
from settings import get_settings

logger = logging.getLogger(__name__)


class TemperatureService:
    """Owns the store handle and the components built on top of it."""

    def __init__(
        self,
        store: MeasurementStore,
        translator: Optional[QueryTranslator] = None,
        subscriber: Optional[TelemetrySubscriber] = None,
    ) -> None:
        self.store = store
        self.context_source = ContextSource(store, translator)
        self.ingestor = TemperatureIngestor(store)
        self.subscriber = subscriber
        self.migration = MigrationSummary()
        self._started = False

    def start(self) -> None:
        """Migrate legacy records, then begin accepting telemetry.

        Migration errors propagate so the process never serves traffic from a
        partially migrated store.
        """
        if self._started:
            return
        self.migration = migrate(self.store)
        logger.info(
            "Legacy migration complete",
            extra={"migrated": self.migration.migrated, "discarded": self.migration.discarded},
        )
        if self.subscriber is not None:
            self.subscriber.start()
        self._started = True

    def attach_subscriber(self, subscriber: TelemetrySubscriber) -> None:
        self.subscriber = subscriber

    def health(self) -> Dict[str, object]:
        return {
            "status": "ok",
            "ingestion": self.ingestor.stats.snapshot(),
            "migration": {
                "migrated": self.migration.migrated,
                "discarded": self.migration.discarded,
            },
        }

    def shutdown(self) -> None:
        """Stop telemetry intake and release database connections."""
        if self.subscriber is not None:
            self.subscriber.stop()
        if isinstance(self.store, SqlMeasurementStore):
            self.store.dispose()
        self._started = False


@lru_cache
def build_default_service() -> TemperatureService:
    """Factory that wires the service from environment settings."""
    settings = get_settings()
    store = build_default_store()
    translator = QueryTranslator(default_window=timedelta(hours=settings.default_window_hours))
    service = TemperatureService(store=store, translator=translator)
    if settings.mqtt_enabled:
        service.attach_subscriber(TelemetrySubscriber.from_settings(service.ingestor, settings))
    return service
