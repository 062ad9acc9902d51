"""Conversion of inbound telemetry and commands into stored measurements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Dict, Union

from pydantic import ValidationError as PayloadError

from datastore.base import MeasurementStore, round_temperature
from errors import ConflictError, StoreError, ValidationError
from messaging.schemas import (
    STORE_TEMPERATURE_UPDATE_TYPE,
    STORE_WATER_TEMPERATURE_UPDATE_TYPE,
    TemperatureMessage,
)

logger = logging.getLogger(__name__)

Body = Union[bytes, str]


class IngestOutcome(str, Enum):
    """Terminal result of handling one inbound message."""

    stored = "stored"
    duplicate = "duplicate"
    rejected = "rejected"
    failed = "failed"


@dataclass
class IngestionStats:
    """Thread safe counters of ingestion outcomes."""

    received: int = 0
    counts: Dict[IngestOutcome, int] = field(
        default_factory=lambda: {outcome: 0 for outcome in IngestOutcome}
    )
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record(self, outcome: IngestOutcome) -> None:
        with self._lock:
            self.received += 1
            self.counts[outcome] += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            snapshot = {"received": self.received}
            snapshot.update({outcome.value: count for outcome, count in self.counts.items()})
            return snapshot


class TemperatureIngestor:
    """Handlers for air and water temperature telemetry and store commands.

    Handlers never raise: every message ends in an ``IngestOutcome`` and drops
    are logged, since there is no sender to reply to. Redelivery is left to the
    transport.
    """

    def __init__(self, store: MeasurementStore, stats: IngestionStats | None = None) -> None:
        self.store = store
        self.stats = stats or IngestionStats()

    def handle_temperature(self, body: Body, topic: str = "telemetry/temperature") -> IngestOutcome:
        return self._ingest(body, is_water=False, topic=topic)

    def handle_water_temperature(
        self, body: Body, topic: str = "telemetry/watertemperature"
    ) -> IngestOutcome:
        return self._ingest(body, is_water=True, topic=topic)

    def handle_store_temperature_command(
        self, body: Body, topic: str = "commands/storetemperatureupdate"
    ) -> IngestOutcome:
        return self._ingest(body, is_water=False, topic=topic)

    def handle_store_water_temperature_command(
        self, body: Body, topic: str = "commands/storewatertemperatureupdate"
    ) -> IngestOutcome:
        return self._ingest(body, is_water=True, topic=topic)

    def handle_command(self, content_type: str, body: Body, topic: str = "commands") -> IngestOutcome:
        """Route a store command by its content type."""
        if content_type == STORE_TEMPERATURE_UPDATE_TYPE:
            return self.handle_store_temperature_command(body, topic)
        if content_type == STORE_WATER_TEMPERATURE_UPDATE_TYPE:
            return self.handle_store_water_temperature_command(body, topic)

        logger.warning(
            "Ignored command with an unknown content type",
            extra={
                "topic": topic,
                "reason": content_type or "missing content type",
                "outcome": IngestOutcome.rejected.value,
            },
        )
        self.stats.record(IngestOutcome.rejected)
        return IngestOutcome.rejected

    def _ingest(self, body: Body, is_water: bool, topic: str) -> IngestOutcome:
        outcome = self._store_message(body, is_water, topic)
        self.stats.record(outcome)
        return outcome

    def _store_message(self, body: Body, is_water: bool, topic: str) -> IngestOutcome:
        logger.debug("Message received", extra={"topic": topic})

        try:
            message = TemperatureMessage.model_validate_json(body)
        except PayloadError as exc:
            logger.error(
                "Failed to unmarshal message",
                extra={"topic": topic, "reason": _first_error(exc), "outcome": IngestOutcome.rejected.value},
            )
            return IngestOutcome.rejected

        device = message.origin.device or ""
        if not message.timestamp:
            logger.warning(
                "Ignored temperature message with an empty timestamp",
                extra={"topic": topic, "device": device, "outcome": IngestOutcome.rejected.value},
            )
            return IngestOutcome.rejected

        try:
            self.store.insert(
                device,
                message.origin.latitude,
                message.origin.longitude,
                round_temperature(message.temp),
                is_water,
                message.timestamp,
            )
        except ConflictError:
            logger.info(
                "Ignored duplicate temperature message",
                extra={
                    "topic": topic,
                    "device": device,
                    "timestamp": message.timestamp,
                    "outcome": IngestOutcome.duplicate.value,
                },
            )
            return IngestOutcome.duplicate
        except ValidationError as exc:
            logger.warning(
                "Rejected temperature message",
                extra={
                    "topic": topic,
                    "device": device,
                    "reason": str(exc),
                    "outcome": IngestOutcome.rejected.value,
                },
            )
            return IngestOutcome.rejected
        except StoreError:
            logger.exception(
                "Failed to store temperature message",
                extra={"topic": topic, "device": device, "outcome": IngestOutcome.failed.value},
            )
            return IngestOutcome.failed

        return IngestOutcome.stored


def _first_error(exc: PayloadError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{location}: {first.get('msg', 'invalid')}"
