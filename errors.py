"""Error taxonomy shared by the store, translator and ingestion layers."""

from __future__ import annotations


class TemperatureServiceError(Exception):
    """Base class for all errors raised by the temperature service."""


class ValidationError(TemperatureServiceError, ValueError):
    """Input was rejected before any store access took place."""


class ConflictError(TemperatureServiceError):
    """A measurement with the same (device, timestamp) pair already exists."""

    def __init__(self, device: str, timestamp: object) -> None:
        super().__init__(
            f"Measurement for device {device!r} at {timestamp} already exists."
        )
        self.device = device
        self.timestamp = timestamp


class UnsupportedRelationError(TemperatureServiceError):
    """Geo relation other than near-point or within-rectangle."""

    def __init__(self, relation: str) -> None:
        super().__init__(f"Geo query relation {relation!r} is not supported.")
        self.relation = relation


class StoreError(TemperatureServiceError):
    """Connectivity or engine failure in the persistence layer."""
