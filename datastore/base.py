"""Storage capability shared by the SQL and in-memory measurement stores."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from errors import ValidationError
from models.records import BoundingBox, LegacyMeasurement, Measurement

_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 instant into an aware UTC datetime."""
    candidate = (value or "").strip()
    if not candidate:
        raise ValidationError("Timestamp is empty.")

    if candidate[-1] in "zZ":
        candidate = candidate[:-1] + "+00:00"
    candidate = _FRACTION_PATTERN.sub(r"\1", candidate)

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError(f"Failed to parse timestamp from {value!r}.") from exc

    if parsed.tzinfo is None:
        raise ValidationError(f"Timestamp {value!r} is missing a UTC offset.")

    return parsed.astimezone(timezone.utc)


def round_temperature(value: float) -> float:
    """Round to one decimal, halves away from zero."""
    value = float(value)
    return math.copysign(math.floor(abs(value) * 10 + 0.5), value) / 10


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MeasurementStore(ABC):
    """Persistence capability for temperature measurements.

    ``insert`` relies on the backing store to reject a second measurement for
    the same non-empty device and timestamp. ``fetch_legacy`` and
    ``delete_legacy`` only exist for the startup migration.
    """

    @abstractmethod
    def insert(
        self,
        device: str,
        latitude: float,
        longitude: float,
        temperature: float,
        is_water: bool,
        timestamp_text: str,
    ) -> Measurement:
        """Persist a measurement.

        Raises:
            ValidationError: ``timestamp_text`` is not an RFC 3339 instant.
            ConflictError: the (device, timestamp) pair is already stored.
            StoreError: the backing engine failed.
        """

    @abstractmethod
    def query(
        self,
        device_id: Optional[str] = None,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        geo_relation: Optional[str] = None,
        rect: Optional[BoundingBox] = None,
        limit: int = 0,
    ) -> List[Measurement]:
        """Return measurements ordered by ascending timestamp.

        Filters compose conjunctively. ``time_from`` is inclusive and
        ``time_to`` exclusive. The rectangle is only applied when a geo
        relation is given. ``limit == 0`` means no cap.
        """

    @abstractmethod
    def fetch_legacy(self, limit: int) -> List[LegacyMeasurement]:
        """Return up to ``limit`` legacy records ordered by their timestamp."""

    @abstractmethod
    def delete_legacy(self, legacy_id: int) -> None:
        """Remove a legacy record once its migration attempt has completed."""
