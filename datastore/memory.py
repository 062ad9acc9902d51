from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from itertools import count
from threading import Lock
from typing import Dict, List, Optional, Tuple

from datastore.base import MeasurementStore, as_utc, parse_rfc3339, round_temperature
from errors import ConflictError
from models.records import BoundingBox, LegacyMeasurement, Measurement


class InMemoryMeasurementStore(MeasurementStore):

    def __init__(self) -> None:
        self._rows: List[Measurement] = []
        self._keys: Dict[Tuple[str, datetime], int] = {}
        self._legacy: Dict[int, LegacyMeasurement] = {}
        self._ids = count(1)
        self._legacy_ids = count(1)
        self._lock = Lock()

    def insert(
        self,
        device: str,
        latitude: float,
        longitude: float,
        temperature: float,
        is_water: bool,
        timestamp_text: str,
    ) -> Measurement:
        timestamp = parse_rfc3339(timestamp_text)
        device = device or ""

        with self._lock:
            key = (device, timestamp)
            if device and key in self._keys:
                raise ConflictError(device, timestamp)

            now = datetime.now(timezone.utc)
            measurement = Measurement(
                id=next(self._ids),
                device=device,
                latitude=float(latitude),
                longitude=float(longitude),
                temperature=round_temperature(temperature),
                is_water=bool(is_water),
                timestamp=timestamp,
                created_at=now,
                updated_at=now,
            )
            self._rows.append(measurement)
            if device:
                self._keys[key] = measurement.id
            return replace(measurement)

    def query(
        self,
        device_id: Optional[str] = None,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        geo_relation: Optional[str] = None,
        rect: Optional[BoundingBox] = None,
        limit: int = 0,
    ) -> List[Measurement]:
        lower = as_utc(time_from) if time_from is not None else None
        upper = as_utc(time_to) if time_to is not None else None

        with self._lock:
            matches = [
                replace(row)
                for row in self._rows
                if (not device_id or row.device == device_id)
                and (lower is None or row.timestamp >= lower)
                and (upper is None or row.timestamp < upper)
                and (not geo_relation or rect is None or rect.contains(row.latitude, row.longitude))
            ]

        matches.sort(key=lambda row: (row.timestamp, row.id or 0))
        if limit > 0:
            return matches[:limit]
        return matches

    def add_legacy(
        self,
        device: str,
        latitude: float,
        longitude: float,
        temperature: float,
        is_water: bool,
        timestamp: datetime,
    ) -> LegacyMeasurement:
        """Seed a record in the legacy layout."""
        with self._lock:
            record = LegacyMeasurement(
                id=next(self._legacy_ids),
                device=device,
                latitude=latitude,
                longitude=longitude,
                temperature=temperature,
                is_water=is_water,
                timestamp=as_utc(timestamp),
            )
            self._legacy[record.id] = record
            return replace(record)

    def fetch_legacy(self, limit: int) -> List[LegacyMeasurement]:
        with self._lock:
            records = sorted(self._legacy.values(), key=lambda item: (item.timestamp, item.id))
            return [replace(record) for record in records[:limit]]

    def delete_legacy(self, legacy_id: int) -> None:
        with self._lock:
            self._legacy.pop(legacy_id, None)
