from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from datastore.base import MeasurementStore, as_utc, parse_rfc3339, round_temperature
from datastore.tables import Base, LegacyTemperatureRow, TemperatureRow
from errors import ConflictError, StoreError
from models.records import BoundingBox, LegacyMeasurement, Measurement
from settings import get_settings


logger = logging.getLogger(__name__)


def create_store_engine(url: str) -> Engine:
    """Create an engine, sharing one connection for in-memory SQLite databases."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True, pool_recycle=300, future=True)
    if parsed.database in (None, "", ":memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    return create_engine(url, connect_args={"check_same_thread": False}, future=True)


def _to_measurement(row: TemperatureRow) -> Measurement:
    return Measurement(
        id=row.id,
        device=row.device or "",
        latitude=row.latitude,
        longitude=row.longitude,
        temperature=row.temperature,
        is_water=row.is_water,
        timestamp=row.timestamp,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_legacy(row: LegacyTemperatureRow) -> LegacyMeasurement:
    return LegacyMeasurement(
        id=row.id,
        device=row.device or "",
        latitude=row.latitude,
        longitude=row.longitude,
        temperature=row.temperature,
        is_water=row.is_water,
        timestamp=row.timestamp,
    )


class SqlMeasurementStore(MeasurementStore):
    """Measurement store backed by a relational engine through SQLAlchemy."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Database is unreachable: {exc.__class__.__name__}") from exc

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
        row = TemperatureRow(
            device=device or None,
            latitude=float(latitude),
            longitude=float(longitude),
            temperature=round_temperature(temperature),
            is_water=bool(is_water),
            timestamp=timestamp,
        )

        with self._sessions() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(device, timestamp) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreError("Failed to insert measurement.") from exc
            return _to_measurement(row)

    def query(
        self,
        device_id: Optional[str] = None,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        geo_relation: Optional[str] = None,
        rect: Optional[BoundingBox] = None,
        limit: int = 0,
    ) -> List[Measurement]:
        statement = select(TemperatureRow)

        if device_id:
            statement = statement.where(TemperatureRow.device == device_id)
        if time_from is not None:
            statement = statement.where(TemperatureRow.timestamp >= as_utc(time_from))
        if time_to is not None:
            statement = statement.where(TemperatureRow.timestamp < as_utc(time_to))
        if geo_relation and rect is not None:
            statement = statement.where(
                TemperatureRow.latitude >= rect.min_lat,
                TemperatureRow.latitude <= rect.max_lat,
                TemperatureRow.longitude >= rect.min_lon,
                TemperatureRow.longitude <= rect.max_lon,
            )

        statement = statement.order_by(TemperatureRow.timestamp, TemperatureRow.id)
        if limit > 0:
            statement = statement.limit(limit)

        try:
            with self._sessions() as session:
                return [_to_measurement(row) for row in session.scalars(statement)]
        except SQLAlchemyError as exc:
            raise StoreError("Failed to query measurements.") from exc

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
        row = LegacyTemperatureRow(
            device=device or None,
            latitude=latitude,
            longitude=longitude,
            temperature=temperature,
            is_water=is_water,
            timestamp_text=as_utc(timestamp).isoformat(),
            timestamp=timestamp,
        )
        try:
            with self._sessions.begin() as session:
                session.add(row)
                session.flush()
                return _to_legacy(row)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to insert legacy measurement.") from exc

    def fetch_legacy(self, limit: int) -> List[LegacyMeasurement]:
        statement = (
            select(LegacyTemperatureRow)
            .order_by(LegacyTemperatureRow.timestamp, LegacyTemperatureRow.id)
            .limit(limit)
        )
        try:
            with self._sessions() as session:
                return [_to_legacy(row) for row in session.scalars(statement)]
        except SQLAlchemyError as exc:
            raise StoreError("Failed to read legacy measurements.") from exc

    def delete_legacy(self, legacy_id: int) -> None:
        try:
            with self._sessions.begin() as session:
                row = session.get(LegacyTemperatureRow, legacy_id)
                if row is not None:
                    session.delete(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to delete legacy measurement {legacy_id}.") from exc

    def dispose(self) -> None:
        self.engine.dispose()


@lru_cache
def build_default_store(url: Optional[str] = None) -> SqlMeasurementStore:
    """Factory that connects to the configured database."""
    settings = get_settings()
    database_url = settings.database_url if url is None else url
    logger.info("Connecting to database %s on host %s", settings.db_name, settings.db_host)
    return SqlMeasurementStore(create_store_engine(database_url))
