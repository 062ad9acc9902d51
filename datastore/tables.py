"""SQLAlchemy table definitions for the current and legacy measurement layouts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

LEGACY_EPOCH = datetime(1970, 1, 1, 12, 0, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone aware column that always round-trips as UTC.

    SQLite has no timezone support, so values are bound as naive UTC there.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class TemperatureRow(Base):
    __tablename__ = "temperatures_v2"
    __table_args__ = (
        UniqueConstraint("device", "timestamp", name="uq_temperatures_v2_device_timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    # NULL for unknown devices so the unique constraint does not apply to them.
    device: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    is_water: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<TemperatureRow {self.device} @ {self.timestamp} temp={self.temperature}>"


class LegacyTemperatureRow(Base):
    __tablename__ = "temperatures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True), default=_utcnow)
    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    device: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    temperature: Mapped[float] = mapped_column("temp", Float, nullable=False, default=0.0)
    is_water: Mapped[bool] = mapped_column("water", Boolean, nullable=False, default=False)
    timestamp_text: Mapped[Optional[str]] = mapped_column("timestamp", String(64), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        "timestamp2", UTCDateTime(timezone=True), nullable=False, default=LEGACY_EPOCH
    )
