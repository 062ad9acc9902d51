"""Wire format of inbound temperature telemetry and commands."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

STORE_TEMPERATURE_UPDATE_TYPE = "application/vnd-diwise-storetemperatureupdate+json"
STORE_WATER_TEMPERATURE_UPDATE_TYPE = "application/vnd-diwise-storewatertemperatureupdate+json"


class Origin(BaseModel):
    model_config = ConfigDict(extra="ignore")

    device: Optional[str] = None
    latitude: float = 0.0
    longitude: float = 0.0


class TemperatureMessage(BaseModel):
    """Payload shared by telemetry messages and store commands."""

    model_config = ConfigDict(extra="ignore")

    origin: Origin = Field(default_factory=Origin)
    temp: float
    timestamp: Optional[str] = None
