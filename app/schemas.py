"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

NGSI_LD_CORE_CONTEXT = "https://uri.etsi.org/ngsi-ld/v1/ngsi-ld-core-context.jsonld"


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2)


class GeoProperty(BaseModel):
    type: Literal["GeoProperty"] = "GeoProperty"
    value: GeoPoint


class NumberProperty(BaseModel):
    type: Literal["Property"] = "Property"
    value: float


class DateTimeValue(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["DateTime"] = Field(default="DateTime", alias="@type")
    value: str = Field(..., alias="@value")


class DateTimeProperty(BaseModel):
    type: Literal["Property"] = "Property"
    value: DateTimeValue


class Relationship(BaseModel):
    type: Literal["Relationship"] = "Relationship"
    object: str


class TemperatureEntity(BaseModel):
    """NGSI-LD representation of an air or water temperature observation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    location: GeoProperty
    date_observed: DateTimeProperty = Field(..., alias="dateObserved")
    temperature: NumberProperty
    ref_device: Optional[Relationship] = Field(default=None, alias="refDevice")
    context: List[str] = Field(
        default_factory=lambda: [NGSI_LD_CORE_CONTEXT], alias="@context"
    )


class LatestTemperature(BaseModel):
    """Most recent reading reported by a device."""

    device: str
    latitude: float
    longitude: float
    temperature: float
    water: bool
    when: datetime


class IngestionCounters(BaseModel):
    received: int = Field(0, ge=0)
    stored: int = Field(0, ge=0)
    duplicate: int = Field(0, ge=0)
    rejected: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)


class HealthResponse(BaseModel):
    status: str
    ingestion: IngestionCounters
    migration: Dict[str, int] = Field(default_factory=dict)
