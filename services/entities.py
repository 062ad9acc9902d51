"""Stateless mapping of measurements onto NGSI-LD entities."""

from __future__ import annotations

from app.schemas import (
    DateTimeProperty,
    DateTimeValue,
    GeoPoint,
    GeoProperty,
    NumberProperty,
    Relationship,
    TemperatureEntity,
)
from datastore.base import round_temperature
from models.records import Measurement
from services.translator import DEVICE_ID_PREFIX


def entity_id(entity_type: str, device: str) -> str:
    return f"urn:ngsi-ld:{entity_type}:temperature:{device}"


def to_entity(entity_type: str, measurement: Measurement) -> TemperatureEntity:
    observed = measurement.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ")
    ref_device = None
    if measurement.device:
        ref_device = Relationship(object=f"{DEVICE_ID_PREFIX}{measurement.device}")

    return TemperatureEntity(
        id=entity_id(entity_type, measurement.device),
        type=entity_type,
        location=GeoProperty(
            value=GeoPoint(coordinates=[measurement.longitude, measurement.latitude])
        ),
        date_observed=DateTimeProperty(value=DateTimeValue(value=observed)),
        temperature=NumberProperty(value=round_temperature(measurement.temperature)),
        ref_device=ref_device,
    )
