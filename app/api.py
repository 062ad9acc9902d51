"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from app.query_params import parse_entity_query
from app.schemas import HealthResponse, LatestTemperature
from errors import StoreError, UnsupportedRelationError, ValidationError
from services.temperature_service import TemperatureService, build_default_service

logger = logging.getLogger(__name__)

router = APIRouter()

LD_JSON = "application/ld+json"


def get_service() -> TemperatureService:
    return build_default_service()


@router.get(
    "/ngsi-ld/v1/entities",
    summary="Query air and water temperature observations as NGSI-LD entities.",
)
async def query_entities(
    type: Optional[str] = Query(None, description="Comma separated entity types."),
    attrs: Optional[str] = Query(None, description="Comma separated attribute names."),
    q: Optional[str] = Query(None, description='Device filter, e.g. refDevice=="urn:ngsi-ld:Device:x".'),
    georel: Optional[str] = Query(None, description="near;maxDistance==<m> or within."),
    geometry: Optional[str] = Query(None),
    coordinates: Optional[str] = Query(None, description="GeoJSON coordinates."),
    timerel: Optional[str] = Query(None, description="before, after or between."),
    time_at: Optional[str] = Query(None, alias="timeAt"),
    end_time_at: Optional[str] = Query(None, alias="endTimeAt"),
    limit: int = Query(0, ge=0, description="Maximum number of rows, 0 for no cap."),
    service: TemperatureService = Depends(get_service),
) -> JSONResponse:
    try:
        query = parse_entity_query(
            types=type,
            attrs=attrs,
            q=q,
            georel=georel,
            geometry=geometry,
            coordinates=coordinates,
            timerel=timerel,
            time_at=time_at,
            end_time_at=end_time_at,
            limit=limit,
        )
        entities = service.context_source.query_entities(query)
    except (ValidationError, UnsupportedRelationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    logger.debug("Answered entity query", extra={"entity_count": len(entities)})
    payload = [entity.model_dump(mode="json", by_alias=True, exclude_none=True) for entity in entities]
    return JSONResponse(content=payload, media_type=LD_JSON)


@router.get(
    "/api/temperatures",
    response_model=List[LatestTemperature],
    summary="Latest reading per device from the last six hours.",
)
async def latest_temperatures(
    service: TemperatureService = Depends(get_service),
) -> List[LatestTemperature]:
    try:
        measurements = service.context_source.latest_temperatures()
    except StoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return [
        LatestTemperature(
            device=measurement.device,
            latitude=measurement.latitude,
            longitude=measurement.longitude,
            temperature=measurement.temperature,
            water=measurement.is_water,
            when=measurement.timestamp,
        )
        for measurement in measurements
    ]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint with ingestion counters.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(
    service: TemperatureService = Depends(get_service),
) -> HealthResponse:
    return HealthResponse.model_validate(service.health())


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
