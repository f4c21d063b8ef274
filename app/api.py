"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    HealthResponse,
    HourlySensorReadingsResponse,
    LastSensorReadingsResponse,
    SensorOut,
    SensorReadingsResponse,
    SensorsResponse,
    SensorUpdate,
)
from errors import DataAccessError, InvalidRequestError, SensorNotFoundError
from datastore.partitions import MAX_EPOCH_SECONDS, MIN_EPOCH_SECONDS
from services.query import QueryEngine, build_default_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/data-access/v1")
health_router = APIRouter()


def get_engine() -> QueryEngine:
    return build_default_engine()


@router.get(
    "/sensor/{sensor_id}",
    response_model=SensorOut,
    response_model_exclude_none=True,
    summary="Fetch a sensor's metadata.",
)
def get_sensor(
    sensor_id: str,
    engine: QueryEngine = Depends(get_engine),
) -> SensorOut:
    try:
        return engine.sensor(sensor_id)
    except SensorNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.put(
    "/sensor/{sensor_id}",
    response_model=SensorOut,
    response_model_exclude_none=True,
    summary="Apply a partial update to a sensor.",
)
def update_sensor(
    sensor_id: str,
    update: SensorUpdate,
    engine: QueryEngine = Depends(get_engine),
) -> SensorOut:
    try:
        return engine.update_sensor(sensor_id, update.changes())
    except SensorNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/sensors/account/{account_id}",
    response_model=SensorsResponse,
    response_model_exclude_none=True,
    summary="List the sensors registered to an account.",
)
def get_sensors_for_account(
    account_id: str,
    state: Optional[str] = Query(default=None, description="Only sensors in this state."),
    engine: QueryEngine = Depends(get_engine),
) -> SensorsResponse:
    return engine.sensors_for_account(account_id, state=state)


@router.get(
    "/sensor_readings",
    response_model=SensorReadingsResponse,
    summary="Raw readings for a sensor, oldest first.",
)
def get_sensor_readings(
    account_id: str = Query(..., min_length=1),
    sensor_id: str = Query(..., min_length=1),
    start_time: Optional[int] = Query(
        default=None,
        ge=MIN_EPOCH_SECONDS,
        le=MAX_EPOCH_SECONDS,
        description="Epoch seconds, inclusive.",
    ),
    end_time: Optional[int] = Query(
        default=None,
        ge=MIN_EPOCH_SECONDS,
        le=MAX_EPOCH_SECONDS,
        description="Epoch seconds, inclusive.",
    ),
    engine: QueryEngine = Depends(get_engine),
) -> SensorReadingsResponse:
    try:
        return engine.sensor_readings(account_id, sensor_id, start_time, end_time)
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/hourly_sensor_readings",
    response_model=HourlySensorReadingsResponse,
    summary="Hourly min/max rollups for a sensor, oldest first.",
)
def get_hourly_sensor_readings(
    account_id: str = Query(..., min_length=1),
    sensor_id: str = Query(..., min_length=1),
    start_time: Optional[int] = Query(
        default=None,
        ge=MIN_EPOCH_SECONDS,
        le=MAX_EPOCH_SECONDS,
        description="Epoch seconds, inclusive.",
    ),
    end_time: Optional[int] = Query(
        default=None,
        ge=MIN_EPOCH_SECONDS,
        le=MAX_EPOCH_SECONDS,
        description="Epoch seconds, inclusive.",
    ),
    engine: QueryEngine = Depends(get_engine),
) -> HourlySensorReadingsResponse:
    try:
        return engine.hourly_sensor_readings(account_id, sensor_id, start_time, end_time)
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/last_sensor_readings/account/{account_id}",
    response_model=LastSensorReadingsResponse,
    summary="Most recent reading of every sensor of an account.",
)
def get_last_sensor_readings(
    account_id: str,
    state: Optional[str] = Query(default=None, description="Only sensors in this state."),
    engine: QueryEngine = Depends(get_engine),
) -> LastSensorReadingsResponse:
    return engine.last_sensor_readings(account_id, state=state)


@health_router.get(
    "/healthcheck",
    response_model=HealthResponse,
    summary="Health check endpoint; verifies the sensors table is reachable.",
)
def healthcheck(engine: QueryEngine = Depends(get_engine)) -> HealthResponse:
    try:
        return engine.healthcheck()
    except DataAccessError as exc:
        logger.error("Healthcheck failed", extra={"reason": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Unable to reach sensors table: {exc}",
        ) from exc
