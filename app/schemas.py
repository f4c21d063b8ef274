"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import (
    HourlyRollup,
    LatestReading,
    Measurement,
    MinMaxMeasurement,
    Reading,
    Sensor,
)


def _utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class MeasurementOut(BaseModel):
    name: str
    value: float
    unit: str

    @classmethod
    def from_domain(cls, measurement: Measurement) -> "MeasurementOut":
        return cls(name=measurement.name, value=measurement.value, unit=measurement.unit)


class MinMaxMeasurementOut(BaseModel):
    name: str
    min: MeasurementOut
    max: MeasurementOut

    @classmethod
    def from_domain(cls, measurement: MinMaxMeasurement) -> "MinMaxMeasurementOut":
        return cls(
            name=measurement.name,
            min=MeasurementOut.from_domain(measurement.min),
            max=MeasurementOut.from_domain(measurement.max),
        )


class SensorOut(BaseModel):
    """Sensor metadata; coordinates are omitted when the sensor has none."""

    id: str
    account_id: str
    name: str
    state: str
    location_enabled: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sample_frequency: int

    @classmethod
    def from_domain(cls, sensor: Sensor) -> "SensorOut":
        return cls(
            id=sensor.id,
            account_id=sensor.account_id,
            name=sensor.name,
            state=sensor.state,
            location_enabled=sensor.location_enabled,
            latitude=sensor.latitude,
            longitude=sensor.longitude,
            sample_frequency=sensor.sample_frequency,
        )


class SensorsResponse(BaseModel):
    sensors: List[SensorOut] = Field(default_factory=list)


class SensorUpdate(BaseModel):
    """Partial sensor update; fields left out of the payload are not touched."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    state: Optional[str] = Field(default=None, min_length=1)
    location_enabled: Optional[bool] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    sample_frequency: Optional[int] = Field(default=None, ge=1)

    def changes(self) -> Dict[str, object]:
        return self.model_dump(exclude_unset=True)


class ReadingOut(BaseModel):
    timestamp: datetime
    measurements: List[MeasurementOut]

    @classmethod
    def from_domain(cls, reading: Reading) -> "ReadingOut":
        return cls(
            timestamp=_utc(reading.timestamp),
            measurements=[MeasurementOut.from_domain(item) for item in reading.measurements],
        )


class SensorReadingsResponse(BaseModel):
    account_id: str
    sensor_id: str
    readings: List[ReadingOut] = Field(default_factory=list)


class HourlyReadingOut(BaseModel):
    timestamp: datetime = Field(..., description="Start of the hour bucket.")
    measurements: List[MinMaxMeasurementOut]

    @classmethod
    def from_domain(cls, rollup: HourlyRollup) -> "HourlyReadingOut":
        return cls(
            timestamp=_utc(rollup.timestamp),
            measurements=[MinMaxMeasurementOut.from_domain(item) for item in rollup.measurements],
        )


class HourlySensorReadingsResponse(BaseModel):
    account_id: str
    sensor_id: str
    readings: List[HourlyReadingOut] = Field(default_factory=list)


class LatestReadingOut(BaseModel):
    sensor_id: str
    account_id: str
    name: str
    state: str
    timestamp: Optional[datetime] = None
    measurements: List[MeasurementOut] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, latest: LatestReading) -> "LatestReadingOut":
        reading = latest.reading
        return cls(
            sensor_id=latest.sensor.id,
            account_id=latest.sensor.account_id,
            name=latest.sensor.name,
            state=latest.sensor.state,
            timestamp=_utc(reading.timestamp) if reading is not None else None,
            measurements=[MeasurementOut.from_domain(item) for item in reading.measurements]
            if reading is not None
            else [],
        )


class LastSensorReadingsResponse(BaseModel):
    """Latest reading per sensor, keyed by sensor id."""

    sensors: Dict[str, LatestReadingOut] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    table: str
