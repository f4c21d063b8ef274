"""Conversion between domain records and the flat items stored in tables.

Measurements are kept as a JSON-encoded string attribute so that the item
layout matches what provisioning scripts and older writers produce. The JSON
is validated on the way in and on the way out.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from datastore.backend import Item
from errors import CorruptRecordError, InvalidRequestError
from models.records import (
    HourlyRollup,
    Measurement,
    MinMaxMeasurement,
    Reading,
    Sensor,
)


class MeasurementItem(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    name: str = Field(..., min_length=1)
    value: float
    unit: str = ""

    def to_domain(self) -> Measurement:
        return Measurement(name=self.name, value=self.value, unit=self.unit)


class MinMaxMeasurementItem(BaseModel):
    name: str = Field(..., min_length=1)
    min: MeasurementItem
    max: MeasurementItem

    def to_domain(self) -> MinMaxMeasurement:
        return MinMaxMeasurement(name=self.name, min=self.min.to_domain(), max=self.max.to_domain())


_measurements = TypeAdapter(List[MeasurementItem])
_min_max_measurements = TypeAdapter(List[MinMaxMeasurementItem])

MeasurementInput = Union[Measurement, Mapping[str, Any]]


def _measurement_dict(measurement: Measurement) -> dict:
    return {"name": measurement.name, "value": measurement.value, "unit": measurement.unit}


def validate_measurements(measurements: Iterable[MeasurementInput]) -> List[Measurement]:
    """Validate caller-supplied measurements, raising ``InvalidRequestError``."""
    payload = [
        _measurement_dict(item) if isinstance(item, Measurement) else dict(item)
        for item in measurements
    ]
    if not payload:
        raise InvalidRequestError("A reading needs at least one measurement.")
    try:
        return [item.to_domain() for item in _measurements.validate_python(payload)]
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid measurements: {exc}") from exc


def validate_min_max_measurements(
    measurements: Iterable[Union[MinMaxMeasurement, Mapping[str, Any]]],
) -> List[MinMaxMeasurement]:
    payload = [
        {
            "name": item.name,
            "min": _measurement_dict(item.min),
            "max": _measurement_dict(item.max),
        }
        if isinstance(item, MinMaxMeasurement)
        else dict(item)
        for item in measurements
    ]
    if not payload:
        raise InvalidRequestError("An hourly rollup needs at least one measurement.")
    try:
        return [item.to_domain() for item in _min_max_measurements.validate_python(payload)]
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid hourly measurements: {exc}") from exc


def encode_measurements(measurements: Iterable[Measurement]) -> str:
    return json.dumps([_measurement_dict(item) for item in measurements])


def encode_min_max_measurements(measurements: Iterable[MinMaxMeasurement]) -> str:
    return json.dumps(
        [
            {
                "name": item.name,
                "min": _measurement_dict(item.min),
                "max": _measurement_dict(item.max),
            }
            for item in measurements
        ]
    )


def _decode(adapter: TypeAdapter, raw: Any, table: str) -> list:
    try:
        if isinstance(raw, (str, bytes)):
            return adapter.validate_json(raw)
        return adapter.validate_python(raw or [])
    except ValidationError as exc:
        raise CorruptRecordError(table, f"invalid measurements: {exc.error_count()} error(s)") from exc


def decode_measurements(raw: Any, table: str = "?") -> List[Measurement]:
    return [item.to_domain() for item in _decode(_measurements, raw, table)]


def decode_min_max_measurements(raw: Any, table: str = "?") -> List[MinMaxMeasurement]:
    return [item.to_domain() for item in _decode(_min_max_measurements, raw, table)]


def _split_key(item: Mapping[str, Any], table: str) -> tuple[str, str]:
    account_id = item.get("account_id")
    sensor_id = item.get("sensor_id")
    if account_id is not None and sensor_id is not None:
        return str(account_id), str(sensor_id)
    key = str(item.get("id", ""))
    account_part, separator, sensor_part = key.partition(":")
    if not separator:
        raise CorruptRecordError(table, f"unexpected key {key!r}")
    return account_part, sensor_part


def _timestamp(item: Mapping[str, Any], table: str) -> int:
    try:
        return int(item["timestamp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise CorruptRecordError(table, "missing or invalid timestamp") from exc


def reading_to_item(reading: Reading) -> Item:
    return {
        "id": reading.key,
        "timestamp": reading.timestamp,
        "account_id": reading.account_id,
        "sensor_id": reading.sensor_id,
        "measurements": encode_measurements(reading.measurements),
    }


def reading_from_item(item: Mapping[str, Any], table: str = "?") -> Reading:
    account_id, sensor_id = _split_key(item, table)
    return Reading(
        account_id=account_id,
        sensor_id=sensor_id,
        timestamp=_timestamp(item, table),
        measurements=decode_measurements(item.get("measurements"), table),
    )


def rollup_to_item(rollup: HourlyRollup) -> Item:
    return {
        "id": rollup.key,
        "timestamp": rollup.timestamp,
        "account_id": rollup.account_id,
        "sensor_id": rollup.sensor_id,
        "measurements": encode_min_max_measurements(rollup.measurements),
    }


def rollup_from_item(item: Mapping[str, Any], table: str = "?") -> HourlyRollup:
    account_id, sensor_id = _split_key(item, table)
    return HourlyRollup(
        account_id=account_id,
        sensor_id=sensor_id,
        timestamp=_timestamp(item, table),
        measurements=decode_min_max_measurements(item.get("measurements"), table),
    )


def sensor_to_item(sensor: Sensor) -> Item:
    item: Item = {
        "id": sensor.id,
        "account_id": sensor.account_id,
        "name": sensor.name,
        "state": sensor.state,
        "location_enabled": sensor.location_enabled,
        "sample_frequency": sensor.sample_frequency,
    }
    if sensor.latitude is not None and sensor.longitude is not None:
        item["latitude"] = sensor.latitude
        item["longitude"] = sensor.longitude
    return item


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def sensor_from_item(item: Mapping[str, Any], table: str = "sensors") -> Sensor:
    try:
        latitude = _optional_float(item.get("latitude"))
        longitude = _optional_float(item.get("longitude"))
        if latitude is None or longitude is None:
            latitude = longitude = None
        sample_frequency = item.get("sample_frequency")
        return Sensor(
            id=str(item["id"]),
            account_id=str(item["account_id"]),
            name=str(item.get("name", "")),
            state=str(item.get("state", "")),
            location_enabled=bool(item.get("location_enabled", False)),
            latitude=latitude,
            longitude=longitude,
            sample_frequency=int(sample_frequency) if sample_frequency is not None else 1,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CorruptRecordError(table, f"invalid sensor record: {exc}") from exc