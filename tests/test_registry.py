from __future__ import annotations

import pytest

from errors import InvalidRequestError, SensorNotFoundError
from models.records import Location
from services.registry import SensorRegistry


def test_upsert_and_get_round_trips_location(registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "42", "active", location=(38.093455, -122.181369))

    sensor = registry.get_sensor("42")

    assert sensor.account_id == "acct"
    assert sensor.name == "Sensor 42"
    assert sensor.location_enabled is True
    assert round(sensor.latitude, 6) == 38.093455  # type: ignore[arg-type]
    assert round(sensor.longitude, 6) == -122.181369  # type: ignore[arg-type]
    assert sensor.location == Location(38.093455, -122.181369)


def test_reregistering_without_location_clears_it(registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "42", "active", location=Location(1.0, 2.0), sample_frequency=5)

    registry.upsert_sensor("acct", "42", "inactive")
    sensor = registry.get_sensor("42")

    assert sensor.location_enabled is False
    assert sensor.location is None
    assert sensor.state == "inactive"
    assert sensor.sample_frequency == 1


def test_get_missing_sensor_raises(registry: SensorRegistry) -> None:
    with pytest.raises(SensorNotFoundError) as excinfo:
        registry.get_sensor("ghost")

    assert str(excinfo.value) == "Sensor not found: ghost"


def test_list_sensors_by_account_with_state_filter(registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "s1", "active")
    registry.upsert_sensor("acct", "s2", "inactive")
    registry.upsert_sensor("other", "s3", "active")

    everything = registry.list_sensors("acct")
    active = registry.list_sensors("acct", state="active")

    assert sorted(sensor.id for sensor in everything) == ["s1", "s2"]
    assert [sensor.id for sensor in active] == ["s1"]
    assert registry.list_sensors("nobody") == []


def test_update_changes_only_supplied_fields(registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "s1", "active", location=(10.0, 20.0), name="Greenhouse")

    updated = registry.update_sensor("s1", {"name": "Garden", "sample_frequency": 60})
    stored = registry.get_sensor("s1")

    assert updated == stored
    assert stored.name == "Garden"
    assert stored.sample_frequency == 60
    assert stored.state == "active"
    assert stored.location == Location(10.0, 20.0)
    assert stored.location_enabled is True


def test_update_clearing_one_coordinate_clears_both(registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "s1", "active", location=(10.0, 20.0))

    updated = registry.update_sensor("s1", {"latitude": None})

    assert updated.latitude is None and updated.longitude is None


def test_update_rejects_unknown_fields(registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "s1", "active")

    with pytest.raises(InvalidRequestError):
        registry.update_sensor("s1", {"account_id": "stolen"})


def test_update_missing_sensor_raises(registry: SensorRegistry) -> None:
    with pytest.raises(SensorNotFoundError):
        registry.update_sensor("ghost", {"name": "x"})
