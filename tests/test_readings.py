from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from datastore.partitions import to_epoch
from errors import InvalidRequestError, PartitionNotProvisionedError
from models.records import Measurement
from services.readings import ReadingStore
from services.registry import SensorRegistry

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def _temperature(value: float) -> list:
    return [Measurement(name="temperature", value=value, unit="Celsius")]


def test_readings_in_different_months_are_merged_ascending(reading_store: ReadingStore) -> None:
    april = datetime(2024, 4, 30, 23, 30, tzinfo=timezone.utc)
    may = datetime(2024, 5, 1, 0, 15, tzinfo=timezone.utc)
    reading_store.record_reading("acct", "s1", _temperature(2.0), may)
    reading_store.record_reading("acct", "s1", _temperature(1.0), april)

    readings = reading_store.query_readings("acct", "s1", april, may)

    assert [reading.timestamp for reading in readings] == [to_epoch(april), to_epoch(may)]
    assert [reading.measurements[0].value for reading in readings] == [1.0, 2.0]


def test_recent_readings_come_back_most_recent_last(reading_store: ReadingStore) -> None:
    yesterday = NOW - timedelta(days=1)
    reading_store.record_reading("acct", "s1", _temperature(20.0), NOW)
    reading_store.record_reading("acct", "s1", _temperature(19.0), yesterday)

    readings = reading_store.query_readings("acct", "s1", start_time=yesterday)

    assert [reading.timestamp for reading in readings] == [to_epoch(yesterday), to_epoch(NOW)]


def test_unbounded_query_returns_current_month_only(reading_store: ReadingStore) -> None:
    reading_store.record_reading("acct", "s1", _temperature(1.0), datetime(2024, 4, 10, tzinfo=timezone.utc))
    reading_store.record_reading("acct", "s1", _temperature(2.0), datetime(2024, 5, 2, tzinfo=timezone.utc))

    readings = reading_store.query_readings("acct", "s1")

    assert [reading.measurements[0].value for reading in readings] == [2.0]


def test_end_only_query_starts_at_beginning_of_end_month(reading_store: ReadingStore) -> None:
    reading_store.record_reading("acct", "s1", _temperature(1.0), datetime(2024, 4, 28, tzinfo=timezone.utc))
    reading_store.record_reading("acct", "s1", _temperature(2.0), datetime(2024, 5, 2, tzinfo=timezone.utc))
    reading_store.record_reading("acct", "s1", _temperature(3.0), datetime(2024, 5, 9, tzinfo=timezone.utc))

    readings = reading_store.query_readings("acct", "s1", end_time=datetime(2024, 5, 5, tzinfo=timezone.utc))

    assert [reading.measurements[0].value for reading in readings] == [2.0]


def test_range_over_missing_partition_is_empty_not_an_error(reading_store: ReadingStore) -> None:
    # January 2024 was never provisioned
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    reading_store.record_reading("acct", "s1", _temperature(5.0), datetime(2024, 3, 5, tzinfo=timezone.utc))

    readings = reading_store.query_readings("acct", "s1", start, datetime(2024, 3, 31, tzinfo=timezone.utc))

    assert [reading.measurements[0].value for reading in readings] == [5.0]


def test_start_after_end_is_rejected(reading_store: ReadingStore) -> None:
    with pytest.raises(InvalidRequestError):
        reading_store.query_readings("acct", "s1", NOW, NOW - timedelta(seconds=1))


def test_range_spanning_too_many_months_is_rejected(reading_store: ReadingStore) -> None:
    with pytest.raises(InvalidRequestError):
        reading_store.query_readings("acct", "s1", datetime(2022, 1, 1, tzinfo=timezone.utc), NOW)


def test_writing_into_unprovisioned_month_fails(reading_store: ReadingStore, backend) -> None:
    with pytest.raises(PartitionNotProvisionedError) as excinfo:
        reading_store.record_reading(
            "acct", "s1", _temperature(1.0), datetime(2023, 6, 1, tzinfo=timezone.utc)
        )

    assert excinfo.value.table == "sensor_readings_2023-06"
    assert "sensor_readings_2023-06" not in backend.list_tables()


def test_invalid_measurements_are_rejected(reading_store: ReadingStore) -> None:
    with pytest.raises(InvalidRequestError):
        reading_store.record_reading("acct", "s1", [], NOW)


def test_readings_in_hour_covers_one_bucket(reading_store: ReadingStore) -> None:
    hour = datetime(2024, 5, 15, 11, 0, tzinfo=timezone.utc)
    for offset in (-1, 0, 1800, 3599, 3600):
        reading_store.record_reading("acct", "s1", _temperature(float(offset)), hour + timedelta(seconds=offset))

    readings = reading_store.readings_in_hour("acct", "s1", hour + timedelta(minutes=42))

    assert [reading.measurements[0].value for reading in readings] == [0.0, 1800.0, 3599.0]


def test_latest_readings_per_sensor(reading_store: ReadingStore, registry: SensorRegistry) -> None:
    registry.upsert_sensor("acct", "s1", "active")
    registry.upsert_sensor("acct", "s2", "active")
    registry.upsert_sensor("acct", "s3", "inactive")
    reading_store.record_reading("acct", "s1", _temperature(1.0), NOW - timedelta(hours=2))
    reading_store.record_reading("acct", "s1", _temperature(2.0), NOW - timedelta(hours=1))

    latest = {entry.sensor.id: entry for entry in reading_store.latest_readings("acct")}
    active = reading_store.latest_readings("acct", state="active")

    assert set(latest) == {"s1", "s2", "s3"}
    assert latest["s1"].reading is not None
    assert latest["s1"].reading.measurements[0].value == 2.0
    assert latest["s2"].reading is None
    assert sorted(entry.sensor.id for entry in active) == ["s1", "s2"]


def test_latest_readings_when_current_partition_missing(
    reading_store: ReadingStore, registry: SensorRegistry, backend
) -> None:
    registry.upsert_sensor("acct", "s1", "active")
    backend.delete_table("sensor_readings_2024-05")

    latest = reading_store.latest_readings("acct")

    assert len(latest) == 1
    assert latest[0].reading is None
