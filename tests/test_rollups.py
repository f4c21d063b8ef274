from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from datastore.mock_dynamodb import MockDynamoDB
from datastore.partitions import PartitionScheme, resolve_timezone, to_epoch
from errors import PartitionNotProvisionedError
from models.records import Measurement, MinMaxMeasurement
from services.fanout import PartitionFanout
from services.provisioning import Provisioner
from services.readings import ReadingStore
from services.rollups import HourlyRollupStore


def _min_max(name: str, low: float, high: float, unit: str = "Celsius") -> MinMaxMeasurement:
    return MinMaxMeasurement(
        name=name,
        min=Measurement(name=name, value=low, unit=unit),
        max=Measurement(name=name, value=high, unit=unit),
    )


def test_record_hourly_floors_timestamp(rollup_store: HourlyRollupStore) -> None:
    moment = datetime(2024, 5, 15, 9, 47, 12, tzinfo=timezone.utc)

    rollup = rollup_store.record_hourly("acct", "s1", [_min_max("temperature", 10.0, 14.0)], moment)

    assert rollup.timestamp == to_epoch(datetime(2024, 5, 15, 9, 0, tzinfo=timezone.utc))
    stored = rollup_store.query_hourly("acct", "s1")
    assert [item.timestamp for item in stored] == [rollup.timestamp]


def test_record_hourly_is_an_upsert_per_hour(rollup_store: HourlyRollupStore) -> None:
    hour = datetime(2024, 5, 15, 9, 0, tzinfo=timezone.utc)
    rollup_store.record_hourly("acct", "s1", [_min_max("temperature", 10.0, 14.0)], hour)
    rollup_store.record_hourly(
        "acct", "s1", [_min_max("temperature", 9.0, 15.0)], hour + timedelta(minutes=30)
    )

    stored = rollup_store.query_hourly("acct", "s1")

    assert len(stored) == 1
    assert stored[0].measurements[0].min.value == 9.0
    assert stored[0].measurements[0].max.value == 15.0


def test_hour_at_month_end_lands_in_that_months_table(rollup_store: HourlyRollupStore, backend) -> None:
    moment = datetime(2024, 4, 30, 23, 59, 59, tzinfo=timezone.utc)

    rollup_store.record_hourly("acct", "s1", [_min_max("humidity", 40.0, 41.0, "%")], moment)

    items = backend.scan("hourly_sensor_readings_2024-04", "acct:s1")
    assert [item["timestamp"] for item in items] == [
        to_epoch(datetime(2024, 4, 30, 23, 0, tzinfo=timezone.utc))
    ]


def test_record_hourly_accepts_mappings(rollup_store: HourlyRollupStore) -> None:
    payload = {
        "name": "soil_moisture",
        "min": {"name": "soil_moisture", "value": 0.2, "unit": "VWC"},
        "max": {"name": "soil_moisture", "value": 0.25, "unit": "VWC"},
    }

    rollup = rollup_store.record_hourly("acct", "s1", [payload], datetime(2024, 5, 2, tzinfo=timezone.utc))

    assert rollup.measurements == [_min_max("soil_moisture", 0.2, 0.25, "VWC")]


def test_record_hourly_into_missing_partition(rollup_store: HourlyRollupStore) -> None:
    with pytest.raises(PartitionNotProvisionedError):
        rollup_store.record_hourly(
            "acct", "s1", [_min_max("temperature", 1.0, 2.0)], datetime(2022, 1, 1, tzinfo=timezone.utc)
        )


def test_query_hourly_spans_months(rollup_store: HourlyRollupStore) -> None:
    march = datetime(2024, 3, 31, 22, 0, tzinfo=timezone.utc)
    may = datetime(2024, 5, 1, 3, 0, tzinfo=timezone.utc)
    rollup_store.record_hourly("acct", "s1", [_min_max("temperature", 1.0, 2.0)], may)
    rollup_store.record_hourly("acct", "s1", [_min_max("temperature", 3.0, 4.0)], march)

    stored = rollup_store.query_hourly("acct", "s1", march, may)

    assert [item.timestamp for item in stored] == [to_epoch(march), to_epoch(may)]


def test_rollup_hour_recomputes_from_raw_readings(
    rollup_store: HourlyRollupStore, reading_store: ReadingStore
) -> None:
    hour = datetime(2024, 5, 15, 10, 0, tzinfo=timezone.utc)
    for minutes, temperature, humidity in ((5, 21.0, 40.0), (25, 19.5, 44.0), (55, 23.0, 41.0)):
        reading_store.record_reading(
            "acct",
            "s1",
            [
                Measurement(name="temperature", value=temperature, unit="Celsius"),
                Measurement(name="humidity", value=humidity, unit="%"),
            ],
            hour + timedelta(minutes=minutes),
        )

    rollup = rollup_store.rollup_hour("acct", "s1", hour + timedelta(minutes=30), reading_store)
    again = rollup_store.rollup_hour("acct", "s1", hour, reading_store)

    assert rollup is not None and again == rollup
    assert rollup.timestamp == to_epoch(hour)
    assert rollup.measurements == [
        _min_max("temperature", 19.5, 23.0),
        _min_max("humidity", 40.0, 44.0, "%"),
    ]
    assert len(rollup_store.query_hourly("acct", "s1")) == 1


def test_rollup_hour_without_readings_writes_nothing(
    rollup_store: HourlyRollupStore, reading_store: ReadingStore
) -> None:
    result = rollup_store.rollup_hour("acct", "s1", datetime(2024, 5, 15, 3, 0, tzinfo=timezone.utc), reading_store)

    assert result is None
    assert rollup_store.query_hourly("acct", "s1") == []


def test_first_hour_of_month_in_half_hour_offset_zone(backend: MockDynamoDB, fanout: PartitionFanout) -> None:
    kolkata = resolve_timezone("Asia/Kolkata")
    scheme = PartitionScheme(tz=kolkata)
    Provisioner(backend, scheme).ensure_partitions(datetime(2024, 6, 1, tzinfo=kolkata))
    store = HourlyRollupStore(fanout, scheme)
    midnight = datetime(2024, 6, 1, 0, 0, tzinfo=kolkata)

    rollup = store.record_hourly("acct", "s1", [_min_max("temperature", 20.0, 22.0)], midnight + timedelta(minutes=20))

    assert rollup.timestamp == to_epoch(midnight)
    assert len(backend.scan("hourly_sensor_readings_2024-06", "acct:s1")) == 1
