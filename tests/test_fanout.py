from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from datastore.backend import RangeCondition
from datastore.mock_dynamodb import MockDynamoDB
from datastore.partitions import PartitionKind, PartitionScheme, to_epoch
from errors import BackendUnavailableError, InvalidRequestError, TableNotFoundError
from services.fanout import PartitionedStore, PartitionFanout, resolve_window

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def test_resolve_window_without_bounds_is_current_month_unbounded() -> None:
    window = resolve_window(PartitionScheme(), PartitionKind.readings, NOW)

    assert window.tables == ("sensor_readings_2024-05",)
    assert window.range_condition is None


def test_resolve_window_with_start_only_ends_now() -> None:
    start = datetime(2024, 3, 20, tzinfo=timezone.utc)

    window = resolve_window(PartitionScheme(), PartitionKind.hourly_readings, NOW, start_time=start)

    assert window.tables == (
        "hourly_sensor_readings_2024-03",
        "hourly_sensor_readings_2024-04",
        "hourly_sensor_readings_2024-05",
    )
    assert window.range_condition == RangeCondition(to_epoch(start), to_epoch(NOW))


def test_resolve_window_with_end_only_starts_at_month_start() -> None:
    end = datetime(2024, 2, 10, 6, 0, tzinfo=timezone.utc)

    window = resolve_window(PartitionScheme(), PartitionKind.readings, NOW, end_time=end)

    assert window.tables == ("sensor_readings_2024-02",)
    assert window.range_condition == RangeCondition(
        to_epoch(datetime(2024, 2, 1, tzinfo=timezone.utc)), to_epoch(end)
    )


def test_resolve_window_enforces_partition_cap() -> None:
    with pytest.raises(InvalidRequestError):
        resolve_window(
            PartitionScheme(),
            PartitionKind.readings,
            NOW,
            start_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end_time=NOW,
            max_partitions=4,
        )


class _BrokenBackend(MockDynamoDB):
    def scan(self, table, hash_value, range_condition=None, index=None, descending=False, limit=None):
        if table.endswith("2024-04"):
            raise BackendUnavailableError("boom")
        if table.endswith("2024-03"):
            raise TableNotFoundError(table)
        return [{"id": hash_value, "timestamp": 1}]


def test_missing_partition_is_empty_but_other_failures_propagate() -> None:
    with ThreadPoolExecutor(max_workers=2) as executor:
        fanout = PartitionFanout(_BrokenBackend(), executor, timeout=1.0)

        assert fanout.scan_partitions(["t_2024-03", "t_2024-05"], "a:s") == [
            [],
            [{"id": "a:s", "timestamp": 1}],
        ]
        with pytest.raises(BackendUnavailableError):
            fanout.scan_partitions(["t_2024-03", "t_2024-04", "t_2024-05"], "a:s")


def test_slow_partition_times_out() -> None:
    release = threading.Event()

    def slow() -> list:
        release.wait(5)
        return []

    with ThreadPoolExecutor(max_workers=1) as executor:
        fanout = PartitionFanout(MockDynamoDB(), executor, timeout=0.05)
        try:
            with pytest.raises(BackendUnavailableError):
                fanout.gather([("slow_table", slow)])
        finally:
            release.set()


def test_scans_run_concurrently() -> None:
    barrier = threading.Barrier(2, timeout=2)

    def call() -> str:
        barrier.wait()
        return "done"

    with ThreadPoolExecutor(max_workers=2) as executor:
        fanout = PartitionFanout(MockDynamoDB(), executor, timeout=3.0)

        assert fanout.gather([("a", call), ("b", call)]) == ["done", "done"]


def test_partitioned_store_requires_a_decoder(backend: MockDynamoDB, executor: ThreadPoolExecutor) -> None:
    class Undecoded(PartitionedStore[dict]):
        kind = PartitionKind.readings

    with pytest.raises(TypeError):
        Undecoded(PartitionFanout(backend, executor), PartitionScheme())  # type: ignore[abstract]
