"""Query engine orchestrating the registry and the partitioned stores."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Mapping, Optional

from app.schemas import (
    HealthResponse,
    HourlyReadingOut,
    HourlySensorReadingsResponse,
    LastSensorReadingsResponse,
    LatestReadingOut,
    ReadingOut,
    SensorOut,
    SensorReadingsResponse,
    SensorsResponse,
)
from datastore.backend import StorageBackend
from datastore.factory import build_default_backend
from datastore.partitions import PartitionScheme, Timestamp, resolve_timezone
from services.fanout import PartitionFanout
from services.provisioning import Provisioner
from services.readings import ReadingStore
from services.registry import SensorRegistry
from services.rollups import HourlyRollupStore
from settings import get_settings


class QueryEngine:
    """Answers the HTTP layer's questions and shapes the responses."""

    def __init__(
        self,
        backend: StorageBackend,
        registry: SensorRegistry,
        readings: ReadingStore,
        rollups: HourlyRollupStore,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.backend = backend
        self.registry = registry
        self.readings = readings
        self.rollups = rollups
        self.executor = executor

    def sensor(self, sensor_id: str) -> SensorOut:
        return SensorOut.from_domain(self.registry.get_sensor(sensor_id))

    def update_sensor(self, sensor_id: str, changes: Mapping[str, Any]) -> SensorOut:
        return SensorOut.from_domain(self.registry.update_sensor(sensor_id, changes))

    def sensors_for_account(self, account_id: str, state: Optional[str] = None) -> SensorsResponse:
        sensors = self.registry.list_sensors(account_id, state=state)
        return SensorsResponse(sensors=[SensorOut.from_domain(sensor) for sensor in sensors])

    def sensor_readings(
        self,
        account_id: str,
        sensor_id: str,
        start_time: Optional[Timestamp] = None,
        end_time: Optional[Timestamp] = None,
    ) -> SensorReadingsResponse:
        readings = self.readings.query_readings(account_id, sensor_id, start_time, end_time)
        return SensorReadingsResponse(
            account_id=account_id,
            sensor_id=sensor_id,
            readings=[ReadingOut.from_domain(reading) for reading in readings],
        )

    def hourly_sensor_readings(
        self,
        account_id: str,
        sensor_id: str,
        start_time: Optional[Timestamp] = None,
        end_time: Optional[Timestamp] = None,
    ) -> HourlySensorReadingsResponse:
        rollups = self.rollups.query_hourly(account_id, sensor_id, start_time, end_time)
        return HourlySensorReadingsResponse(
            account_id=account_id,
            sensor_id=sensor_id,
            readings=[HourlyReadingOut.from_domain(rollup) for rollup in rollups],
        )

    def last_sensor_readings(
        self, account_id: str, state: Optional[str] = None
    ) -> LastSensorReadingsResponse:
        latest = self.readings.latest_readings(account_id, state=state)
        return LastSensorReadingsResponse(
            sensors={entry.sensor.id: LatestReadingOut.from_domain(entry) for entry in latest}
        )

    def healthcheck(self) -> HealthResponse:
        """Describe the sensors table; backend errors propagate to the caller."""
        self.backend.describe_table(self.registry.table)
        return HealthResponse(status="ok", table=self.registry.table)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        if self.executor is not None:
            self.executor.shutdown(wait=False, cancel_futures=True)


def build_scheme() -> PartitionScheme:
    settings = get_settings()
    return PartitionScheme(
        tz=resolve_timezone(settings.timezone),
        readings_prefix=settings.readings_table_prefix,
        hourly_readings_prefix=settings.hourly_readings_table_prefix,
    )


def build_provisioner(backend: Optional[StorageBackend] = None) -> Provisioner:
    settings = get_settings()
    return Provisioner(
        backend or build_default_backend(),
        build_scheme(),
        sensors_table=settings.sensors_table,
        account_index=settings.sensors_account_index,
    )


@lru_cache
def build_default_engine(workers: Optional[int] = None) -> QueryEngine:
    """Factory that wires the engine from environment settings."""
    settings = get_settings()
    backend = build_default_backend()
    executor = ThreadPoolExecutor(
        max_workers=workers or settings.query_workers,
        thread_name_prefix="partition-scan",
    )
    fanout = PartitionFanout(backend, executor, timeout=settings.backend_timeout)
    scheme = build_scheme()
    registry = SensorRegistry(
        backend,
        table=settings.sensors_table,
        account_index=settings.sensors_account_index,
    )
    readings = ReadingStore(
        fanout, scheme, registry, max_partitions=settings.max_query_partitions
    )
    rollups = HourlyRollupStore(fanout, scheme, max_partitions=settings.max_query_partitions)
    return QueryEngine(backend, registry, readings, rollups, executor=executor)
