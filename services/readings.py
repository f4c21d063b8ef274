"""Raw sensor readings sharded into ``sensor_readings_YYYY-MM`` tables."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from datastore.backend import Item
from datastore.items import MeasurementInput, reading_from_item, reading_to_item, validate_measurements
from datastore.partitions import (
    SECONDS_PER_HOUR,
    PartitionKind,
    PartitionScheme,
    Timestamp,
    to_epoch,
    utc_now,
)
from errors import PartitionNotProvisionedError, TableNotFoundError
from models.records import LatestReading, Reading, Sensor, composite_key
from services.fanout import Clock, PartitionFanout, PartitionedStore
from services.registry import SensorRegistry

logger = logging.getLogger(__name__)


class ReadingStore(PartitionedStore[Reading]):
    kind = PartitionKind.readings

    def __init__(
        self,
        fanout: PartitionFanout,
        scheme: PartitionScheme,
        registry: SensorRegistry,
        clock: Clock = utc_now,
        max_partitions: Optional[int] = None,
    ) -> None:
        super().__init__(fanout, scheme, clock=clock, max_partitions=max_partitions)
        self.registry = registry

    def _decode(self, item: Item, table: str) -> Reading:
        return reading_from_item(item, table)

    def record_reading(
        self,
        account_id: str,
        sensor_id: str,
        measurements: Iterable[MeasurementInput],
        timestamp: Timestamp,
    ) -> Reading:
        """Write a reading into the partition of its calendar month.

        Partitions are never created here; writing into a month that has not
        been provisioned raises ``PartitionNotProvisionedError``.
        """
        reading = Reading(
            account_id=account_id,
            sensor_id=sensor_id,
            timestamp=to_epoch(timestamp),
            measurements=validate_measurements(measurements),
        )
        table = self.scheme.table_for(self.kind, reading.timestamp)
        try:
            self.backend.put(table, reading_to_item(reading))
        except TableNotFoundError as exc:
            logger.error(
                "Reading partition missing",
                extra={"table": table, "account_id": account_id, "sensor_id": sensor_id},
            )
            raise PartitionNotProvisionedError(table) from exc
        logger.debug(
            "Recorded reading",
            extra={"table": table, "account_id": account_id, "sensor_id": sensor_id},
        )
        return reading

    def query_readings(
        self,
        account_id: str,
        sensor_id: str,
        start_time: Optional[Timestamp] = None,
        end_time: Optional[Timestamp] = None,
    ) -> List[Reading]:
        """Readings in ascending time order; no bounds means the current month only."""
        return self._query(
            composite_key(account_id, sensor_id),
            start_time=start_time,
            end_time=end_time,
            max_partitions=self.max_partitions,
        )

    def readings_in_hour(self, account_id: str, sensor_id: str, timestamp: Timestamp) -> List[Reading]:
        start = self.scheme.hour_floor(timestamp)
        return self._query(
            composite_key(account_id, sensor_id),
            start_time=start,
            end_time=start + SECONDS_PER_HOUR - 1,
        )

    def latest_readings(
        self,
        account_id: str,
        state: Optional[str] = None,
    ) -> List[LatestReading]:
        """Most recent current-month reading for every sensor of an account."""
        sensors = self.registry.list_sensors(account_id, state=state)
        table = self.scheme.table_for(self.kind, self.clock())
        calls = [(table, self._latest_call(table, sensor)) for sensor in sensors]
        results = self.fanout.gather(calls)
        return [
            LatestReading(sensor=sensor, reading=reading)
            for sensor, reading in zip(sensors, results)
        ]

    def _latest_call(self, table: str, sensor: Sensor) -> Callable[[], Optional[Reading]]:
        def call() -> Optional[Reading]:
            items = self.backend.scan(
                table,
                composite_key(sensor.account_id, sensor.id),
                descending=True,
                limit=1,
            )
            if not items:
                return None
            return reading_from_item(items[0], table)

        return call
