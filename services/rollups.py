"""Hourly min/max rollups sharded into ``hourly_sensor_readings_YYYY-MM`` tables."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from datastore.backend import Item
from datastore.items import rollup_from_item, rollup_to_item, validate_min_max_measurements
from datastore.partitions import PartitionKind, Timestamp
from errors import PartitionNotProvisionedError, TableNotFoundError
from models.records import HourlyRollup, MinMaxMeasurement, composite_key
from services.aggregator import Aggregator
from services.fanout import PartitionedStore
from services.readings import ReadingStore

logger = logging.getLogger(__name__)

MinMaxInput = Union[MinMaxMeasurement, Mapping[str, Any]]


class HourlyRollupStore(PartitionedStore[HourlyRollup]):
    kind = PartitionKind.hourly_readings

    def _decode(self, item: Item, table: str) -> HourlyRollup:
        return rollup_from_item(item, table)

    def record_hourly(
        self,
        account_id: str,
        sensor_id: str,
        measurements: Iterable[MinMaxInput],
        timestamp: Timestamp,
    ) -> HourlyRollup:
        """Upsert the rollup for the hour containing ``timestamp``.

        The partition is picked from the floored hour, so a reading taken at
        the very end of a month still lands in that month's hourly table.
        """
        rollup = HourlyRollup(
            account_id=account_id,
            sensor_id=sensor_id,
            timestamp=self.scheme.hour_floor(timestamp),
            measurements=validate_min_max_measurements(measurements),
        )
        table = self.scheme.table_for(self.kind, rollup.timestamp)
        try:
            self.backend.put(table, rollup_to_item(rollup))
        except TableNotFoundError as exc:
            logger.error(
                "Hourly partition missing",
                extra={"table": table, "account_id": account_id, "sensor_id": sensor_id},
            )
            raise PartitionNotProvisionedError(table) from exc
        logger.debug(
            "Recorded hourly rollup",
            extra={"table": table, "account_id": account_id, "sensor_id": sensor_id},
        )
        return rollup

    def query_hourly(
        self,
        account_id: str,
        sensor_id: str,
        start_time: Optional[Timestamp] = None,
        end_time: Optional[Timestamp] = None,
    ) -> List[HourlyRollup]:
        return self._query(
            composite_key(account_id, sensor_id),
            start_time=start_time,
            end_time=end_time,
            max_partitions=self.max_partitions,
        )

    def rollup_hour(
        self,
        account_id: str,
        sensor_id: str,
        timestamp: Timestamp,
        readings: ReadingStore,
        aggregator: Optional[Aggregator] = None,
    ) -> Optional[HourlyRollup]:
        """Recompute one hour bucket from raw readings; returns None when the hour is empty."""
        raw = readings.readings_in_hour(account_id, sensor_id, timestamp)
        if not raw:
            logger.info(
                "No readings to roll up",
                extra={
                    "account_id": account_id,
                    "sensor_id": sensor_id,
                    "start_time": self.scheme.hour_floor(timestamp),
                },
            )
            return None
        summary = (aggregator or Aggregator()).min_max(raw)
        rollup = self.record_hourly(account_id, sensor_id, summary, timestamp)
        logger.info(
            "Rolled up hour",
            extra={
                "account_id": account_id,
                "sensor_id": sensor_id,
                "start_time": rollup.timestamp,
                "reading_count": len(raw),
            },
        )
        return rollup
