"""Creation and removal of the sensors table and the monthly partitions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from datastore.backend import IndexSchema, KeyAttribute, KeyType, StorageBackend, TableSchema
from datastore.partitions import PartitionKind, PartitionScheme, Timestamp, utc_now
from errors import AlreadyExistsError, TableNotFoundError
from services.fanout import Clock

logger = logging.getLogger(__name__)


def sensors_table_schema(table: str = "sensors", account_index: str = "account_id-index") -> TableSchema:
    return TableSchema(
        name=table,
        hash_key=KeyAttribute("id"),
        indexes=(IndexSchema(name=account_index, hash_key=KeyAttribute("account_id")),),
    )


def partition_table_schema(table: str) -> TableSchema:
    return TableSchema(
        name=table,
        hash_key=KeyAttribute("id"),
        range_key=KeyAttribute("timestamp", KeyType.number),
    )


def previous_month(start: datetime) -> datetime:
    if start.month == 1:
        return start.replace(year=start.year - 1, month=12)
    return start.replace(month=start.month - 1)


class Provisioner:
    """Idempotently creates the tables the services write into."""

    def __init__(
        self,
        backend: StorageBackend,
        scheme: PartitionScheme,
        sensors_table: str = "sensors",
        account_index: str = "account_id-index",
        clock: Clock = utc_now,
    ) -> None:
        self.backend = backend
        self.scheme = scheme
        self.sensors_table = sensors_table
        self.account_index = account_index
        self.clock = clock

    def ensure_table(self, schema: TableSchema) -> bool:
        """Create ``schema`` unless it already exists; True when a table was created."""
        try:
            self.backend.create_table(schema)
        except AlreadyExistsError:
            logger.debug("Table already present", extra={"table": schema.name})
            return False
        return True

    def ensure_sensors_table(self) -> bool:
        return self.ensure_table(sensors_table_schema(self.sensors_table, self.account_index))

    def partition_tables(self, month: Timestamp) -> List[str]:
        return [self.scheme.table_for(kind, month) for kind in PartitionKind]

    def ensure_partitions(self, month: Timestamp) -> List[str]:
        """Create the readings and hourly tables for ``month``; returns the new ones."""
        return [
            table
            for table in self.partition_tables(month)
            if self.ensure_table(partition_table_schema(table))
        ]

    def provision(self, months: int = 3) -> List[str]:
        """Create the sensors table and partitions for this month and ``months - 1`` before it."""
        created: List[str] = []
        if self.ensure_sensors_table():
            created.append(self.sensors_table)
        month = self.scheme.month_start(self.clock())
        for _ in range(max(months, 1)):
            created.extend(self.ensure_partitions(month))
            month = previous_month(month)
        logger.info(
            "Provisioned tables",
            extra={"partition_count": max(months, 1), "table": ",".join(created) or "-"},
        )
        return created

    def drop_partitions(self, month: Timestamp) -> List[str]:
        dropped: List[str] = []
        for table in self.partition_tables(month):
            try:
                self.backend.delete_table(table)
            except TableNotFoundError:
                logger.info("Partition already absent", extra={"table": table})
                continue
            dropped.append(table)
        return dropped
