"""Monthly partition naming for reading and rollup tables.

Readings live in one table per calendar month, e.g. ``sensor_readings_2024-05``
and ``hourly_sensor_readings_2024-05``. The month is computed in a single
configured timezone (UTC unless overridden) so that a timestamp always maps
to the same table regardless of how it was supplied.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import InvalidRequestError

Timestamp = Union[int, float, datetime]

TABLE_MONTH_FORMAT = "%Y-%m"
SECONDS_PER_HOUR = 3600
MIN_EPOCH_SECONDS = 0
MAX_EPOCH_SECONDS = 253370764799  # 9998-12-31T23:59:59Z


class PartitionKind(str, Enum):
    readings = "readings"
    hourly_readings = "hourly_readings"


DEFAULT_PREFIXES = {
    PartitionKind.readings: "sensor_readings",
    PartitionKind.hourly_readings: "hourly_sensor_readings",
}


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone {name!r}.") from exc


def to_epoch(value: Timestamp) -> int:
    """Convert a timestamp to whole epoch seconds; naive datetimes are UTC."""
    if isinstance(value, bool):
        raise TypeError("Timestamps must be numbers or datetimes, not booleans.")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return math.floor(value.timestamp())
    if isinstance(value, (int, float)):
        return math.floor(value)
    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def to_datetime(value: Timestamp, tz: tzinfo = timezone.utc) -> datetime:
    epoch = to_epoch(value)
    try:
        return datetime.fromtimestamp(epoch, tz=tz)
    except (OverflowError, OSError, ValueError) as exc:
        raise InvalidRequestError(f"Timestamp {epoch} is out of range.") from exc


def hour_floor(value: Timestamp, tz: tzinfo = timezone.utc) -> int:
    """Truncate a timestamp to the start of its hour in ``tz``, in epoch seconds."""
    local = to_datetime(value, tz)
    return to_epoch(local.replace(minute=0, second=0, microsecond=0))


def month_start(value: Timestamp, tz: tzinfo = timezone.utc) -> datetime:
    local = to_datetime(value, tz)
    return datetime(local.year, local.month, 1, tzinfo=tz)


def next_month_start(start: datetime) -> datetime:
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1, day=1)
    return start.replace(month=start.month + 1, day=1)


def partition_name(
    kind: PartitionKind,
    value: Timestamp,
    tz: tzinfo = timezone.utc,
    prefix: Optional[str] = None,
) -> str:
    table_prefix = prefix or DEFAULT_PREFIXES[PartitionKind(kind)]
    return f"{table_prefix}_{to_datetime(value, tz).strftime(TABLE_MONTH_FORMAT)}"


def months_between(start: Timestamp, end: Timestamp, tz: tzinfo = timezone.utc) -> List[datetime]:
    """First instants of every calendar month overlapping ``[start, end]``."""
    if to_epoch(start) > to_epoch(end):
        return []
    months: List[datetime] = []
    current = month_start(start, tz)
    last = month_start(end, tz)
    while current <= last:
        months.append(current)
        current = next_month_start(current)
    return months


def partitions_between(
    kind: PartitionKind,
    start: Timestamp,
    end: Timestamp,
    tz: tzinfo = timezone.utc,
    prefix: Optional[str] = None,
) -> List[str]:
    """Ordered, distinct partition names overlapping ``[start, end]``."""
    return [partition_name(kind, month, tz, prefix) for month in months_between(start, end, tz)]


@dataclass(frozen=True)
class PartitionScheme:
    """Table naming for one deployment: prefixes plus the month-boundary timezone."""

    tz: tzinfo = timezone.utc
    readings_prefix: str = DEFAULT_PREFIXES[PartitionKind.readings]
    hourly_readings_prefix: str = DEFAULT_PREFIXES[PartitionKind.hourly_readings]

    def prefix_for(self, kind: PartitionKind) -> str:
        if PartitionKind(kind) is PartitionKind.readings:
            return self.readings_prefix
        return self.hourly_readings_prefix

    def table_for(self, kind: PartitionKind, value: Timestamp) -> str:
        return partition_name(kind, value, self.tz, self.prefix_for(kind))

    def tables_between(self, kind: PartitionKind, start: Timestamp, end: Timestamp) -> List[str]:
        return partitions_between(kind, start, end, self.tz, self.prefix_for(kind))

    def month_start(self, value: Timestamp) -> datetime:
        return month_start(value, self.tz)

    def hour_floor(self, value: Timestamp) -> int:
        return hour_floor(value, self.tz)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
