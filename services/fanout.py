"""Concurrent scans across monthly partitions.

A range query is resolved into the list of month tables it overlaps. Each
table is scanned on the shared executor; a table that was never provisioned
contributes nothing, any other failure fails the whole query. Per-partition
results arrive in ascending range-key order and are merged into one sequence.
"""

from __future__ import annotations

import heapq
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from datastore.backend import Item, RangeCondition, StorageBackend
from datastore.partitions import PartitionKind, PartitionScheme, Timestamp, to_epoch, utc_now
from errors import BackendUnavailableError, InvalidRequestError, TableNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


@dataclass(frozen=True)
class QueryWindow:
    """Tables to consult and the timestamp bounds to apply inside each of them."""

    tables: Tuple[str, ...]
    range_condition: Optional[RangeCondition] = None


def resolve_window(
    scheme: PartitionScheme,
    kind: PartitionKind,
    now: datetime,
    start_time: Optional[Timestamp] = None,
    end_time: Optional[Timestamp] = None,
    max_partitions: Optional[int] = None,
) -> QueryWindow:
    """Translate optional query bounds into partitions.

    Without bounds only the current month is consulted. A missing end means
    "until now"; a missing start means "from the beginning of the end's month".
    """
    if start_time is None and end_time is None:
        return QueryWindow(tables=(scheme.table_for(kind, now),))

    end = to_epoch(end_time) if end_time is not None else to_epoch(now)
    if start_time is not None:
        start = to_epoch(start_time)
    else:
        start = to_epoch(scheme.month_start(end))

    if start > end:
        raise InvalidRequestError(
            f"start_time ({start}) must not be later than end_time ({end})."
        )

    tables = scheme.tables_between(kind, start, end)
    if max_partitions is not None and len(tables) > max_partitions:
        raise InvalidRequestError(
            f"Requested range spans {len(tables)} months; at most {max_partitions} are allowed."
        )
    return QueryWindow(tables=tuple(tables), range_condition=RangeCondition(start, end))


class PartitionFanout:
    """Runs independent backend calls concurrently under a shared deadline."""

    def __init__(self, backend: StorageBackend, executor: Executor, timeout: float = 5.0) -> None:
        self.backend = backend
        self.executor = executor
        self.timeout = timeout

    def gather(self, calls: Sequence[Tuple[str, Callable[[], T]]]) -> List[Optional[T]]:
        """Run ``(table, call)`` pairs; a missing table yields ``None`` in its slot."""
        futures: List[Tuple[str, Future[T]]] = [
            (table, self.executor.submit(call)) for table, call in calls
        ]
        deadline = time.monotonic() + self.timeout
        results: List[Optional[T]] = []
        try:
            for table, future in futures:
                remaining = max(deadline - time.monotonic(), 0.0)
                try:
                    results.append(future.result(timeout=remaining))
                except TableNotFoundError:
                    logger.info("Partition not provisioned, treating as empty", extra={"table": table})
                    results.append(None)
                except FutureTimeoutError as exc:
                    raise BackendUnavailableError(
                        f"Timed out after {self.timeout}s waiting for {table}.", exc
                    ) from exc
        except Exception:
            for _, future in futures:
                future.cancel()
            raise
        return results

    def scan_partitions(
        self,
        tables: Sequence[str],
        hash_value: str,
        range_condition: Optional[RangeCondition] = None,
    ) -> List[List[Item]]:
        calls = [
            (table, _scan_call(self.backend, table, hash_value, range_condition))
            for table in tables
        ]
        return [items or [] for items in self.gather(calls)]


def _scan_call(
    backend: StorageBackend,
    table: str,
    hash_value: str,
    range_condition: Optional[RangeCondition],
) -> Callable[[], List[Item]]:
    def call() -> List[Item]:
        return backend.scan(table, hash_value, range_condition=range_condition)

    return call


class PartitionedStore(ABC, Generic[T]):
    """Shared write/read plumbing for the monthly-partitioned record stores."""

    kind: PartitionKind

    def __init__(
        self,
        fanout: PartitionFanout,
        scheme: PartitionScheme,
        clock: Clock = utc_now,
        max_partitions: Optional[int] = None,
    ) -> None:
        self.fanout = fanout
        self.backend = fanout.backend
        self.scheme = scheme
        self.clock = clock
        self.max_partitions = max_partitions

    @abstractmethod
    def _decode(self, item: Item, table: str) -> T:
        """Turn a stored item from ``table`` into a record."""

    def _timestamp_of(self, record: T) -> int:
        return record.timestamp  # type: ignore[attr-defined]

    def _query(
        self,
        hash_value: str,
        start_time: Optional[Timestamp] = None,
        end_time: Optional[Timestamp] = None,
        max_partitions: Optional[int] = None,
    ) -> List[T]:
        window = resolve_window(
            self.scheme,
            self.kind,
            self.clock(),
            start_time=start_time,
            end_time=end_time,
            max_partitions=max_partitions,
        )
        per_partition = self.fanout.scan_partitions(
            window.tables, hash_value, window.range_condition
        )
        decoded = [
            [self._decode(item, table) for item in items]
            for table, items in zip(window.tables, per_partition)
        ]
        merged = list(heapq.merge(*decoded, key=self._timestamp_of))
        logger.debug(
            "Merged partition scan",
            extra={
                "table": ",".join(window.tables),
                "partition_count": len(window.tables),
                "reading_count": len(merged),
            },
        )
        return merged
