from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterator

import pytest

from datastore.mock_dynamodb import MockDynamoDB
from datastore.partitions import PartitionScheme
from services.fanout import PartitionFanout
from services.provisioning import Provisioner
from services.query import QueryEngine
from services.readings import ReadingStore
from services.registry import SensorRegistry
from services.rollups import HourlyRollupStore

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def backend() -> MockDynamoDB:
    return MockDynamoDB()


@pytest.fixture
def executor() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def scheme() -> PartitionScheme:
    return PartitionScheme()


@pytest.fixture
def provisioner(backend: MockDynamoDB, scheme: PartitionScheme) -> Provisioner:
    return Provisioner(backend, scheme, clock=fixed_clock)


@pytest.fixture
def provisioned(provisioner: Provisioner) -> Provisioner:
    # sensors plus March, April and May 2024 partitions
    provisioner.provision(months=3)
    return provisioner


@pytest.fixture
def fanout(backend: MockDynamoDB, executor: ThreadPoolExecutor) -> PartitionFanout:
    return PartitionFanout(backend, executor, timeout=2.0)


@pytest.fixture
def registry(backend: MockDynamoDB, provisioned: Provisioner) -> SensorRegistry:
    return SensorRegistry(backend)


@pytest.fixture
def reading_store(
    fanout: PartitionFanout, scheme: PartitionScheme, registry: SensorRegistry
) -> ReadingStore:
    return ReadingStore(fanout, scheme, registry, clock=fixed_clock, max_partitions=12)


@pytest.fixture
def rollup_store(fanout: PartitionFanout, scheme: PartitionScheme, provisioned: Provisioner) -> HourlyRollupStore:
    return HourlyRollupStore(fanout, scheme, clock=fixed_clock, max_partitions=12)


@pytest.fixture
def engine(
    backend: MockDynamoDB,
    registry: SensorRegistry,
    reading_store: ReadingStore,
    rollup_store: HourlyRollupStore,
) -> QueryEngine:
    return QueryEngine(backend, registry, reading_store, rollup_store)
