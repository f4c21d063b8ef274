"""Error taxonomy shared by the datastore, services and HTTP layers."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class DataAccessError(Exception):
    """Base class for every error raised by the data-access core."""


class NotFoundError(DataAccessError):
    """A table, item or sensor is absent."""


class TableNotFoundError(NotFoundError):

    def __init__(self, table: str) -> None:
        super().__init__(f"Table {table!r} does not exist.")
        self.table = table


class ItemNotFoundError(NotFoundError):

    def __init__(self, table: str, key: Mapping[str, Any]) -> None:
        super().__init__(f"Item {dict(key)!r} not found in table {table!r}.")
        self.table = table
        self.key = dict(key)


class SensorNotFoundError(NotFoundError):

    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"Sensor not found: {sensor_id}")
        self.sensor_id = sensor_id


class AlreadyExistsError(DataAccessError):

    def __init__(self, table: str) -> None:
        super().__init__(f"Table {table!r} already exists.")
        self.table = table


class InvalidRequestError(DataAccessError):
    """Malformed query parameters or payloads supplied by a caller."""


class PartitionNotProvisionedError(DataAccessError):
    """A write targeted a monthly partition that was never created."""

    def __init__(self, table: str) -> None:
        super().__init__(
            f"Partition {table!r} has not been provisioned; create it before writing."
        )
        self.table = table


class BackendUnavailableError(DataAccessError):
    """The storage backend could not be reached or did not answer in time."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class CorruptRecordError(DataAccessError):
    """A stored item could not be decoded into a domain record."""

    def __init__(self, table: str, reason: str) -> None:
        super().__init__(f"Corrupt record in table {table!r}: {reason}")
        self.table = table
        self.reason = reason
