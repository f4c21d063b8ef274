"""Backend-neutral table schemas and the storage protocol used by the services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union

Item = Dict[str, Any]
RangeValue = Union[int, float, str]


class KeyType(str, Enum):
    string = "S"
    number = "N"


@dataclass(frozen=True)
class KeyAttribute:
    name: str
    type: KeyType = KeyType.string


@dataclass(frozen=True)
class IndexSchema:
    """A global secondary index: an alternate hash (and optional range) key."""

    name: str
    hash_key: KeyAttribute
    range_key: Optional[KeyAttribute] = None


@dataclass(frozen=True)
class TableSchema:
    name: str
    hash_key: KeyAttribute
    range_key: Optional[KeyAttribute] = None
    indexes: Tuple[IndexSchema, ...] = ()

    def key_of(self, item: Mapping[str, Any]) -> Item:
        """Extract the primary key attributes from an item or key mapping."""
        names = [self.hash_key.name]
        if self.range_key is not None:
            names.append(self.range_key.name)
        missing = [name for name in names if item.get(name) is None]
        if missing:
            raise ValueError(
                f"Item for table {self.name!r} is missing key attributes: {', '.join(missing)}"
            )
        return {name: item[name] for name in names}

    def index(self, name: str) -> IndexSchema:
        for index in self.indexes:
            if index.name == name:
                return index
        raise ValueError(f"Table {self.name!r} has no index named {name!r}.")


@dataclass(frozen=True)
class RangeCondition:
    """Inclusive bounds on a range key; either side may be open."""

    lower: Optional[RangeValue] = None
    upper: Optional[RangeValue] = None

    def matches(self, value: RangeValue) -> bool:
        if self.lower is not None and value < self.lower:
            return False
        if self.upper is not None and value > self.upper:
            return False
        return True


class StorageBackend(Protocol):
    """Key-based store holding every table the service reads and writes.

    Missing tables raise ``TableNotFoundError``, missing items
    ``ItemNotFoundError``, creating an existing table ``AlreadyExistsError``,
    and transport failures ``BackendUnavailableError``.
    """

    def create_table(self, schema: TableSchema) -> None: ...

    def delete_table(self, table: str) -> None: ...

    def describe_table(self, table: str) -> TableSchema: ...

    def list_tables(self) -> List[str]: ...

    def put(self, table: str, item: Mapping[str, Any]) -> None: ...

    def get(self, table: str, key: Mapping[str, Any]) -> Item: ...

    def delete(self, table: str, key: Mapping[str, Any]) -> None: ...

    def scan(
        self,
        table: str,
        hash_value: Any,
        range_condition: Optional[RangeCondition] = None,
        index: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Item]: ...
