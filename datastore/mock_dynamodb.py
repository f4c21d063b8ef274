from __future__ import annotations
import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Tuple

from datastore.backend import (
    IndexSchema,
    Item,
    KeyAttribute,
    KeyType,
    RangeCondition,
    TableSchema,
)
from errors import AlreadyExistsError, ItemNotFoundError, TableNotFoundError
from settings import get_settings

logger = logging.getLogger(__name__)


class MockDynamoDBTable:
    """Items of one table keyed by their primary key, with index-aware queries."""

    def __init__(self, schema: TableSchema) -> None:
        self.schema = schema
        self._items: Dict[Tuple[Any, ...], Item] = {}

    @property
    def name(self) -> str:
        return self.schema.name

    def put_item(self, item: Mapping[str, Any]) -> None:
        key = self._key_tuple(item)
        self._items[key] = copy.deepcopy(dict(item))

    def get_item(self, key: Mapping[str, Any]) -> Optional[Item]:
        item = self._items.get(self._key_tuple(key))
        if item is None:
            return None
        return copy.deepcopy(item)

    def delete_item(self, key: Mapping[str, Any]) -> None:
        self._items.pop(self._key_tuple(key), None)

    def query(
        self,
        hash_value: Any,
        range_condition: Optional[RangeCondition] = None,
        index: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Item]:
        if index is None:
            hash_key: KeyAttribute = self.schema.hash_key
            range_key: Optional[KeyAttribute] = self.schema.range_key
        else:
            index_schema: IndexSchema = self.schema.index(index)
            hash_key = index_schema.hash_key
            range_key = index_schema.range_key

        matches = [
            item for item in self._items.values() if item.get(hash_key.name) == hash_value
        ]
        if range_key is not None:
            matches = [item for item in matches if range_key.name in item]
            if range_condition is not None:
                matches = [
                    item for item in matches if range_condition.matches(item[range_key.name])
                ]
            matches.sort(key=lambda item: item[range_key.name], reverse=descending)
        elif descending:
            matches.reverse()

        if limit is not None:
            matches = matches[:limit]
        return [copy.deepcopy(item) for item in matches]

    def items(self) -> List[Item]:
        return [copy.deepcopy(item) for item in self._items.values()]

    def _key_tuple(self, item: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(self.schema.key_of(item).values())


class MockDynamoDB:
    """In-process stand-in for DynamoDB holding many tables.

    When a persistence path is configured every write is flushed to a JSON
    file, and the file is reloaded whenever another process has rewritten it.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._tables: Dict[str, MockDynamoDBTable] = {}
        self.persistence_path = persistence_path
        self._loaded_mtime: Optional[int] = None
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def create_table(self, schema: TableSchema) -> None:
        with self._lock:
            self._refresh()
            if schema.name in self._tables:
                raise AlreadyExistsError(schema.name)
            self._tables[schema.name] = MockDynamoDBTable(schema)
            self._persist()
        logger.info("Created table", extra={"table": schema.name})

    def delete_table(self, table: str) -> None:
        with self._lock:
            self._refresh()
            if self._tables.pop(table, None) is None:
                raise TableNotFoundError(table)
            self._persist()
        logger.info("Deleted table", extra={"table": table})

    def describe_table(self, table: str) -> TableSchema:
        with self._lock:
            self._refresh()
            return self._table(table).schema

    def list_tables(self) -> List[str]:
        with self._lock:
            self._refresh()
            return sorted(self._tables)

    def put(self, table: str, item: Mapping[str, Any]) -> None:
        with self._lock:
            self._refresh()
            self._table(table).put_item(item)
            self._persist()

    def get(self, table: str, key: Mapping[str, Any]) -> Item:
        with self._lock:
            self._refresh()
            item = self._table(table).get_item(key)
        if item is None:
            raise ItemNotFoundError(table, key)
        return item

    def delete(self, table: str, key: Mapping[str, Any]) -> None:
        with self._lock:
            self._refresh()
            self._table(table).delete_item(key)
            self._persist()

    def scan(
        self,
        table: str,
        hash_value: Any,
        range_condition: Optional[RangeCondition] = None,
        index: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Item]:
        with self._lock:
            self._refresh()
            return self._table(table).query(
                hash_value,
                range_condition=range_condition,
                index=index,
                descending=descending,
                limit=limit,
            )

    def _table(self, name: str) -> MockDynamoDBTable:
        table = self._tables.get(name)
        if table is None:
            raise TableNotFoundError(name)
        return table

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "tables": {
                name: {
                    "schema": _schema_to_dict(table.schema),
                    "items": table.items(),
                }
                for name, table in self._tables.items()
            }
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        self._loaded_mtime = self.persistence_path.stat().st_mtime_ns

    def _refresh(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return
        if self.persistence_path.stat().st_mtime_ns != self._loaded_mtime:
            self._load_from_disk()

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
            mtime = self.persistence_path.stat().st_mtime_ns
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable persistence file",
                extra={"reason": str(self.persistence_path)},
            )
            return

        tables: Dict[str, MockDynamoDBTable] = {}
        for name, payload in data.get("tables", {}).items():
            table = MockDynamoDBTable(_schema_from_dict(payload["schema"]))
            for item in payload.get("items", []):
                table.put_item(item)
            tables[name] = table
        self._tables = tables
        self._loaded_mtime = mtime


def _key_to_dict(key: Optional[KeyAttribute]) -> Optional[Dict[str, str]]:
    if key is None:
        return None
    return {"name": key.name, "type": key.type.value}


def _key_from_dict(data: Optional[Mapping[str, str]]) -> Optional[KeyAttribute]:
    if not data:
        return None
    return KeyAttribute(name=data["name"], type=KeyType(data["type"]))


def _schema_to_dict(schema: TableSchema) -> Dict[str, Any]:
    return {
        "name": schema.name,
        "hash_key": _key_to_dict(schema.hash_key),
        "range_key": _key_to_dict(schema.range_key),
        "indexes": [
            {
                "name": index.name,
                "hash_key": _key_to_dict(index.hash_key),
                "range_key": _key_to_dict(index.range_key),
            }
            for index in schema.indexes
        ],
    }


def _schema_from_dict(data: Mapping[str, Any]) -> TableSchema:
    hash_key = _key_from_dict(data["hash_key"])
    assert hash_key is not None
    return TableSchema(
        name=data["name"],
        hash_key=hash_key,
        range_key=_key_from_dict(data.get("range_key")),
        indexes=tuple(
            IndexSchema(
                name=index["name"],
                hash_key=_key_from_dict(index["hash_key"]),  # type: ignore[arg-type]
                range_key=_key_from_dict(index.get("range_key")),
            )
            for index in data.get("indexes", [])
        ),
    )


@lru_cache
def build_default_database(path: Optional[str] = None) -> MockDynamoDB:
    settings = get_settings()
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockDynamoDB(persistence_path=persistence)
