"""DynamoDB implementation of the storage protocol, built on a boto3 client."""

from __future__ import annotations

import logging
from decimal import Decimal
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from datastore.backend import (
    IndexSchema,
    Item,
    KeyAttribute,
    KeyType,
    RangeCondition,
    TableSchema,
)
from errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    ItemNotFoundError,
    TableNotFoundError,
)
from settings import Settings

logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_dynamo_value(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, dict):
        return {key: _to_dynamo_value(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo_value(inner) for inner in value]
    return value


def _from_dynamo_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {key: _from_dynamo_value(inner) for key, inner in value.items()}
    if isinstance(value, (list, set)):
        return [_from_dynamo_value(inner) for inner in value]
    return value


def serialize_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        key: _serializer.serialize(_to_dynamo_value(value))
        for key, value in item.items()
        if value is not None
    }


def deserialize_item(raw: Mapping[str, Any]) -> Item:
    return {key: _from_dynamo_value(_deserializer.deserialize(value)) for key, value in raw.items()}


class DynamoDBBackend:
    """Storage backend talking to DynamoDB (or DynamoDB Local) through boto3."""

    def __init__(self, client: Any, table_wait_seconds: int = 0) -> None:
        self._client = client
        self._table_wait_seconds = table_wait_seconds
        self._schemas: Dict[str, TableSchema] = {}
        self._schemas_lock = Lock()

    def create_table(self, schema: TableSchema) -> None:
        definitions: Dict[str, str] = {}
        for key in _schema_keys(schema):
            definitions[key.name] = key.type.value

        params: Dict[str, Any] = {
            "TableName": schema.name,
            "AttributeDefinitions": [
                {"AttributeName": name, "AttributeType": kind}
                for name, kind in definitions.items()
            ],
            "KeySchema": _key_schema(schema.hash_key, schema.range_key),
            "BillingMode": "PAY_PER_REQUEST",
        }
        if schema.indexes:
            params["GlobalSecondaryIndexes"] = [
                {
                    "IndexName": index.name,
                    "KeySchema": _key_schema(index.hash_key, index.range_key),
                    "Projection": {"ProjectionType": "ALL"},
                }
                for index in schema.indexes
            ]

        self._call("CreateTable", schema.name, self._client.create_table, **params)
        if self._table_wait_seconds > 0:
            waiter = self._client.get_waiter("table_exists")
            waiter.wait(
                TableName=schema.name,
                WaiterConfig={"Delay": 1, "MaxAttempts": self._table_wait_seconds},
            )
        with self._schemas_lock:
            self._schemas[schema.name] = schema
        logger.info("Created table", extra={"table": schema.name})

    def delete_table(self, table: str) -> None:
        with self._schemas_lock:
            self._schemas.pop(table, None)
        self._call("DeleteTable", table, self._client.delete_table, TableName=table)
        logger.info("Deleted table", extra={"table": table})

    def describe_table(self, table: str) -> TableSchema:
        response = self._call(
            "DescribeTable", table, self._client.describe_table, TableName=table
        )
        schema = _schema_from_description(response["Table"])
        with self._schemas_lock:
            self._schemas[table] = schema
        return schema

    def list_tables(self) -> List[str]:
        names: List[str] = []
        params: Dict[str, Any] = {}
        while True:
            response = self._call("ListTables", "*", self._client.list_tables, **params)
            names.extend(response.get("TableNames", []))
            last = response.get("LastEvaluatedTableName")
            if not last:
                return sorted(names)
            params["ExclusiveStartTableName"] = last

    def put(self, table: str, item: Mapping[str, Any]) -> None:
        self._call(
            "PutItem", table, self._client.put_item, TableName=table, Item=serialize_item(item)
        )

    def get(self, table: str, key: Mapping[str, Any]) -> Item:
        response = self._call(
            "GetItem",
            table,
            self._client.get_item,
            TableName=table,
            Key=serialize_item(key),
            ConsistentRead=True,
        )
        raw = response.get("Item")
        if raw is None:
            raise ItemNotFoundError(table, key)
        return deserialize_item(raw)

    def delete(self, table: str, key: Mapping[str, Any]) -> None:
        self._call(
            "DeleteItem", table, self._client.delete_item, TableName=table, Key=serialize_item(key)
        )

    def scan(
        self,
        table: str,
        hash_value: Any,
        range_condition: Optional[RangeCondition] = None,
        index: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Item]:
        schema = self._schema(table)
        if index is None:
            hash_key, range_key = schema.hash_key, schema.range_key
        else:
            index_schema = schema.index(index)
            hash_key, range_key = index_schema.hash_key, index_schema.range_key

        names = {"#h": hash_key.name}
        values: Dict[str, Any] = {":h": hash_value}
        expression = "#h = :h"
        if range_key is not None and range_condition is not None:
            names["#r"] = range_key.name
            lower, upper = range_condition.lower, range_condition.upper
            if lower is not None and upper is not None:
                expression += " AND #r BETWEEN :lo AND :hi"
                values.update({":lo": lower, ":hi": upper})
            elif lower is not None:
                expression += " AND #r >= :lo"
                values[":lo"] = lower
            elif upper is not None:
                expression += " AND #r <= :hi"
                values[":hi"] = upper

        params: Dict[str, Any] = {
            "TableName": table,
            "KeyConditionExpression": expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": serialize_item(values),
            "ScanIndexForward": not descending,
        }
        if index is not None:
            params["IndexName"] = index

        items: List[Item] = []
        while True:
            if limit is not None:
                params["Limit"] = limit - len(items)
            response = self._call("Query", table, self._client.query, **params)
            items.extend(deserialize_item(raw) for raw in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(items) >= limit):
                return items
            params["ExclusiveStartKey"] = last_key

    def _schema(self, table: str) -> TableSchema:
        with self._schemas_lock:
            schema = self._schemas.get(table)
        if schema is not None:
            return schema
        return self.describe_table(table)

    def _call(self, operation: str, table: str, method: Any, **params: Any) -> Dict[str, Any]:
        try:
            return method(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == "ResourceNotFoundException":
                with self._schemas_lock:
                    self._schemas.pop(table, None)
                raise TableNotFoundError(table) from exc
            if code == "ResourceInUseException" and operation == "CreateTable":
                raise AlreadyExistsError(table) from exc
            logger.error(
                "DynamoDB request failed",
                extra={"table": table, "status": code or "unknown", "reason": operation},
            )
            raise BackendUnavailableError(f"{operation} failed for {table}: {code}", exc) from exc
        except BotoCoreError as exc:
            logger.error(
                "DynamoDB unreachable",
                extra={"table": table, "reason": f"{operation}: {exc}"},
            )
            raise BackendUnavailableError(f"{operation} failed for {table}: {exc}", exc) from exc


def _schema_keys(schema: TableSchema) -> List[KeyAttribute]:
    keys = [schema.hash_key]
    if schema.range_key is not None:
        keys.append(schema.range_key)
    for index in schema.indexes:
        keys.append(index.hash_key)
        if index.range_key is not None:
            keys.append(index.range_key)
    return keys


def _key_schema(hash_key: KeyAttribute, range_key: Optional[KeyAttribute]) -> List[Dict[str, str]]:
    elements = [{"AttributeName": hash_key.name, "KeyType": "HASH"}]
    if range_key is not None:
        elements.append({"AttributeName": range_key.name, "KeyType": "RANGE"})
    return elements


def _keys_from_description(
    key_schema: List[Mapping[str, str]], types: Mapping[str, str]
) -> tuple[KeyAttribute, Optional[KeyAttribute]]:
    hash_key: Optional[KeyAttribute] = None
    range_key: Optional[KeyAttribute] = None
    for element in key_schema:
        attribute = KeyAttribute(
            name=element["AttributeName"],
            type=KeyType(types.get(element["AttributeName"], "S")),
        )
        if element["KeyType"] == "HASH":
            hash_key = attribute
        else:
            range_key = attribute
    if hash_key is None:
        raise BackendUnavailableError("Table description is missing a hash key.")
    return hash_key, range_key


def _schema_from_description(description: Mapping[str, Any]) -> TableSchema:
    types = {
        definition["AttributeName"]: definition["AttributeType"]
        for definition in description.get("AttributeDefinitions", [])
    }
    hash_key, range_key = _keys_from_description(description["KeySchema"], types)
    indexes = []
    for index in description.get("GlobalSecondaryIndexes", []):
        index_hash, index_range = _keys_from_description(index["KeySchema"], types)
        indexes.append(IndexSchema(name=index["IndexName"], hash_key=index_hash, range_key=index_range))
    return TableSchema(
        name=description["TableName"],
        hash_key=hash_key,
        range_key=range_key,
        indexes=tuple(indexes),
    )


def build_dynamodb_backend(settings: Settings) -> DynamoDBBackend:
    config = Config(
        connect_timeout=settings.backend_timeout,
        read_timeout=settings.backend_timeout,
        retries={"max_attempts": 2, "mode": "standard"},
    )
    client = boto3.client(
        "dynamodb",
        endpoint_url=settings.dynamodb_endpoint,
        region_name=settings.dynamodb_region,
        config=config,
    )
    return DynamoDBBackend(client, table_wait_seconds=settings.table_wait_seconds)
