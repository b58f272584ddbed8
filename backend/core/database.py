import logging
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import ConditionBase
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

CATEGORY_INDEX_NAME = "CategoryDateIndex"
BATCH_WRITE_LIMIT = 25
DEFAULT_REGION = "ap-southeast-1"

_PRIMARY_KEYS = ("PK", "SK")
_INDEX_KEYS = {CATEGORY_INDEX_NAME: ("GSI1PK", "GSI1SK")}

# Shared between DynamoDBSetup instances so every import sees the same rows
LOCAL_TABLES: Dict[str, "InMemoryDynamoTable"] = {}

TABLE_SCHEMA: Dict[str, Any] = {
    "KeySchema": [
        {"AttributeName": "PK", "KeyType": "HASH"},
        {"AttributeName": "SK", "KeyType": "RANGE"},
    ],
    "AttributeDefinitions": [
        {"AttributeName": name, "AttributeType": "S"}
        for name in ("PK", "SK", "GSI1PK", "GSI1SK")
    ],
    "GlobalSecondaryIndexes": [
        {
            "IndexName": CATEGORY_INDEX_NAME,
            "KeySchema": [
                {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        }
    ],
    "BillingMode": "PAY_PER_REQUEST",
}

Comparator = Callable[[Any, Tuple[Any, ...]], bool]

_COMPARATORS: Dict[str, Comparator] = {
    "Equals": lambda value, args: value == args[0],
    "BeginsWith": lambda value, args: isinstance(value, str) and value.startswith(args[0]),
    "Between": lambda value, args: value is not None and args[0] <= value <= args[1],
    "GreaterThanEquals": lambda value, args: value is not None and value >= args[0],
    "LessThanEquals": lambda value, args: value is not None and value <= args[0],
    "Contains": lambda value, args: isinstance(value, str) and args[0] in value,
}


def _conditional_check_failed(message: str, operation: str) -> ClientError:
    error = {"Code": "ConditionalCheckFailedException", "Message": message}
    return ClientError({"Error": error}, operation)


def matches(item: Dict[str, Any], condition: ConditionBase) -> bool:
    """Evaluate a boto3 condition object against a plain item dict.

    Handles the key and filter conditions the expense store builds:
    And, Equals, BeginsWith, Between, GreaterThanEquals, LessThanEquals
    and Contains. Anything else never matches.
    """

    operator = type(condition).__name__
    operands = getattr(condition, "_values", ())

    if operator == "And":
        return all(matches(item, part) for part in operands)

    comparator = _COMPARATORS.get(operator)
    if comparator is None or not operands:
        return False

    attribute = getattr(operands[0], "name", "")
    return comparator(item.get(attribute), tuple(operands[1:]))


def _requires(expression: Optional[str], function: str) -> bool:
    return bool(expression) and function in expression


class _InMemoryBatchWriter:
    """Buffers puts like boto3's Table.batch_writer() and flushes every 25."""

    def __init__(self, table: "InMemoryDynamoTable"):
        self._table = table
        self._buffer: List[Dict[str, Any]] = []

    def __enter__(self) -> "_InMemoryBatchWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._flush()

    def put_item(self, Item: Dict[str, Any]) -> None:
        self._buffer.append(Item)
        if len(self._buffer) >= BATCH_WRITE_LIMIT:
            self._flush()

    def _flush(self) -> None:
        while self._buffer:
            self._table.put_item(Item=self._buffer.pop(0))


class InMemoryDynamoTable:
    """Dict-backed stand-in for a boto3 Table, used when ENVIRONMENT=local."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        self._rows: Dict[Tuple[str, str], Dict[str, Any]] = {}

    @staticmethod
    def _key_of(record: Dict[str, Any]) -> Tuple[str, str]:
        return record["PK"], record["SK"]

    def load(self) -> None:  # pragma: no cover - boto3 Table parity
        return None

    def delete(self) -> None:
        self._rows.clear()

    def batch_writer(self) -> _InMemoryBatchWriter:
        return _InMemoryBatchWriter(self)

    def put_item(
        self,
        Item: Dict[str, Any],
        ConditionExpression: Optional[str] = None,
    ) -> Dict[str, Any]:
        key = self._key_of(Item)
        if _requires(ConditionExpression, "attribute_not_exists") and key in self._rows:
            raise _conditional_check_failed("Item already exists", "PutItem")

        self._rows[key] = dict(Item)
        return {"ResponseMetadata": {}}

    def get_item(self, Key: Dict[str, str]) -> Dict[str, Any]:
        row = self._rows.get(self._key_of(Key))
        if row is None:
            return {}
        return {"Item": dict(row)}

    def scan(self, FilterExpression: Optional[ConditionBase] = None) -> Dict[str, Any]:
        rows = [dict(row) for row in self._rows.values()]
        if FilterExpression is not None:
            rows = [row for row in rows if matches(row, FilterExpression)]
        return {"Items": rows, "Count": len(rows)}

    def query(
        self,
        KeyConditionExpression: ConditionBase,
        IndexName: Optional[str] = None,
        FilterExpression: Optional[ConditionBase] = None,
        ScanIndexForward: bool = True,
        Limit: Optional[int] = None,
        ExclusiveStartKey: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        hash_key, range_key = _INDEX_KEYS.get(IndexName, _PRIMARY_KEYS)

        # A GSI only holds rows that carry both of its key attributes
        hits = sorted(
            (
                row
                for row in self._rows.values()
                if hash_key in row and range_key in row and matches(row, KeyConditionExpression)
            ),
            key=lambda row: row[range_key],
            reverse=not ScanIndexForward,
        )

        if ExclusiveStartKey:
            resume_after = self._key_of(ExclusiveStartKey)
            keys = [self._key_of(row) for row in hits]
            hits = hits[keys.index(resume_after) + 1 :] if resume_after in keys else []

        # Limit bounds the rows read, the filter runs afterwards
        page = hits[:Limit] if Limit else hits
        truncated = Limit is not None and len(hits) > Limit

        items = [dict(row) for row in page]
        if FilterExpression is not None:
            items = [row for row in items if matches(row, FilterExpression)]

        response: Dict[str, Any] = {"Items": items, "Count": len(items), "ScannedCount": len(page)}
        if truncated and page:
            boundary = page[-1]
            attributes = {"PK", "SK", hash_key, range_key}
            response["LastEvaluatedKey"] = {name: boundary[name] for name in attributes}
        return response

    def update_item(
        self,
        Key: Dict[str, str],
        UpdateExpression: str,
        ExpressionAttributeValues: Dict[str, Any],
        ExpressionAttributeNames: Optional[Dict[str, str]] = None,
        ConditionExpression: Optional[str] = None,
        ReturnValues: Optional[str] = None,
    ) -> Dict[str, Any]:
        key = self._key_of(Key)
        current = self._rows.get(key)
        if _requires(ConditionExpression, "attribute_exists") and current is None:
            raise _conditional_check_failed("Item does not exist", "UpdateItem")

        row = dict(current if current is not None else Key)
        aliases = ExpressionAttributeNames or {}

        # Only "SET a = :x, b = :y" expressions are produced by the store
        for clause in UpdateExpression.replace("SET", "", 1).split(","):
            name, placeholder = (part.strip() for part in clause.split("=", 1))
            row[aliases.get(name, name)] = ExpressionAttributeValues[placeholder]

        self._rows[key] = row
        if ReturnValues == "ALL_NEW":
            return {"Attributes": dict(row)}
        return {"ResponseMetadata": {}}

    def delete_item(
        self,
        Key: Dict[str, str],
        ConditionExpression: Optional[str] = None,
    ) -> Dict[str, Any]:
        key = self._key_of(Key)
        if key in self._rows:
            del self._rows[key]
        elif _requires(ConditionExpression, "attribute_exists"):
            raise _conditional_check_failed("Item does not exist", "DeleteItem")
        return {"ResponseMetadata": {}}


def _aws_region() -> str:
    for variable in ("REGION", "AWS_REGION", "AWS_DEFAULT_REGION"):
        value = os.getenv(variable)
        if value:
            return value
    return DEFAULT_REGION


class DynamoDBSetup:
    """Process-wide holder of the expenses table handle."""

    _instance: Optional["DynamoDBSetup"] = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._ready = False
            cls._instance = instance
        return cls._instance

    def __init__(self):
        if self._ready:
            return

        self.is_local = os.getenv("ENVIRONMENT") == "local"
        if self.is_local:
            self.table_name = os.getenv("DYNAMODB_TABLE_NAME", "moneymind-local")
            if self.table_name not in LOCAL_TABLES:
                LOCAL_TABLES[self.table_name] = InMemoryDynamoTable(self.table_name)
            self.dynamodb = None
        else:
            self.table_name = os.getenv("DYNAMODB_TABLE_NAME", "moneymind-expenses")
            self.dynamodb = boto3.resource("dynamodb", region_name=_aws_region())

        self._ready = True

    def create_table_if_not_exists(self) -> bool:
        """Make sure the expenses table exists, creating it on first deploy."""

        if self.is_local:
            return True

        try:
            self.dynamodb.Table(self.table_name).load()
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                logger.error(f"Could not describe table {self.table_name}: {e}")
                return False
            return self._create_table()

        logger.info(f"Using existing table {self.table_name}")
        return True

    def _create_table(self) -> bool:
        try:
            table = self.dynamodb.create_table(TableName=self.table_name, **TABLE_SCHEMA)
            table.wait_until_exists()
        except ClientError as e:
            logger.error(f"Could not create table {self.table_name}: {e}")
            return False

        logger.info(f"Created table {self.table_name} with index {CATEGORY_INDEX_NAME}")
        return True

    def get_table(self):
        if self.is_local:
            return LOCAL_TABLES[self.table_name]
        return self.dynamodb.Table(self.table_name)


def initialize_database() -> bool:
    """Connect to DynamoDB and create the expenses table if it is missing."""

    return DynamoDBSetup().create_table_if_not_exists()
