"""DynamoDB helper functions for MoneyMind expenses.

Single-table layout:
    PK = USER#{user_id}            SK = EXPENSE#{date}#{expense_id}
    GSI1PK = USER#{user_id}#CATEGORY#{category}   GSI1SK = {date}#{expense_id}
"""

import json
import logging
from datetime import date, datetime, UTC
from typing import Any, Dict, List, Optional, Tuple

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from core.currency import format_myr
from core.database import BATCH_WRITE_LIMIT, CATEGORY_INDEX_NAME, DynamoDBSetup
from core.models import (
    Expense,
    ExpenseCreate,
    ExpensePage,
    ExpenseQuery,
    ExpenseUpdate,
    FailedExpense,
)
from core.text_utils import search_key
from services.categorization_service import AutoCategorizationService

logger = logging.getLogger(__name__)

# Initialize database singleton
_db_setup = DynamoDBSetup()
_table = _db_setup.get_table()

_categorizer = AutoCategorizationService()

# "~" sorts after every character of an expense id, so the end bound covers the whole day
_END_OF_DAY_SUFFIX = "#~"

_OPTIONAL_FIELDS = [
    "merchant",
    "location",
    "notes",
    "is_gst_included",
    "gst_amount",
]


def _handle_error(error: ClientError, operation: str) -> None:
    """Handle and log DynamoDB client errors."""
    error_code = error.response["Error"]["Code"]
    logger.error(f"DynamoDB {operation} failed: {error_code} - {error}")

    if error_code == "ConditionalCheckFailedException":
        raise ValueError("Item already exists or condition not met")
    elif error_code == "ResourceNotFoundException":
        raise ValueError("Item not found")
    else:
        raise RuntimeError(f"Database operation failed: {error_code}")


def _user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def _expense_key(user_id: str, expense_id: str, expense_date: date) -> Dict[str, str]:
    return {
        "PK": _user_pk(user_id),
        "SK": f"EXPENSE#{expense_date.isoformat()}#{expense_id}",
    }


def _to_int(value: Any) -> Optional[int]:
    """DynamoDB hands numbers back as Decimal."""
    if value is None:
        return None
    return int(value)


def _build_expense(user_id: str, expense_data: ExpenseCreate) -> Expense:
    """Build a new Expense, auto-categorizing when no category was supplied."""
    category, confidence = _categorizer.resolve(
        expense_data.description, expense_data.amount, expense_data.category
    )
    now = datetime.now(UTC)

    return Expense(
        user_id=user_id,
        description=expense_data.description,
        amount=expense_data.amount,
        category=category,
        date=expense_data.date or now.date(),
        merchant=expense_data.merchant,
        location=expense_data.location,
        notes=expense_data.notes,
        payment_method=expense_data.payment_method,
        confidence=confidence,
        is_gst_included=expense_data.is_gst_included,
        gst_amount=expense_data.gst_amount,
        created_at=now,
        updated_at=now,
    )


def _expense_to_item(expense: Expense) -> Dict[str, Any]:
    """Convert an Expense into a DynamoDB item with its key and index attributes."""
    item = {
        "PK": expense.get_pk(),
        "SK": expense.get_sk(),
        "Type": "EXPENSE",
        "GSI1PK": expense.get_gsi1_pk(),
        "GSI1SK": expense.get_gsi1_sk(),
        "description_lowercase": search_key(expense.description),
        "id": expense.id,
        "user_id": expense.user_id,
        "description": expense.description,
        "amount": expense.amount,
        "amount_myr": expense.amount_myr,
        "category": expense.category.value,
        "date": expense.date.isoformat(),
        "created_at": expense.created_at.isoformat(),
    }

    if expense.updated_at:
        item["updated_at"] = expense.updated_at.isoformat()
    if expense.payment_method:
        item["payment_method"] = expense.payment_method.value
    if expense.confidence is not None:
        item["confidence"] = expense.confidence

    for field in _OPTIONAL_FIELDS:
        value = getattr(expense, field)
        if value is not None:
            item[field] = value

    return item


def _item_to_expense(item: Dict) -> Expense:
    """Convert DynamoDB item to Expense model."""
    updated_at = item.get("updated_at")
    return Expense(
        id=item["id"],
        user_id=item["user_id"],
        description=item["description"],
        amount=int(item["amount"]),
        amount_myr=item.get("amount_myr", ""),
        category=item["category"],
        date=date.fromisoformat(item["date"]),
        created_at=datetime.fromisoformat(item["created_at"]),
        updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        merchant=item.get("merchant"),
        location=item.get("location"),
        notes=item.get("notes"),
        payment_method=item.get("payment_method"),
        confidence=_to_int(item.get("confidence")),
        is_gst_included=item.get("is_gst_included"),
        gst_amount=_to_int(item.get("gst_amount")),
    )


def _encode_key(last_evaluated_key: Optional[Dict[str, Any]]) -> Optional[str]:
    if not last_evaluated_key:
        return None
    return json.dumps(last_evaluated_key, default=str)


def _decode_key(last_evaluated_key: str) -> Dict[str, Any]:
    try:
        decoded = json.loads(last_evaluated_key)
    except json.JSONDecodeError:
        raise ValueError("Invalid last_evaluated_key")
    if not isinstance(decoded, dict):
        raise ValueError("Invalid last_evaluated_key")
    return decoded


def _range_condition(
    attribute: str,
    prefix: str,
    start_date: Optional[date],
    end_date: Optional[date],
):
    """Sort-key condition for an optional date range (either bound may be open)."""
    key = Key(attribute)
    lower = f"{prefix}{start_date.isoformat()}" if start_date else None
    upper = f"{prefix}{end_date.isoformat()}{_END_OF_DAY_SUFFIX}" if end_date else None

    if lower and upper:
        return key.between(lower, upper)
    if lower:
        return key.gte(lower)
    if upper:
        return key.lte(upper)
    return key.begins_with(prefix) if prefix else None


# ============================================================================
# CREATE OPERATIONS
# ============================================================================


def create_expense(user_id: str, expense_data: ExpenseCreate) -> Optional[Expense]:
    """Create a new expense, auto-categorizing it when no category is given."""
    expense = _build_expense(user_id, expense_data)

    try:
        _table.put_item(Item=_expense_to_item(expense))
        logger.info(
            f"Created expense {expense.id} for {user_id}: {expense.amount_myr} "
            f"({expense.category.value})"
        )
        return expense
    except ClientError as e:
        _handle_error(e, "create expense")


def bulk_create_expenses(
    user_id: str, expenses: List[ExpenseCreate]
) -> Tuple[List[Expense], List[FailedExpense]]:
    """Create many expenses, writing in batches of 25.

    Failures are collected per expense (or per batch when the write itself
    fails) and never abort the remaining batches.
    """
    successful: List[Expense] = []
    failed: List[FailedExpense] = []

    for offset in range(0, len(expenses), BATCH_WRITE_LIMIT):
        batch = expenses[offset : offset + BATCH_WRITE_LIMIT]
        prepared: List[Tuple[ExpenseCreate, Expense]] = []

        for expense_data in batch:
            try:
                prepared.append((expense_data, _build_expense(user_id, expense_data)))
            except ValueError as e:
                failed.append(FailedExpense(expense=expense_data, error=str(e)))

        if not prepared:
            continue

        try:
            with _table.batch_writer() as writer:
                for _, expense in prepared:
                    writer.put_item(Item=_expense_to_item(expense))
            successful.extend(expense for _, expense in prepared)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            logger.error(f"DynamoDB batch write failed: {error_code} - {e}")
            failed.extend(
                FailedExpense(
                    expense=expense_data,
                    error=f"Database operation failed: {error_code}",
                )
                for expense_data, _ in prepared
            )

    logger.info(
        f"Bulk create for {user_id}: {len(successful)} successful, {len(failed)} failed"
    )
    return successful, failed


# ============================================================================
# READ OPERATIONS
# ============================================================================


def list_expenses(expense_query: ExpenseQuery) -> Optional[ExpensePage]:
    """List a user's expenses newest first, one page at a time.

    A category filter is served by the CategoryDateIndex GSI; otherwise the
    user's partition is queried directly.
    """
    query_kwargs: Dict[str, Any] = {
        "ScanIndexForward": False,
        "Limit": expense_query.limit,
    }

    if expense_query.category:
        partition = Key("GSI1PK").eq(
            f"{_user_pk(expense_query.user_id)}#CATEGORY#{expense_query.category.value}"
        )
        sort_condition = _range_condition(
            "GSI1SK", "", expense_query.start_date, expense_query.end_date
        )
        query_kwargs["IndexName"] = CATEGORY_INDEX_NAME
    else:
        partition = Key("PK").eq(_user_pk(expense_query.user_id))
        sort_condition = _range_condition(
            "SK", "EXPENSE#", expense_query.start_date, expense_query.end_date
        )

    query_kwargs["KeyConditionExpression"] = (
        partition & sort_condition if sort_condition is not None else partition
    )

    if expense_query.last_evaluated_key:
        query_kwargs["ExclusiveStartKey"] = _decode_key(expense_query.last_evaluated_key)

    try:
        response = _table.query(**query_kwargs)
        expenses = [_item_to_expense(item) for item in response["Items"]]
        last_key = response.get("LastEvaluatedKey")

        logger.info(f"Retrieved {len(expenses)} expenses for {expense_query.user_id}")
        return ExpensePage(
            items=expenses,
            last_evaluated_key=_encode_key(last_key),
            has_more=bool(last_key),
        )
    except ClientError as e:
        _handle_error(e, "list expenses")


def get_expenses_in_range(user_id: str, start_date: date, end_date: date) -> List[Expense]:
    """Return every expense between two dates (inclusive), following all pages."""
    expenses: List[Expense] = []
    last_key: Optional[str] = None

    while True:
        page = list_expenses(
            ExpenseQuery(
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
                limit=1000,
                last_evaluated_key=last_key,
            )
        )
        expenses.extend(page.items)
        if not page.has_more:
            return expenses
        last_key = page.last_evaluated_key


def get_expense(user_id: str, expense_id: str, expense_date: date) -> Optional[Expense]:
    """Get a single expense by ID; the date locates it within the partition."""
    try:
        response = _table.get_item(Key=_expense_key(user_id, expense_id, expense_date))

        if "Item" in response:
            return _item_to_expense(response["Item"])
        return None
    except ClientError as e:
        _handle_error(e, "get expense")


def get_recent_expenses(user_id: str, limit: int = 5) -> List[Expense]:
    """Most recent expenses for the dashboard."""
    page = list_expenses(ExpenseQuery(user_id=user_id, limit=limit))
    return page.items


def search_expenses_by_description(
    user_id: str, search_term: str, limit: int = 20
) -> List[Expense]:
    """Case-insensitive substring search on the description, newest first.

    DynamoDB applies Limit before the filter, so pages are read until enough
    matches are found or the partition is exhausted.
    """
    term = search_key(search_term)
    if not term:
        return []

    matches: List[Expense] = []
    query_kwargs: Dict[str, Any] = {
        "KeyConditionExpression": Key("PK").eq(_user_pk(user_id))
        & Key("SK").begins_with("EXPENSE#"),
        "FilterExpression": Attr("description_lowercase").contains(term),
        "ScanIndexForward": False,
        "Limit": max(limit, 100),
    }

    try:
        while len(matches) < limit:
            response = _table.query(**query_kwargs)
            matches.extend(_item_to_expense(item) for item in response["Items"])

            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_kwargs["ExclusiveStartKey"] = last_key

        return matches[:limit]
    except ClientError as e:
        _handle_error(e, "search expenses")


# ============================================================================
# UPDATE OPERATIONS
# ============================================================================


def update_expense(
    user_id: str, expense_id: str, expense_date: date, update_data: ExpenseUpdate
) -> Optional[Expense]:
    """Apply a partial update; returns None when the expense does not exist."""
    changes = update_data.changes()
    attributes: Dict[str, Any] = {}

    if "description" in changes:
        attributes["description"] = changes["description"]
        attributes["description_lowercase"] = search_key(changes["description"])

    if "amount" in changes:
        attributes["amount"] = changes["amount"]
        attributes["amount_myr"] = format_myr(changes["amount"])

    if update_data.category is not None:
        # Changing category moves the item to another GSI partition
        attributes["category"] = update_data.category.value
        attributes["GSI1PK"] = f"{_user_pk(user_id)}#CATEGORY#{update_data.category.value}"
        attributes["confidence"] = AutoCategorizationService.MANUAL_CONFIDENCE

    if update_data.payment_method is not None:
        attributes["payment_method"] = update_data.payment_method.value

    for field in _OPTIONAL_FIELDS:
        if field in changes:
            attributes[field] = changes[field]

    attributes["updated_at"] = datetime.now(UTC).isoformat()

    # Placeholders for every attribute; several (location, date) are reserved words
    update_expressions = [f"#{name} = :{name}" for name in attributes]

    try:
        response = _table.update_item(
            Key=_expense_key(user_id, expense_id, expense_date),
            UpdateExpression=f"SET {', '.join(update_expressions)}",
            ExpressionAttributeNames={f"#{name}": name for name in attributes},
            ExpressionAttributeValues={f":{name}": value for name, value in attributes.items()},
            ConditionExpression="attribute_exists(PK)",
            ReturnValues="ALL_NEW",
        )
        logger.info(f"Updated expense {expense_id}: {', '.join(sorted(changes))}")
        return _item_to_expense(response["Attributes"])
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            return None
        _handle_error(e, "update expense")


# ============================================================================
# DELETE OPERATIONS
# ============================================================================


def delete_expense(user_id: str, expense_id: str, expense_date: date) -> Optional[bool]:
    """Delete expense; returns False when it does not exist."""
    try:
        _table.delete_item(
            Key=_expense_key(user_id, expense_id, expense_date),
            ConditionExpression="attribute_exists(PK)",
        )
        logger.info(f"Deleted expense: {expense_id}")
        return True
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            return False
        _handle_error(e, "delete expense")


def total_amount(expenses: List[Expense]) -> int:
    """Sum of expense amounts in cents."""
    return sum(expense.amount for expense in expenses)
