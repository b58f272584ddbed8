import csv
import logging
import re
from datetime import date, datetime
from io import StringIO
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from core.currency import parse_amount_to_cents
from core.models import (
    ExpenseCreate,
    MalaysianCategory,
    MalaysianPaymentMethod,
    first_error_message,
)

logger = logging.getLogger(__name__)

# Malaysian bank exports rarely carry a usable header, so columns are positional
CSV_COLUMNS = ["date", "description", "amount", "merchant", "category"]

CSV_DEFAULT_PAYMENT_METHOD = MalaysianPaymentMethod.CREDIT_CARD

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_FALLBACK_DATE_FORMATS = ["%d %b %Y", "%d %B %Y", "%Y/%m/%d", "%d.%m.%Y", "%b %d, %Y"]


def parse_date(date_str: str, today: Optional[date] = None) -> date:
    """
    Parse a date from the formats Malaysian banks export.

    Accepts YYYY-MM-DD, DD/MM/YYYY and DD-MM-YYYY (day first), plus a few
    textual formats. Anything unparseable falls back to today.
    """
    cleaned = date_str.strip()

    try:
        if _ISO_DATE.match(cleaned):
            return date.fromisoformat(cleaned)

        day_first = _DAY_FIRST_DATE.match(cleaned)
        if day_first:
            day, month, year = (int(part) for part in day_first.groups())
            return date(year, month, day)
    except ValueError:
        logger.warning(f"Out-of-range date '{cleaned}'")

    for date_format in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, date_format).date()
        except ValueError:
            continue

    fallback = today or date.today()
    logger.warning(f"Unparseable date '{cleaned}', defaulting to {fallback.isoformat()}")
    return fallback


def _parse_category(raw: str) -> Optional[MalaysianCategory]:
    value = raw.strip().lower()
    if not value:
        return None
    try:
        return MalaysianCategory(value)
    except ValueError:
        logger.warning(f"Unknown category '{raw}', leaving it to auto-categorization")
        return None


def _is_header_row(row: Dict[str, str]) -> bool:
    return row["date"].lower() == "date" or row["description"].lower() == "description"


def _parse_expense_row(row: Dict[str, str]) -> Optional[ExpenseCreate]:
    """Parse a single CSV row; returns None for rows that should be skipped."""
    if not row["date"] or not row["description"] or not row["amount"]:
        return None

    if _is_header_row(row):
        return None

    amount = parse_amount_to_cents(row["amount"])
    if amount <= 0:
        return None

    return ExpenseCreate(
        description=row["description"],
        amount=amount,
        date=parse_date(row["date"]),
        merchant=row["merchant"] or None,
        category=_parse_category(row["category"]),
        payment_method=CSV_DEFAULT_PAYMENT_METHOD,
    )


def parse_csv_expenses(csv_content: str) -> Tuple[List[ExpenseCreate], List[str]]:
    """
    Parse CSV content and return expense data and any errors.

    Args:
        csv_content: Raw CSV file content as string

    Returns:
        Tuple of (list of ExpenseCreate objects, list of error messages)
    """
    expenses = []
    errors = []

    try:
        reader = csv.reader(StringIO(csv_content))

        for row_num, values in enumerate(reader, start=1):
            if not any(value.strip() for value in values):
                continue

            padded = (values + [""] * len(CSV_COLUMNS))[: len(CSV_COLUMNS)]
            row = {column: value.strip() for column, value in zip(CSV_COLUMNS, padded)}

            try:
                expense = _parse_expense_row(row)
            except ValidationError as e:
                errors.append(f"Row {row_num}: {first_error_message(e)}")
                continue
            except ValueError as e:
                errors.append(f"Row {row_num}: {str(e)}")
                continue

            if expense:
                expenses.append(expense)

    except csv.Error as e:
        errors.append(f"Failed to parse CSV: {str(e)}")

    logger.info(
        f"CSV parsing completed: {len(expenses)} valid expenses, {len(errors)} errors"
    )
    return expenses, errors


def validate_csv_file(file_content: bytes, max_size_kb: int = 500) -> List[str]:
    """
    Validate CSV file before processing.

    Args:
        file_content: Raw file content as bytes
        max_size_kb: Maximum file size in KB

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    file_size_kb = len(file_content) / 1024
    if file_size_kb > max_size_kb:
        errors.append(f"File too large: {file_size_kb:.1f}KB (max {max_size_kb}KB)")

    if len(file_content) == 0:
        errors.append("File is empty")

    try:
        file_content.decode("utf-8")
    except UnicodeDecodeError:
        errors.append("File must be UTF-8 encoded")

    return errors
