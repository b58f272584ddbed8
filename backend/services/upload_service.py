"""Service to handle the CSV expense upload pipeline.

Encapsulates parsing (file validation is done by csv_service beforehand), the
per-upload row cap and persistence through the bulk insert. Returns the
results for the API to compose into a response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from core.models import Expense, FailedExpense
from services import dynamo_expenses as db
from services.csv_service import parse_csv_expenses

logger = logging.getLogger(__name__)

MAX_CSV_EXPENSES = 25


@dataclass
class UploadResult:
    """Outcome of processing one CSV upload."""

    successful: List[Expense] = field(default_factory=list)
    failed: List[FailedExpense] = field(default_factory=list)
    parse_errors: List[str] = field(default_factory=list)
    valid_expenses: int = 0

    @property
    def total_rows(self) -> int:
        return self.valid_expenses + len(self.parse_errors)


class UploadProcessingService:
    """Orchestrates CSV upload expense processing."""

    def __init__(self, max_expenses: int = MAX_CSV_EXPENSES):
        self.max_expenses = max_expenses

    def process_csv_text(self, user_id: str, csv_text: str) -> UploadResult:
        """Parse CSV text and persist its expenses for a user.

        Raises:
            ValueError: when the file holds no valid expenses or too many
        """
        expenses, parse_errors = parse_csv_expenses(csv_text)

        if not expenses:
            raise ValueError("No valid expenses found in CSV file")

        if len(expenses) > self.max_expenses:
            raise ValueError(f"Maximum {self.max_expenses} expenses per CSV upload")

        successful, failed = db.bulk_create_expenses(user_id, expenses)
        if parse_errors:
            logger.warning(f"CSV upload for {user_id} skipped rows: {parse_errors}")

        return UploadResult(
            successful=successful,
            failed=failed,
            parse_errors=parse_errors,
            valid_expenses=len(expenses),
        )
