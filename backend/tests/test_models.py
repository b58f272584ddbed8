import re
from datetime import date

import pytest
from pydantic import ValidationError

from core.models import (
    BulkExpenseCreate,
    Expense,
    ExpenseCreate,
    ExpenseQuery,
    ExpenseUpdate,
    MalaysianCategory,
    generate_expense_id,
    parse_iso_date,
)


class TestExpense:
    def test_create_valid_expense(self):
        """Test creating a valid expense fills the display amount."""
        expense = Expense(
            user_id="user-1",
            description="Nasi Kandar Pelita",
            amount=1250,
            category=MalaysianCategory.FOOD_MAMAK,
            date=date(2025, 1, 15),
        )
        assert expense.amount_myr == "RM 12.50"
        assert expense.id.startswith("exp_")
        assert expense.created_at.tzinfo is not None

    def test_expense_keys(self):
        """Test PK/SK and category index key generation."""
        expense = Expense(
            id="exp_1_abc",
            user_id="user-1",
            description="Petronas RON95",
            amount=4500,
            category=MalaysianCategory.TRANSPORT_FUEL,
            date=date(2025, 1, 12),
        )
        assert expense.get_pk() == "USER#user-1"
        assert expense.get_sk() == "EXPENSE#2025-01-12#exp_1_abc"
        assert expense.get_gsi1_pk() == "USER#user-1#CATEGORY#transport_fuel"
        assert expense.get_gsi1_sk() == "2025-01-12#exp_1_abc"

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            Expense(
                user_id="user-1",
                description="Kopi",
                amount=300,
                category=MalaysianCategory.FOOD_COFFEE,
                date=date(2025, 1, 1),
                confidence=101,
            )


def test_generate_expense_id_format():
    assert re.fullmatch(r"exp_\d{13}_[a-z0-9]{9}", generate_expense_id())
    assert generate_expense_id() != generate_expense_id()


class TestExpenseCreate:
    def test_trims_description(self):
        expense = ExpenseCreate(description="  Teh tarik  ", amount=250)
        assert expense.description == "Teh tarik"
        assert expense.date is None
        assert expense.category is None

    def test_whole_float_amount_is_accepted(self):
        assert ExpenseCreate(description="Kopi", amount=300.0).amount == 300

    @pytest.mark.parametrize("amount", [10.5, "1050", True])
    def test_amount_must_be_cents(self, amount):
        with pytest.raises(ValidationError, match="For RM 10.50, send 1050"):
            ExpenseCreate(description="Kopi", amount=amount)

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError, match="Amount must be greater than 0"):
            ExpenseCreate(description="Kopi", amount=amount)

    def test_description_required(self):
        with pytest.raises(ValidationError, match="Description is required"):
            ExpenseCreate(description="", amount=100)

    def test_iso_date_string_is_parsed(self):
        assert ExpenseCreate(description="Kopi", amount=300, date="2025-01-15").date == date(
            2025, 1, 15
        )

    @pytest.mark.parametrize("value", ["20250115", "2025-W03-3", "2025-02-30", 1736899200])
    def test_date_must_be_yyyy_mm_dd(self, value):
        with pytest.raises(ValidationError, match="Invalid date format. Use YYYY-MM-DD"):
            ExpenseCreate(description="Kopi", amount=300, date=value)

    def test_parse_iso_date(self):
        assert parse_iso_date("2024-02-29") == date(2024, 2, 29)
        with pytest.raises(ValueError, match="Invalid date format"):
            parse_iso_date("2024-2-29")


class TestExpenseUpdate:
    def test_changes_only_include_given_fields(self):
        update = ExpenseUpdate(amount=900, notes="shared with Ali")
        assert update.changes() == {"amount": 900, "notes": "shared with Ali"}

    def test_empty_update_rejected(self):
        with pytest.raises(ValidationError, match="No fields to update"):
            ExpenseUpdate()

    def test_date_is_not_updatable(self):
        """Unknown fields such as date are ignored, leaving nothing to update."""
        with pytest.raises(ValidationError, match="No fields to update"):
            ExpenseUpdate(date="2025-01-01")


class TestBulkExpenseCreate:
    def test_valid_batch(self):
        bulk = BulkExpenseCreate(
            expenses=[{"description": "Kopi", "amount": 300}] * 3
        )
        assert len(bulk.expenses) == 3

    def test_reports_failing_item_position(self):
        with pytest.raises(ValidationError, match="Expense 2: Description is required"):
            BulkExpenseCreate(
                expenses=[
                    {"description": "Kopi", "amount": 300},
                    {"description": "", "amount": 300},
                ]
            )

    def test_requires_list(self):
        with pytest.raises(ValidationError, match="expenses array is required"):
            BulkExpenseCreate(expenses="nope")


class TestExpenseQuery:
    def test_defaults(self):
        query = ExpenseQuery(user_id="user-1")
        assert query.limit == 20
        assert query.category is None

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_limit_bounds(self, limit):
        with pytest.raises(ValidationError):
            ExpenseQuery(user_id="user-1", limit=limit)
