import datetime as dt
import re
import secrets
import string
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from core.currency import format_myr

T = TypeVar("T")

AMOUNT_IN_CENTS_MESSAGE = "Amount must be in cents (integer value). For RM 10.50, send 1050"
MAX_BULK_EXPENSES = 100
INVALID_DATE_MESSAGE = "Invalid date format. Use YYYY-MM-DD"

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class MalaysianCategory(str, Enum):
    """Spending categories tuned for Malaysian habits."""

    # Food & Dining
    FOOD_MAMAK = "food_mamak"
    FOOD_RESTAURANT = "food_restaurant"
    FOOD_FOOD_COURT = "food_food_court"
    FOOD_DELIVERY = "food_delivery"
    FOOD_GROCERIES = "food_groceries"
    FOOD_COFFEE = "food_coffee"

    # Transportation
    TRANSPORT_GRAB = "transport_grab"
    TRANSPORT_FUEL = "transport_fuel"
    TRANSPORT_PARKING = "transport_parking"
    TRANSPORT_TOLL = "transport_toll"
    TRANSPORT_PUBLIC = "transport_public"
    TRANSPORT_MAINTENANCE = "transport_maintenance"

    # Shopping
    SHOPPING_CLOTHING = "shopping_clothing"
    SHOPPING_ELECTRONICS = "shopping_electronics"
    SHOPPING_ONLINE = "shopping_online"
    SHOPPING_PHARMACY = "shopping_pharmacy"

    # Bills & Utilities
    BILLS_ELECTRICITY = "bills_electricity"
    BILLS_WATER = "bills_water"
    BILLS_INTERNET = "bills_internet"
    BILLS_MOBILE = "bills_mobile"
    BILLS_INSURANCE = "bills_insurance"

    # Entertainment
    ENTERTAINMENT_MOVIES = "entertainment_movies"
    ENTERTAINMENT_STREAMING = "entertainment_streaming"
    ENTERTAINMENT_GAMING = "entertainment_gaming"

    # Health & Medical
    HEALTH_CLINIC = "health_clinic"
    HEALTH_PHARMACY = "health_pharmacy"
    HEALTH_WELLNESS = "health_wellness"

    # Others
    OTHER_CASH_WITHDRAWAL = "other_cash_withdrawal"
    OTHER_TRANSFER = "other_transfer"
    OTHER_MISCELLANEOUS = "other_miscellaneous"


class MalaysianPaymentMethod(str, Enum):
    """Payment channels, including local e-wallets and online banking."""

    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"

    GRABPAY = "grabpay"
    TOUCH_N_GO = "touch_n_go"
    BOOST = "boost"
    SHOPEE_PAY = "shopee_pay"
    MAE = "mae"

    MAYBANK = "maybank"
    CIMB = "cimb"
    PUBLIC_BANK = "public_bank"
    RHB = "rhb"
    HONG_LEONG = "hong_leong"

    BANK_TRANSFER = "bank_transfer"
    QR_PAY = "qr_pay"


def generate_expense_id() -> str:
    """Expense IDs look like exp_1723012345678_k3j9x0a2b."""
    millis = int(dt.datetime.now(dt.UTC).timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"exp_{millis}_{suffix}"


def parse_iso_date(value: str) -> dt.date:
    """Parse a strict YYYY-MM-DD date; compact and week forms are rejected."""
    if not _ISO_DATE.match(value):
        raise ValueError(INVALID_DATE_MESSAGE)
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        raise ValueError(INVALID_DATE_MESSAGE)


def _validate_optional_date(value: Any) -> Optional[dt.date]:
    if value is None:
        return None
    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return value
    if isinstance(value, str):
        return parse_iso_date(value.strip())
    raise ValueError(INVALID_DATE_MESSAGE)


def _validate_amount_cents(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(AMOUNT_IN_CENTS_MESSAGE)
    if value <= 0:
        raise ValueError("Amount must be greater than 0")
    if not float(value).is_integer():
        raise ValueError(AMOUNT_IN_CENTS_MESSAGE)
    return int(value)


def _validate_description(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("Description is required")
    return value.strip()


def first_error_message(exc: ValidationError) -> str:
    """Return a readable message for the first error in a ValidationError."""
    error = exc.errors()[0]
    ctx_error = error.get("ctx", {}).get("error")
    message = str(ctx_error) if ctx_error else error.get("msg", "Invalid value")
    field = ".".join(str(part) for part in error.get("loc", ()))
    if ctx_error or not field:
        return message
    return f"{field}: {message}"


class Expense(BaseModel):
    """Expense entity stored under the user's partition, sorted by date."""

    id: str = Field(default_factory=generate_expense_id, description="Unique expense ID")
    user_id: str = Field(..., description="Owner of the expense")
    description: str = Field(..., description="Expense description")
    amount: int = Field(..., description="Amount in MYR cents (RM 10.50 = 1050)")
    amount_myr: str = Field("", description="Display amount, e.g. 'RM 10.50'")
    category: MalaysianCategory = Field(..., description="Assigned category")
    date: dt.date = Field(..., description="Expense date")
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))
    updated_at: Optional[dt.datetime] = None
    merchant: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[MalaysianPaymentMethod] = None
    confidence: Optional[int] = Field(
        None, ge=0, le=100, description="Auto-categorization confidence (0-100)"
    )
    is_gst_included: Optional[bool] = None
    gst_amount: Optional[int] = Field(None, description="GST amount in cents")

    @model_validator(mode="after")
    def fill_display_amount(self):
        if not self.amount_myr:
            self.amount_myr = format_myr(self.amount)
        return self

    def get_pk(self) -> str:
        """Partition key: USER#{user_id}."""
        return f"USER#{self.user_id}"

    def get_sk(self) -> str:
        """Sort key: EXPENSE#{date}#{id}, so a partition query reads in date order."""
        return f"EXPENSE#{self.date.isoformat()}#{self.id}"

    def get_gsi1_pk(self) -> str:
        return f"USER#{self.user_id}#CATEGORY#{self.category.value}"

    def get_gsi1_sk(self) -> str:
        return f"{self.date.isoformat()}#{self.id}"


class ExpenseCreate(BaseModel):
    """Request model for creating a new expense."""

    description: str
    amount: int
    category: Optional[MalaysianCategory] = None
    date: Optional[dt.date] = None
    merchant: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[MalaysianPaymentMethod] = None
    is_gst_included: Optional[bool] = None
    gst_amount: Optional[int] = None

    @field_validator("description", mode="before")
    def description_must_not_be_empty(cls, value: Any) -> str:
        if value is None:
            raise ValueError("Description is required")
        return _validate_description(str(value))

    @field_validator("amount", mode="before")
    def amount_must_be_positive_cents(cls, value: Any) -> int:
        return _validate_amount_cents(value)

    @field_validator("date", mode="before")
    def date_must_be_iso(cls, value: Any) -> Optional[dt.date]:
        return _validate_optional_date(value)


class ExpenseUpdate(BaseModel):
    """Request model for a partial expense update.

    The date is part of the sort key and cannot be changed here.
    """

    description: Optional[str] = None
    amount: Optional[int] = None
    category: Optional[MalaysianCategory] = None
    merchant: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[MalaysianPaymentMethod] = None
    is_gst_included: Optional[bool] = None
    gst_amount: Optional[int] = None

    @field_validator("description", mode="before")
    def description_must_not_be_blank(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return _validate_description(str(value))

    @field_validator("amount", mode="before")
    def amount_must_be_positive_cents(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        return _validate_amount_cents(value)

    @model_validator(mode="after")
    def require_at_least_one_field(self):
        if not self.changes():
            raise ValueError("No fields to update")
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly provided with a value."""
        return self.model_dump(exclude_none=True)


class BulkExpenseCreate(BaseModel):
    """Request model for bulk expense creation."""

    expenses: List[ExpenseCreate]

    @field_validator("expenses", mode="before")
    def validate_each_expense(cls, value: Any) -> List[ExpenseCreate]:
        if not isinstance(value, list):
            raise ValueError("expenses array is required")
        if not value:
            raise ValueError("At least one expense is required")
        if len(value) > MAX_BULK_EXPENSES:
            raise ValueError(
                f"Maximum {MAX_BULK_EXPENSES} expenses per batch. "
                "For larger uploads, use multiple requests."
            )

        validated = []
        for index, item in enumerate(value, start=1):
            try:
                validated.append(ExpenseCreate.model_validate(item))
            except ValidationError as exc:
                raise ValueError(f"Expense {index}: {first_error_message(exc)}")
        return validated


class ExpenseQuery(BaseModel):
    """Filter and pagination options for listing expenses."""

    user_id: str
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    category: Optional[MalaysianCategory] = None
    limit: int = Field(20, ge=1, le=1000)
    last_evaluated_key: Optional[str] = None


class FailedExpense(BaseModel):
    """An expense that could not be written during a bulk insert."""

    expense: ExpenseCreate
    error: str


class ExpensePage(BaseModel):
    """One page of expenses plus the key to continue from."""

    items: List[Expense]
    last_evaluated_key: Optional[str] = None
    has_more: bool = False


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class APIResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""

    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None


class Pagination(BaseModel):
    has_more: bool
    last_evaluated_key: Optional[str] = None
    limit: int
    count: int


class ExpenseData(BaseModel):
    expense: Expense


class ExpenseListData(BaseModel):
    expenses: List[Expense]
    pagination: Pagination


class ExpenseSearchData(BaseModel):
    expenses: List[Expense]
    search_term: str
    count: int


class BulkSummary(BaseModel):
    total_processed: int
    successful: int
    failed: int
    total_amount: int
    total_amount_myr: str


class CsvProcessing(BaseModel):
    total_rows: int
    valid_expenses: int
    duplicates_skipped: int = 0
    parse_errors: List[str] = Field(default_factory=list)


class BulkCreateData(BaseModel):
    successful: List[Expense]
    failed: List[FailedExpense]
    summary: BulkSummary
    csv_processing: Optional[CsvProcessing] = None


class CategoryBreakdown(BaseModel):
    name: str
    total: int
    total_myr: str
    count: int
    percentage: int
    avg_per_transaction: int
    avg_per_transaction_myr: str


class DailySpending(BaseModel):
    date: str
    amount: int
    amount_myr: str


class SpendingTrends(BaseModel):
    daily_spending: List[DailySpending] = Field(default_factory=list)
    peak_spending_day: Optional[DailySpending] = None
    lowest_spending_day: Optional[DailySpending] = None


class MerchantTotal(BaseModel):
    merchant: str
    total: int
    total_myr: str


class Analytics(BaseModel):
    total_spent: int
    total_spent_myr: str
    transaction_count: int
    budget_remaining: int
    budget_remaining_myr: str
    budget_usage_percentage: int
    daily_average: int
    daily_average_myr: str
    category_breakdown: List[CategoryBreakdown]
    spending_trends: SpendingTrends
    smart_insights: List[str]
    top_merchants: List[MerchantTotal]


class DateRange(BaseModel):
    start_date: dt.date
    end_date: dt.date


class AnalyticsData(BaseModel):
    analytics: Analytics
    period: str
    date_range: DateRange


class CategorySpending(BaseModel):
    category: str
    amount: int
    amount_myr: str
    percentage: int
    transaction_count: int


class SpendingSummary(BaseModel):
    start_date: dt.date
    end_date: dt.date
    total_spent: int
    total_spent_myr: str
    transaction_count: int
    avg_transaction_amount: int
    avg_transaction_amount_myr: str
    spending_by_category: List[CategorySpending]
