from __future__ import annotations

import logging
import os
from datetime import date, datetime, UTC
from typing import Any, Dict, List, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from pydantic import BaseModel

from core.currency import format_myr
from core.models import (
    AnalyticsData,
    APIResponse,
    BulkCreateData,
    BulkExpenseCreate,
    BulkSummary,
    CsvProcessing,
    DateRange,
    Expense,
    ExpenseCreate,
    ExpenseData,
    ExpenseListData,
    ExpenseQuery,
    ExpenseSearchData,
    ExpenseUpdate,
    FailedExpense,
    MalaysianCategory,
    Pagination,
    SpendingSummary,
    parse_iso_date,
)
from services import dynamo_expenses as db
from services.analytics_service import AnalyticsService
from services.csv_service import validate_csv_file
from services.upload_service import UploadProcessingService

logger = logging.getLogger("moneymind.api")
router = APIRouter(prefix="/api")

DEFAULT_USER_ID = "demo-user-malaysia"
MIN_SEARCH_LENGTH = 2
DATE_REQUIRED_MESSAGE = "Date query parameter is required (YYYY-MM-DD format)"


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: Optional[str] = None


def current_user_id(user_id: Optional[str] = None) -> str:
    """Resolve the requesting user, falling back to the demo user."""
    return user_id or os.getenv("DEFAULT_USER_ID", DEFAULT_USER_ID)


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} format. Use YYYY-MM-DD",
        )


def _require_date(value: Optional[str]) -> date:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=DATE_REQUIRED_MESSAGE,
        )
    return _parse_date(value, "date")


def _expense_not_found(expense_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Expense '{expense_id}' not found",
    )


def _bulk_summary(
    successful: List[Expense], failed: List[FailedExpense]
) -> BulkSummary:
    total = db.total_amount(successful)
    return BulkSummary(
        total_processed=len(successful) + len(failed),
        successful=len(successful),
        failed=len(failed),
        total_amount=total,
        total_amount_myr=format_myr(total),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint for monitoring and validation."""
    logger.info("Health check endpoint called")

    config = getattr(request.app.state, "config", None)
    environment = getattr(config, "environment", None) if config else None
    version = getattr(config, "version", "1.0.0")

    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC).isoformat(),
        version=version,
        environment=environment,
    )


@router.get("/")
async def root(request: Request) -> Dict[str, Any]:
    """Root endpoint providing service metadata and the endpoint map."""
    config = getattr(request.app.state, "config", None)

    message = getattr(config, "root_message", "MoneyMind API")
    version = getattr(config, "version", "1.0.0")

    response: Dict[str, Any] = {
        "message": message,
        "version": version,
        "endpoints": {
            "health": "GET /api/health",
            "expenses": "GET, POST /api/expenses",
            "expense": "GET, PUT, DELETE /api/expenses/{id}?date=YYYY-MM-DD",
            "search": "GET /api/expenses/search?q=",
            "recent": "GET /api/expenses/recent",
            "bulk": "POST /api/expenses/bulk",
            "csv": "POST /api/expenses/csv",
            "analytics": "GET /api/analytics?period=7d|30d|90d|1y",
            "spending": "GET /api/analytics/spending?start_date=&end_date=",
        },
    }

    if config and getattr(config, "environment", None):
        response["environment"] = config.environment

    return response


# ============================================================================
# EXPENSE ENDPOINTS
# ============================================================================


@router.get("/expenses", response_model=APIResponse[ExpenseListData])
async def list_expenses(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[MalaysianCategory] = None,
    limit: int = Query(20, ge=1, le=1000),
    last_evaluated_key: Optional[str] = None,
    user_id: str = Depends(current_user_id),
) -> APIResponse[ExpenseListData]:
    """List expenses newest first with optional date and category filters."""
    expense_query = ExpenseQuery(
        user_id=user_id,
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
        category=category,
        limit=limit,
        last_evaluated_key=last_evaluated_key,
    )
    page = db.list_expenses(expense_query)

    return APIResponse(
        success=True,
        data=ExpenseListData(
            expenses=page.items,
            pagination=Pagination(
                has_more=page.has_more,
                last_evaluated_key=page.last_evaluated_key,
                limit=expense_query.limit,
                count=len(page.items),
            ),
        ),
    )


@router.get("/expenses/search", response_model=APIResponse[ExpenseSearchData])
async def search_expenses(
    q: str = "",
    limit: int = Query(20, ge=1, le=1000),
    user_id: str = Depends(current_user_id),
) -> APIResponse[ExpenseSearchData]:
    """Search expenses by description (case-insensitive substring)."""
    search_term = q.strip()
    if len(search_term) < MIN_SEARCH_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Search term must be at least {MIN_SEARCH_LENGTH} characters",
        )

    expenses = db.search_expenses_by_description(user_id, search_term, limit=limit)
    return APIResponse(
        success=True,
        data=ExpenseSearchData(
            expenses=expenses, search_term=search_term, count=len(expenses)
        ),
    )


@router.get("/expenses/recent", response_model=APIResponse[ExpenseListData])
async def recent_expenses(
    limit: int = Query(5, ge=1, le=100),
    user_id: str = Depends(current_user_id),
) -> APIResponse[ExpenseListData]:
    """Most recent expenses for the dashboard."""
    expenses = db.get_recent_expenses(user_id, limit=limit)
    return APIResponse(
        success=True,
        data=ExpenseListData(
            expenses=expenses,
            pagination=Pagination(has_more=False, limit=limit, count=len(expenses)),
        ),
    )


@router.get("/expenses/{expense_id}", response_model=APIResponse[ExpenseData])
async def get_expense(
    expense_id: str,
    expense_date: Optional[str] = Query(None, alias="date"),
    user_id: str = Depends(current_user_id),
) -> APIResponse[ExpenseData]:
    """Get one expense; the date locates it within the user's partition."""
    expense = db.get_expense(user_id, expense_id, _require_date(expense_date))
    if not expense:
        raise _expense_not_found(expense_id)
    return APIResponse(success=True, data=ExpenseData(expense=expense))


@router.post(
    "/expenses",
    response_model=APIResponse[ExpenseData],
    status_code=status.HTTP_201_CREATED,
)
async def create_expense(
    expense_data: ExpenseCreate,
    user_id: str = Depends(current_user_id),
) -> APIResponse[ExpenseData]:
    """Create a new expense, auto-categorized when no category is given."""
    expense = db.create_expense(user_id, expense_data)
    return APIResponse(
        success=True,
        data=ExpenseData(expense=expense),
        message=f"Expense created: {expense.amount_myr}",
    )


@router.put("/expenses/{expense_id}", response_model=APIResponse[ExpenseData])
async def update_expense(
    expense_id: str,
    update_data: ExpenseUpdate,
    expense_date: Optional[str] = Query(None, alias="date"),
    user_id: str = Depends(current_user_id),
) -> APIResponse[ExpenseData]:
    """Partially update an expense."""
    expense = db.update_expense(
        user_id, expense_id, _require_date(expense_date), update_data
    )
    if not expense:
        raise _expense_not_found(expense_id)
    return APIResponse(
        success=True,
        data=ExpenseData(expense=expense),
        message="Expense updated successfully",
    )


@router.delete("/expenses/{expense_id}", response_model=APIResponse[Dict[str, str]])
async def delete_expense(
    expense_id: str,
    expense_date: Optional[str] = Query(None, alias="date"),
    user_id: str = Depends(current_user_id),
) -> APIResponse[Dict[str, str]]:
    """Delete expense by ID and date."""
    deleted = db.delete_expense(user_id, expense_id, _require_date(expense_date))
    if not deleted:
        raise _expense_not_found(expense_id)
    return APIResponse(
        success=True,
        data={"id": expense_id},
        message="Expense deleted successfully",
    )


@router.post(
    "/expenses/bulk",
    response_model=APIResponse[BulkCreateData],
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_expenses(
    bulk_data: BulkExpenseCreate,
    user_id: str = Depends(current_user_id),
) -> APIResponse[BulkCreateData]:
    """Create up to 100 expenses in one request."""
    successful, failed = db.bulk_create_expenses(user_id, bulk_data.expenses)
    summary = _bulk_summary(successful, failed)

    return APIResponse(
        success=True,
        data=BulkCreateData(successful=successful, failed=failed, summary=summary),
        message=(
            f"Created {summary.successful} of {summary.total_processed} expenses "
            f"({summary.total_amount_myr})"
        ),
    )


@router.post(
    "/expenses/csv",
    response_model=APIResponse[BulkCreateData],
    status_code=status.HTTP_201_CREATED,
)
async def upload_csv_expenses(
    file: UploadFile = File(...),
    user_id: str = Depends(current_user_id),
) -> APIResponse[BulkCreateData]:
    """Upload a CSV of expenses (date, description, amount, merchant, category)."""
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV file",
        )

    file_content = await file.read()

    validation_errors = validate_csv_file(file_content)
    if validation_errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="; ".join(validation_errors),
        )

    processor = UploadProcessingService()
    result = processor.process_csv_text(user_id, file_content.decode("utf-8"))
    summary = _bulk_summary(result.successful, result.failed)

    return APIResponse(
        success=True,
        data=BulkCreateData(
            successful=result.successful,
            failed=result.failed,
            summary=summary,
            csv_processing=CsvProcessing(
                total_rows=result.total_rows,
                valid_expenses=result.valid_expenses,
                parse_errors=result.parse_errors,
            ),
        ),
        message=f"Imported {summary.successful} expenses from {file.filename}",
    )


# ============================================================================
# ANALYTICS ENDPOINTS
# ============================================================================


@router.get("/analytics", response_model=APIResponse[AnalyticsData])
async def get_analytics(
    period: str = "30d",
    user_id: str = Depends(current_user_id),
) -> APIResponse[AnalyticsData]:
    """Dashboard analytics for the last 7d, 30d, 90d or 1y."""
    analytics_service = AnalyticsService()
    start, end = analytics_service.derive_date_range(period)

    expenses = db.get_expenses_in_range(user_id, start, end)
    analytics = analytics_service.calculate(expenses, period)

    return APIResponse(
        success=True,
        data=AnalyticsData(
            analytics=analytics,
            period=period,
            date_range=DateRange(start_date=start, end_date=end),
        ),
    )


@router.get("/analytics/spending", response_model=APIResponse[SpendingSummary])
async def get_spending_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_id: str = Depends(current_user_id),
) -> APIResponse[SpendingSummary]:
    """Spending totals and per-category breakdown for an explicit range."""
    if not start_date or not end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date and end_date are required (YYYY-MM-DD format)",
        )

    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must be on or before end_date",
        )

    expenses = db.get_expenses_in_range(user_id, start, end)
    summary = AnalyticsService().spending_summary(expenses, start, end)
    return APIResponse(success=True, data=summary)
