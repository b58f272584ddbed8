"""Analytics service: in-memory aggregation over a user's expenses."""

import logging
import os
from collections import defaultdict
from datetime import date, datetime, timedelta, UTC
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.currency import format_myr, round_half_up
from core.models import (
    Analytics,
    CategoryBreakdown,
    CategorySpending,
    DailySpending,
    Expense,
    MalaysianCategory,
    MerchantTotal,
    SpendingSummary,
    SpendingTrends,
)

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_BUDGET_CENTS = 50000
MAX_INSIGHTS = 4
TOP_MERCHANT_COUNT = 5
LOW_CONFIDENCE_THRESHOLD = 60


def _percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(Decimal(part) * 100 / Decimal(whole))


def _average(total: int, count: int) -> int:
    if count <= 0:
        return 0
    return round_half_up(Decimal(total) / Decimal(count))


def _total(expenses: List[Expense]) -> int:
    return sum(expense.amount for expense in expenses)


class AnalyticsService:
    """Service for calculating spending analytics."""

    PERIOD_DAYS = {
        "7d": 7,
        "30d": 30,
        "90d": 90,
        "1y": 365,
    }

    def __init__(self, monthly_budget: Optional[int] = None):
        if monthly_budget is None:
            monthly_budget = int(
                os.getenv("MONTHLY_BUDGET_CENTS", str(DEFAULT_MONTHLY_BUDGET_CENTS))
            )
        self.monthly_budget = monthly_budget

    @staticmethod
    def validate_period(period: str) -> str:
        if period not in AnalyticsService.PERIOD_DAYS:
            raise ValueError(
                f"Invalid period. Use one of: {', '.join(AnalyticsService.PERIOD_DAYS)}"
            )
        return period

    @staticmethod
    def derive_date_range(period: str, today: Optional[date] = None) -> Tuple[date, date]:
        """Derive (start_date, end_date) for a period ending today.

        '1y' goes back to the same calendar day last year; the other periods
        go back a fixed number of days. Raises ValueError for unknown periods.
        """
        AnalyticsService.validate_period(period)
        end = today or datetime.now(UTC).date()

        if period == "1y":
            try:
                start = end.replace(year=end.year - 1)
            except ValueError:
                # 29 February
                start = end.replace(year=end.year - 1, day=28)
        else:
            start = end - timedelta(days=AnalyticsService.PERIOD_DAYS[period])

        return start, end

    @staticmethod
    def days_in_period(period: str) -> int:
        return AnalyticsService.PERIOD_DAYS.get(period, 30)

    def calculate(self, expenses: List[Expense], period: str) -> Analytics:
        """Build the dashboard analytics for expenses already limited to a period."""
        total_spent = _total(expenses)
        daily_average = (
            _average(total_spent, self.days_in_period(period)) if expenses else 0
        )
        budget_remaining = self.monthly_budget - total_spent

        return Analytics(
            total_spent=total_spent,
            total_spent_myr=format_myr(total_spent),
            transaction_count=len(expenses),
            budget_remaining=budget_remaining,
            budget_remaining_myr=format_myr(budget_remaining),
            budget_usage_percentage=(
                _percentage(total_spent, self.monthly_budget) if total_spent > 0 else 0
            ),
            daily_average=daily_average,
            daily_average_myr=format_myr(daily_average),
            category_breakdown=self.category_breakdown(expenses),
            spending_trends=self.spending_trends(expenses),
            smart_insights=self.smart_insights(expenses),
            top_merchants=self.top_merchants(expenses),
        )

    def category_breakdown(self, expenses: List[Expense]) -> List[CategoryBreakdown]:
        """Totals per category, largest first."""
        if not expenses:
            return []

        totals: Dict[str, int] = defaultdict(int)
        counts: Dict[str, int] = defaultdict(int)
        for expense in expenses:
            name = (expense.category or MalaysianCategory.OTHER_MISCELLANEOUS).value
            totals[name] += expense.amount
            counts[name] += 1

        total_spent = _total(expenses)
        breakdown = []
        for name, total in totals.items():
            average = _average(total, counts[name])
            breakdown.append(
                CategoryBreakdown(
                    name=name,
                    total=total,
                    total_myr=format_myr(total),
                    count=counts[name],
                    percentage=_percentage(total, total_spent),
                    avg_per_transaction=average,
                    avg_per_transaction_myr=format_myr(average),
                )
            )

        breakdown.sort(key=lambda category: category.total, reverse=True)
        return breakdown

    def spending_trends(self, expenses: List[Expense]) -> SpendingTrends:
        """Daily totals in date order, with the peak and lowest days."""
        if not expenses:
            return SpendingTrends()

        daily: Dict[str, int] = defaultdict(int)
        for expense in expenses:
            daily[expense.date.isoformat()] += expense.amount

        daily_spending = [
            DailySpending(date=day, amount=amount, amount_myr=format_myr(amount))
            for day, amount in sorted(daily.items())
        ]

        # max/min return the first of equal values, so ties go to the earliest day
        return SpendingTrends(
            daily_spending=daily_spending,
            peak_spending_day=max(daily_spending, key=lambda day: day.amount),
            lowest_spending_day=min(daily_spending, key=lambda day: day.amount),
        )

    def smart_insights(self, expenses: List[Expense]) -> List[str]:
        """Short human-readable observations, at most four."""
        if not expenses:
            return ["No expenses found for this period"]

        insights: List[str] = []
        total_spent = _total(expenses)

        breakdown = self.category_breakdown(expenses)
        if breakdown:
            top = breakdown[0]
            if top.name == MalaysianCategory.FOOD_MAMAK.value:
                insights.append(
                    f"Mamak is your top expense at {top.percentage}% of spending"
                )
                insights.append(
                    f"You spent {top.total_myr} on mamak food - that's {top.count} visits!"
                )
            elif top.name.startswith("food_"):
                label = top.name.replace("food_", "", 1).replace("_", " ")
                insights.append(f"{label} makes up {top.percentage}% of your spending")
            else:
                label = top.name.replace("_", " ")
                insights.append(
                    f"Your top spending category is {label} at {top.percentage}%"
                )

        transport = [expense for expense in expenses if self._is_transport(expense)]
        if transport:
            insights.append(
                f"Transport expenses: {format_myr(_total(transport))} "
                f"({len(transport)} transactions)"
            )

        if total_spent > 0:
            budget_used = _percentage(total_spent, self.monthly_budget)
            if budget_used > 80:
                insights.append(
                    f"You've used {budget_used}% of your {format_myr(self.monthly_budget)} budget"
                )
            elif budget_used > 50:
                insights.append(
                    f"You've used {budget_used}% of your budget - still within limits"
                )
            else:
                insights.append(f"Great budgeting! Only {budget_used}% of budget used")

        needs_review = [
            expense
            for expense in expenses
            if expense.confidence and expense.confidence < LOW_CONFIDENCE_THRESHOLD
        ]
        if needs_review:
            insights.append(f"{len(needs_review)} transactions need category review")

        return insights[:MAX_INSIGHTS]

    def top_merchants(self, expenses: List[Expense]) -> List[MerchantTotal]:
        totals: Dict[str, int] = defaultdict(int)
        for expense in expenses:
            totals[expense.merchant or "Unknown"] += expense.amount

        ranked = sorted(totals.items(), key=lambda entry: entry[1], reverse=True)
        return [
            MerchantTotal(merchant=merchant, total=total, total_myr=format_myr(total))
            for merchant, total in ranked[:TOP_MERCHANT_COUNT]
        ]

    def spending_summary(
        self, expenses: List[Expense], start_date: date, end_date: date
    ) -> SpendingSummary:
        """Totals and per-category spending for an explicit date range."""
        total_spent = _total(expenses)
        average = _average(total_spent, len(expenses))

        return SpendingSummary(
            start_date=start_date,
            end_date=end_date,
            total_spent=total_spent,
            total_spent_myr=format_myr(total_spent),
            transaction_count=len(expenses),
            avg_transaction_amount=average,
            avg_transaction_amount_myr=format_myr(average),
            spending_by_category=[
                CategorySpending(
                    category=category.name,
                    amount=category.total,
                    amount_myr=category.total_myr,
                    percentage=category.percentage,
                    transaction_count=category.count,
                )
                for category in self.category_breakdown(expenses)
            ],
        )

    @staticmethod
    def _is_transport(expense: Expense) -> bool:
        description = expense.description.lower()
        return (
            "transport" in expense.category.value
            or "grab" in description
            or "touch" in description
        )
