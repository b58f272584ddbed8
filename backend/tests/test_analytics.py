from datetime import date

import pytest

from core.models import Expense, ExpenseCreate, MalaysianCategory
from services import dynamo_expenses as db
from services.analytics_service import AnalyticsService


def make_expense(description, amount, category, day, merchant=None, confidence=95):
    return Expense(
        user_id="user-1",
        description=description,
        amount=amount,
        category=category,
        date=date(2025, 1, day),
        merchant=merchant,
        confidence=confidence,
    )


@pytest.fixture
def analytics_service():
    return AnalyticsService(monthly_budget=50000)


@pytest.fixture
def mamak_heavy_expenses():
    return [
        make_expense("Nasi Kandar", 1250, MalaysianCategory.FOOD_MAMAK, 10, "Pelita"),
        make_expense("Roti canai", 450, MalaysianCategory.FOOD_MAMAK, 11, "Pelita"),
        make_expense("Teh tarik", 350, MalaysianCategory.FOOD_MAMAK, 11, "Kayu"),
        make_expense("Grab to office", 1800, MalaysianCategory.TRANSPORT_GRAB, 12, "Grab"),
        make_expense(
            "Random stall", 200, MalaysianCategory.OTHER_MISCELLANEOUS, 12, confidence=50
        ),
    ]


class TestPeriodDates:
    """Test period to date range derivation."""

    @pytest.mark.parametrize(
        "period, expected_start",
        [
            ("7d", date(2025, 3, 8)),
            ("30d", date(2025, 2, 13)),
            ("90d", date(2024, 12, 15)),
            ("1y", date(2024, 3, 15)),
        ],
    )
    def test_derive_date_range(self, period, expected_start):
        start, end = AnalyticsService.derive_date_range(period, today=date(2025, 3, 15))
        assert start == expected_start
        assert end == date(2025, 3, 15)

    def test_one_year_from_leap_day(self):
        start, _ = AnalyticsService.derive_date_range("1y", today=date(2024, 2, 29))
        assert start == date(2023, 2, 28)

    def test_invalid_period(self):
        with pytest.raises(ValueError, match="Invalid period. Use one of: 7d, 30d, 90d, 1y"):
            AnalyticsService.derive_date_range("2w")

    def test_days_in_period(self):
        assert AnalyticsService.days_in_period("7d") == 7
        assert AnalyticsService.days_in_period("1y") == 365


class TestCalculate:
    def test_totals_and_budget(self, analytics_service, mamak_heavy_expenses):
        analytics = analytics_service.calculate(mamak_heavy_expenses, "7d")

        assert analytics.total_spent == 4050
        assert analytics.total_spent_myr == "RM 40.50"
        assert analytics.transaction_count == 5
        assert analytics.budget_remaining == 45950
        assert analytics.budget_remaining_myr == "RM 459.50"
        assert analytics.budget_usage_percentage == 8
        assert analytics.daily_average == 579

    def test_overspent_budget_goes_negative(self):
        service = AnalyticsService(monthly_budget=1000)
        expenses = [make_expense("Laptop", 350000, MalaysianCategory.SHOPPING_ELECTRONICS, 5)]

        analytics = service.calculate(expenses, "30d")

        assert analytics.budget_remaining == -349000
        assert analytics.budget_remaining_myr == "RM -3,490.00"
        assert analytics.budget_usage_percentage == 35000

    def test_empty_period(self, analytics_service):
        analytics = analytics_service.calculate([], "30d")

        assert analytics.total_spent == 0
        assert analytics.budget_remaining == 50000
        assert analytics.budget_usage_percentage == 0
        assert analytics.daily_average == 0
        assert analytics.category_breakdown == []
        assert analytics.spending_trends.daily_spending == []
        assert analytics.spending_trends.peak_spending_day is None
        assert analytics.smart_insights == ["No expenses found for this period"]
        assert analytics.top_merchants == []

    def test_budget_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("MONTHLY_BUDGET_CENTS", "120000")
        assert AnalyticsService().monthly_budget == 120000


class TestCategoryBreakdown:
    def test_sorted_by_total(self, analytics_service, mamak_heavy_expenses):
        breakdown = analytics_service.category_breakdown(mamak_heavy_expenses)

        assert [category.name for category in breakdown] == [
            "food_mamak",
            "transport_grab",
            "other_miscellaneous",
        ]
        mamak = breakdown[0]
        assert mamak.total == 2050
        assert mamak.count == 3
        assert mamak.percentage == 51
        assert mamak.avg_per_transaction == 683
        assert mamak.avg_per_transaction_myr == "RM 6.83"


class TestSpendingTrends:
    def test_daily_totals_in_date_order(self, analytics_service, mamak_heavy_expenses):
        trends = analytics_service.spending_trends(mamak_heavy_expenses)

        assert [(day.date, day.amount) for day in trends.daily_spending] == [
            ("2025-01-10", 1250),
            ("2025-01-11", 800),
            ("2025-01-12", 2000),
        ]
        assert trends.peak_spending_day.date == "2025-01-12"
        assert trends.lowest_spending_day.date == "2025-01-11"

    def test_ties_go_to_earliest_day(self, analytics_service):
        expenses = [
            make_expense("Kopi", 300, MalaysianCategory.FOOD_COFFEE, 2),
            make_expense("Kopi", 300, MalaysianCategory.FOOD_COFFEE, 1),
        ]
        trends = analytics_service.spending_trends(expenses)

        assert trends.peak_spending_day.date == "2025-01-01"
        assert trends.lowest_spending_day.date == "2025-01-01"


class TestSmartInsights:
    def test_mamak_insights(self, analytics_service, mamak_heavy_expenses):
        insights = analytics_service.smart_insights(mamak_heavy_expenses)

        assert insights == [
            "Mamak is your top expense at 51% of spending",
            "You spent RM 20.50 on mamak food - that's 3 visits!",
            "Transport expenses: RM 18.00 (1 transactions)",
            "Great budgeting! Only 8% of budget used",
        ]

    def test_low_confidence_review(self, analytics_service):
        expenses = [
            make_expense("Unknown shop", 2000, MalaysianCategory.OTHER_MISCELLANEOUS, 3, confidence=50),
            make_expense("Other shop", 1000, MalaysianCategory.OTHER_MISCELLANEOUS, 4, confidence=50),
        ]

        insights = analytics_service.smart_insights(expenses)

        assert insights[0] == "Your top spending category is other miscellaneous at 100%"
        assert insights[-1] == "2 transactions need category review"

    def test_budget_warning_levels(self):
        service = AnalyticsService(monthly_budget=10000)
        high = [make_expense("Concert", 9000, MalaysianCategory.ENTERTAINMENT_MOVIES, 1)]
        medium = [make_expense("Concert", 6000, MalaysianCategory.ENTERTAINMENT_MOVIES, 1)]

        assert "You've used 90% of your RM 100.00 budget" in service.smart_insights(high)
        assert (
            "You've used 60% of your budget - still within limits"
            in service.smart_insights(medium)
        )

    def test_food_category_insight(self, analytics_service):
        expenses = [make_expense("Dinner", 5000, MalaysianCategory.FOOD_RESTAURANT, 1)]

        assert analytics_service.smart_insights(expenses)[0] == (
            "restaurant makes up 100% of your spending"
        )


class TestTopMerchants:
    def test_top_five_with_unknown(self, analytics_service):
        expenses = [
            make_expense(f"Shop {n}", 100 * (n + 1), MalaysianCategory.SHOPPING_ONLINE, 1, f"M{n}")
            for n in range(6)
        ]
        expenses.append(make_expense("Cash", 5000, MalaysianCategory.OTHER_TRANSFER, 1))

        merchants = analytics_service.top_merchants(expenses)

        assert len(merchants) == 5
        assert merchants[0].merchant == "Unknown"
        assert merchants[0].total_myr == "RM 50.00"
        assert merchants[1].merchant == "M5"


class TestSpendingSummary:
    def test_summary_from_storage(self, clean_db, analytics_service):
        for description, amount, day in [
            ("Nasi Kandar", 1250, "2025-01-10"),
            ("Petronas RON95", 4500, "2025-01-11"),
            ("Grab ride", 1800, "2025-01-20"),
        ]:
            db.create_expense(
                "user-1",
                ExpenseCreate(description=description, amount=amount, date=day),
            )

        start, end = date(2025, 1, 10), date(2025, 1, 11)
        expenses = db.get_expenses_in_range("user-1", start, end)
        summary = analytics_service.spending_summary(expenses, start, end)

        assert summary.transaction_count == 2
        assert summary.total_spent == 5750
        assert summary.avg_transaction_amount == 2875
        assert summary.avg_transaction_amount_myr == "RM 28.75"
        assert [item.category for item in summary.spending_by_category] == [
            "transport_fuel",
            "food_mamak",
        ]
