import pytest

from core.models import ExpenseCreate, MalaysianCategory
from core.text_utils import lowercase, search_key
from services import dynamo_expenses as db
from services.categorization_service import AutoCategorizationService


class TestAutoCategorizationService:
    """Test cases for auto-categorization service."""

    @pytest.fixture
    def categorization_service(self):
        """Create categorization service instance."""
        return AutoCategorizationService()

    def test_lowercase_keeps_punctuation(self):
        assert lowercase("GRAB*GrabCar KL") == "grab*grabcar kl"
        assert lowercase("") == ""
        assert lowercase(None) == ""
        assert search_key("  Teh Tarik  ") == "teh tarik"

    @pytest.mark.parametrize("description", ["nasi-kandar", "Teh.Tarik stall"])
    def test_punctuated_keywords_do_not_match(self, categorization_service, description):
        """Keywords match the lowercased description as typed."""
        assert (
            categorization_service.categorize(description, 300)
            == MalaysianCategory.OTHER_MISCELLANEOUS
        )
        assert categorization_service.confidence(description) == 50

    @pytest.mark.parametrize(
        "description, expected",
        [
            ("Nasi Kandar Pelita", MalaysianCategory.FOOD_MAMAK),
            ("Teh tarik + roti canai", MalaysianCategory.FOOD_MAMAK),
            ("GrabFood delivery", MalaysianCategory.FOOD_DELIVERY),
            ("Grab ride to KLCC", MalaysianCategory.TRANSPORT_GRAB),
            ("Starbucks Venti Latte", MalaysianCategory.FOOD_COFFEE),
            ("Old Town White Coffee", MalaysianCategory.FOOD_COFFEE),
            ("Petronas RON95", MalaysianCategory.TRANSPORT_FUEL),
            ("Shell V-Power", MalaysianCategory.TRANSPORT_FUEL),
            ("AEON grocery shopping", MalaysianCategory.SHOPPING_ONLINE),
            ("Shopee 11.11 sale", MalaysianCategory.SHOPPING_ONLINE),
        ],
    )
    def test_merchant_patterns(self, categorization_service, description, expected):
        """Test merchant keyword patterns take priority."""
        assert categorization_service.categorize(description, 1500) == expected

    def test_mamak_pattern_wins_over_later_patterns(self, categorization_service):
        """Patterns are checked in order; the first match wins."""
        assert (
            categorization_service.categorize("Mamak near Shell station", 1000)
            == MalaysianCategory.FOOD_MAMAK
        )

    def test_amount_range_food(self, categorization_service):
        """Test meal-sized amounts with a food hint."""
        assert (
            categorization_service.categorize("Lunch makan", 1500)
            == MalaysianCategory.FOOD_RESTAURANT
        )

    def test_amount_range_transport(self, categorization_service):
        """Test ride-sized amounts with a transport hint."""
        assert (
            categorization_service.categorize("Taxi to airport", 3000)
            == MalaysianCategory.TRANSPORT_GRAB
        )
        assert (
            categorization_service.categorize("Taxi to airport", 10000)
            == MalaysianCategory.OTHER_MISCELLANEOUS
        )

    @pytest.mark.parametrize(
        "description, expected",
        [
            ("Family food outing", MalaysianCategory.FOOD_RESTAURANT),
            ("Gas refill", MalaysianCategory.TRANSPORT_FUEL),
            ("Parking at Mid Valley", MalaysianCategory.TRANSPORT_PARKING),
            ("Movie tickets", MalaysianCategory.OTHER_MISCELLANEOUS),
        ],
    )
    def test_keyword_fallbacks(self, categorization_service, description, expected):
        """Test keyword fallbacks when amount is outside typical ranges."""
        assert categorization_service.categorize(description, 20000) == expected

    def test_confidence_scores(self, categorization_service):
        """Test confidence tiers."""
        assert categorization_service.confidence("Nasi Kandar Pelita") == 95
        assert categorization_service.confidence("Food court lunch") == 75
        assert categorization_service.confidence("Parking") == 75
        assert categorization_service.confidence("Movie tickets") == 50

    def test_resolve_keeps_manual_category(self, categorization_service):
        """A supplied category is kept with full confidence."""
        assert categorization_service.resolve(
            "Nasi Kandar", 1200, MalaysianCategory.FOOD_FOOD_COURT
        ) == (MalaysianCategory.FOOD_FOOD_COURT, 100)

    def test_resolve_auto_categorizes(self, categorization_service):
        assert categorization_service.resolve("Grab ride", 1800) == (
            MalaysianCategory.TRANSPORT_GRAB,
            95,
        )


class TestCategorizationOnCreate:
    def test_create_expense_auto_categorizes(self, clean_db):
        """Expenses created without a category are categorized on write."""
        expense = db.create_expense(
            "user-1", ExpenseCreate(description="Petronas RON95", amount=4500)
        )

        assert expense.category == MalaysianCategory.TRANSPORT_FUEL
        assert expense.confidence == 95

        stored = db.get_expense("user-1", expense.id, expense.date)
        assert stored.category == MalaysianCategory.TRANSPORT_FUEL
        assert stored.confidence == 95
