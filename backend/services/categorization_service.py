import logging
from typing import Dict, List, Optional, Tuple

from core.models import MalaysianCategory
from core.text_utils import contains_any, lowercase

logger = logging.getLogger(__name__)


class AutoCategorizationService:
    """Assign a Malaysian spending category from an expense description and amount."""

    # Checked in order; the first pattern with a matching keyword wins
    MERCHANT_PATTERNS: Dict[str, List[str]] = {
        "MAMAK": ["mamak", "nasi kandar", "teh tarik", "roti canai"],
        "GRAB": ["grab", "grabfood", "grabcar"],
        "STARBUCKS": ["starbucks", "coffee bean", "old town"],
        "PETROL": ["shell", "petronas", "esso", "caltex", "bhp"],
        "SHOPPING": ["shopee", "lazada", "aeon", "giant", "tesco"],
    }

    # Inclusive ranges in cents
    TYPICAL_AMOUNTS: Dict[str, Tuple[int, int]] = {
        "MAMAK_MEAL": (500, 2500),
        "RESTAURANT_MEAL": (1500, 8000),
        "GRAB_RIDE": (800, 5000),
        "COFFEE": (1000, 3000),
        "PARKING": (100, 2000),
    }

    MEDIUM_CONFIDENCE_KEYWORDS = ["food", "transport", "fuel", "parking", "coffee"]

    HIGH_CONFIDENCE = 95
    MEDIUM_CONFIDENCE = 75
    LOW_CONFIDENCE = 50
    MANUAL_CONFIDENCE = 100

    def categorize(self, description: str, amount: int) -> MalaysianCategory:
        """
        Pick a category using the 3-step lookup:
        1. Merchant keyword patterns
        2. Typical amount ranges combined with a hint word
        3. Plain keyword fallbacks, then other_miscellaneous

        Args:
            description: Free-text expense description
            amount: Amount in cents

        Returns:
            The matched category
        """
        desc = lowercase(description)

        matched_pattern = self._find_merchant_pattern(desc)
        if matched_pattern:
            category = self._category_for_pattern(matched_pattern, desc)
            logger.debug(f"Merchant pattern {matched_pattern} matched: {category.value}")
            return category

        if self._in_range(amount, "MAMAK_MEAL") and contains_any(
            desc, ["food", "makan", "restaurant"]
        ):
            return MalaysianCategory.FOOD_RESTAURANT

        if self._in_range(amount, "GRAB_RIDE") and contains_any(
            desc, ["transport", "ride", "taxi"]
        ):
            return MalaysianCategory.TRANSPORT_GRAB

        if contains_any(desc, ["food", "makan", "eat"]):
            return MalaysianCategory.FOOD_RESTAURANT

        if contains_any(desc, ["fuel", "petrol", "gas"]):
            return MalaysianCategory.TRANSPORT_FUEL

        if "parking" in desc:
            return MalaysianCategory.TRANSPORT_PARKING

        logger.debug(f"No category rule matched '{desc}'")
        return MalaysianCategory.OTHER_MISCELLANEOUS

    def confidence(self, description: str) -> int:
        """Score how sure the keyword lookup is about its category."""
        desc = lowercase(description)

        if self._find_merchant_pattern(desc):
            return self.HIGH_CONFIDENCE

        if contains_any(desc, self.MEDIUM_CONFIDENCE_KEYWORDS):
            return self.MEDIUM_CONFIDENCE

        return self.LOW_CONFIDENCE

    def resolve(
        self,
        description: str,
        amount: int,
        category: Optional[MalaysianCategory] = None,
    ) -> Tuple[MalaysianCategory, int]:
        """Return (category, confidence), keeping a user-supplied category as-is."""
        if category is not None:
            return category, self.MANUAL_CONFIDENCE
        return self.categorize(description, amount), self.confidence(description)

    def _find_merchant_pattern(self, desc: str) -> Optional[str]:
        for pattern, keywords in self.MERCHANT_PATTERNS.items():
            if contains_any(desc, keywords):
                return pattern
        return None

    @staticmethod
    def _category_for_pattern(pattern: str, desc: str) -> MalaysianCategory:
        if pattern == "GRAB":
            if "food" in desc:
                return MalaysianCategory.FOOD_DELIVERY
            return MalaysianCategory.TRANSPORT_GRAB

        return {
            "MAMAK": MalaysianCategory.FOOD_MAMAK,
            "STARBUCKS": MalaysianCategory.FOOD_COFFEE,
            "PETROL": MalaysianCategory.TRANSPORT_FUEL,
            "SHOPPING": MalaysianCategory.SHOPPING_ONLINE,
        }[pattern]

    def _in_range(self, amount: int, range_name: str) -> bool:
        low, high = self.TYPICAL_AMOUNTS[range_name]
        return low <= amount <= high
