from decimal import Decimal

import pytest

from core.currency import cents_to_ringgit, format_myr, parse_amount_to_cents, round_half_up


class TestFormatMYR:
    @pytest.mark.parametrize(
        "cents, expected",
        [
            (0, "RM 0.00"),
            (5, "RM 0.05"),
            (1050, "RM 10.50"),
            (123456, "RM 1,234.56"),
            (100000000, "RM 1,000,000.00"),
            (-1200, "RM -12.00"),
        ],
    )
    def test_format(self, cents, expected):
        assert format_myr(cents) == expected

    def test_cents_to_ringgit(self):
        assert cents_to_ringgit(1050) == Decimal("10.50")


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("12.50", 1250),
            ("RM 12.50", 1250),
            ("rm12.5", 1250),
            ("MYR 1,234.56", 123456),
            ("-45.00", 4500),
            ("0.005", 1),
            ("7", 700),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_amount_to_cents(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", "RM", "12.5.0", "NaN"])
    def test_invalid_amount(self, raw):
        with pytest.raises(ValueError, match="Invalid amount"):
            parse_amount_to_cents(raw)


def test_round_half_up():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("2.4")) == 2
    assert round_half_up(101.666) == 102
