# Overview: Pytest coverage for commission split calculation.

from decimal import Decimal

import pytest

from consignment.services.split_service import calculate_split, effective_split_percentage
from consignment.validation import ValidationError


class TestCalculateSplit:

    def test_even_split(self):
        result = calculate_split(10000, "50.00")
        assert result.provider_amount_cents == 5000
        assert result.shop_amount_cents == 5000

    def test_amounts_always_sum_to_sale_price(self):
        for price in (1, 3, 99, 1001, 12345, 999_999):
            for pct in ("0", "33.33", "40", "66.67", "100"):
                result = calculate_split(price, pct)
                assert result.provider_amount_cents + result.shop_amount_cents == price

    def test_half_cent_rounds_to_even(self):
        # 50% of 1 cent is 0.5 -> 0; 50% of 3 cents is 1.5 -> 2
        assert calculate_split(1, "50").provider_amount_cents == 0
        assert calculate_split(3, "50").provider_amount_cents == 2

    def test_fractional_percentage(self):
        result = calculate_split(2999, "33.33")
        # 2999 * 0.3333 = 999.5667
        assert result.provider_amount_cents == 1000
        assert result.shop_amount_cents == 1999
        assert result.split_percentage == Decimal("33.33")

    def test_zero_and_full_split(self):
        assert calculate_split(5000, 0).provider_amount_cents == 0
        assert calculate_split(5000, 100).shop_amount_cents == 0

    def test_free_item(self):
        result = calculate_split(0, "60")
        assert (result.provider_amount_cents, result.shop_amount_cents) == (0, 0)

    @pytest.mark.parametrize("pct", ["-1", "100.01", "abc", None, True, "12.345"])
    def test_rejects_bad_percentage(self, pct):
        with pytest.raises(ValidationError):
            calculate_split(1000, pct)

    @pytest.mark.parametrize("price", [-1, 10.5, "100", True])
    def test_rejects_bad_price(self, price):
        with pytest.raises(ValidationError):
            calculate_split(price, "50")

    def test_to_dict_serializes_percentage_as_string(self):
        data = calculate_split(1000, "45.5").to_dict()
        assert data["split_percentage"] == "45.5"
        assert data["provider_amount_cents"] == 455


class TestEffectiveSplit:

    def test_item_override_wins(self, item_a, db_session):
        item_a.override_split_percentage = Decimal("75.00")
        db_session.commit()
        assert effective_split_percentage(item_a) == Decimal("75.00")

    def test_falls_back_to_provider_rate(self, item_a):
        assert item_a.override_split_percentage is None
        assert effective_split_percentage(item_a) == Decimal("60.00")
