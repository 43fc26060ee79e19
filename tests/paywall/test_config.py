"""Tests for paywall config wrappers and rent price derivation."""
from datetime import timedelta
from unittest.mock import patch

from novelhub.paywall.config import (
    calc_rent_balance,
    get_min_contribution,
    get_rental_duration,
)


class TestRentBalance:
    def test_floor_of_sum_over_ten(self):
        assert calc_rent_balance([10, 20, 15]) == 4

    def test_ignores_zero_and_negative(self):
        assert calc_rent_balance([0, -5, 9]) == 0

    def test_empty(self):
        assert calc_rent_balance([]) == 0

    def test_divisor_from_settings(self):
        with patch("novelhub.paywall.config.settings") as s:
            s.rent_price_divisor = 5
            assert calc_rent_balance([10, 20, 15]) == 9


class TestDefaults:
    def test_rental_duration_default_24h(self):
        assert get_rental_duration() == timedelta(hours=24)

    def test_min_contribution_default(self):
        assert get_min_contribution() == 10
