"""
Paywall config: типизированная обёртка над novelhub.core.config для аренды и цен.
"""
from __future__ import annotations

from datetime import timedelta

from novelhub.core.config import settings


def get_rental_duration() -> timedelta:
    return timedelta(hours=settings.rental_duration_hours)


def get_rent_price_divisor() -> int:
    return settings.rent_price_divisor


def get_min_contribution() -> int:
    return settings.min_contribution


def calc_rent_balance(paid_chapter_balances: list[int]) -> int:
    """rent_balance = сумма цен платных глав / делитель, округление вниз, не меньше 0."""
    total = sum(b for b in paid_chapter_balances if b and b > 0)
    return max(0, total // get_rent_price_divisor())
