"""
Тарифы: уровни доступа, сроки и цены (RUB).
Единый источник для бота, REST и сверки суммы в платёжных уведомлениях.
"""
from __future__ import annotations

from decimal import Decimal

TIER_CHANNEL = 1
TIER_CHANNEL_AND_CHAT = 2
TIERS = (TIER_CHANNEL, TIER_CHANNEL_AND_CHAT)

DURATIONS = (1, 3, 6, 12)

PRICES: dict[int, dict[int, int]] = {
    TIER_CHANNEL: {1: 1490, 3: 3990, 6: 7490, 12: 14290},
    TIER_CHANNEL_AND_CHAT: {1: 4990, 3: 13390, 6: 25390, 12: 47890},
}

TIER_TITLES = {
    TIER_CHANNEL: "Уровень 1",
    TIER_CHANNEL_AND_CHAT: "Уровень 2",
}


def is_valid_tier(tier: int) -> bool:
    return tier in TIERS


def get_price(tier: int, months: int) -> int | None:
    """Цена тарифа в рублях или None, если такой тариф не продаётся."""
    return PRICES.get(tier, {}).get(months)


def get_price_decimal(tier: int, months: int) -> Decimal | None:
    price = get_price(tier, months)
    return Decimal(price) if price is not None else None


def plan_id_to_months(plan_id: int) -> int:
    """planId из админки: 1 → 1 месяц, 2 → 6 месяцев, иначе 12."""
    if plan_id == 1:
        return 1
    if plan_id == 2:
        return 6
    return 12


def format_duration(months: int) -> str:
    if months == 12:
        return "1 год"
    if months == 1:
        return "1 месяц"
    if 2 <= months <= 4:
        return f"{months} месяца"
    return f"{months} месяцев"
