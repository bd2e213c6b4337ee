"""
Inline keyboards and callback_data for the bot.
callback_data: level_{tier}, duration_{months}_{tier}, pay_{tier}_{months}, open_app, admin_panel.
"""
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo

from app.core.config import settings
from app.services.plans import DURATIONS, TIER_TITLES, format_duration, get_price, is_valid_tier

OPEN_APP = "open_app"
ADMIN_PANEL = "admin_panel"
LEVEL_PREFIX = "level_"
DURATION_PREFIX = "duration_"
PAY_PREFIX = "pay_"


def start_keyboard(is_admin: bool) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(text=title, callback_data=f"{LEVEL_PREFIX}{tier}")]
        for tier, title in TIER_TITLES.items()
    ]
    rows.append([InlineKeyboardButton(text='Сообщество "BAGUVIX"', url=settings.community_url)])
    rows.append([InlineKeyboardButton(text="Открыть мини-приложение", callback_data=OPEN_APP)])
    if is_admin:
        rows.append([InlineKeyboardButton(text="Админ-панель", callback_data=ADMIN_PANEL)])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def durations_keyboard(tier: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text=f"{format_duration(months)} - {get_price(tier, months)} руб",
                    callback_data=f"{DURATION_PREFIX}{months}_{tier}",
                )
            ]
            for months in DURATIONS
        ]
    )


def pay_keyboard(tier: int, months: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="Оплатить", callback_data=f"{PAY_PREFIX}{tier}_{months}")]]
    )


def url_keyboard(text: str, url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[InlineKeyboardButton(text=text, url=url)]])


def web_app_keyboard(text: str, url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[InlineKeyboardButton(text=text, web_app=WebAppInfo(url=url))]])


def _two_ints(data: str, prefix: str) -> tuple[int, int] | None:
    parts = data[len(prefix):].split("_")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return None
    return int(parts[0]), int(parts[1])


def parse_level(data: str) -> int | None:
    raw = data[len(LEVEL_PREFIX):]
    if not raw.isdigit() or not is_valid_tier(int(raw)):
        return None
    return int(raw)


def parse_plan_callback(data: str) -> tuple[int, int] | None:
    """(tier, months) from duration_{months}_{tier} or pay_{tier}_{months}; None if not a sold plan."""
    if data.startswith(DURATION_PREFIX):
        pair = _two_ints(data, DURATION_PREFIX)
        if pair is None:
            return None
        months, tier = pair
    elif data.startswith(PAY_PREFIX):
        pair = _two_ints(data, PAY_PREFIX)
        if pair is None:
            return None
        tier, months = pair
    else:
        return None
    if get_price(tier, months) is None:
        return None
    return tier, months
