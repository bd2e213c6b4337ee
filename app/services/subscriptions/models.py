"""
DTO состояния подписки (чистые данные, без ORM).
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SubscriptionStatus(BaseModel):
    """Сводка доступа пользователя на момент now."""

    user_id: int
    active: bool
    days_remaining: int
    subscription_id: int | None = None
    level: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    model_config = {"frozen": True}
