"""
ExpiryNotifier: ежедневное напоминание об окончании подписки.
Только чтение: подписки не меняются. Ошибка отправки одному пользователю не прерывает обход.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.subscription import Subscription
from app.models.user import User
from app.services.subscriptions.service import SubscriptionService
from app.services.telegram.client import TelegramClient
from app.utils.dates import as_utc, utcnow
from app.utils.metrics import expiry_reminders_total

logger = logging.getLogger(__name__)


def reminder_text(days_left: int) -> str:
    return (
        f"Ваша подписка истекает через {days_left} дня(ей). "
        "Продлите подписку, чтобы не потерять доступ к контенту."
    )


@dataclass
class ReminderStats:
    sent: int = 0
    failed: int = 0


class ExpiryNotifier:
    def __init__(self, db: Session, telegram: TelegramClient, window_days: int | None = None) -> None:
        self.db = db
        self.telegram = telegram
        self.window_days = window_days if window_days is not None else settings.expiry_reminder_window_days

    def expiring(self, now: datetime | None = None) -> list[tuple[Subscription, User]]:
        """Current (latest-ending) subscriptions with end_date in [now, now + window]."""
        now = as_utc(now or utcnow())
        until = now + timedelta(days=self.window_days)
        latest = (
            self.db.query(
                Subscription.user_id.label("user_id"),
                func.max(Subscription.end_date).label("max_end"),
            )
            .group_by(Subscription.user_id)
            .subquery()
        )
        rows = (
            self.db.query(Subscription, User)
            .join(latest, (Subscription.user_id == latest.c.user_id) & (Subscription.end_date == latest.c.max_end))
            .join(User, User.id == Subscription.user_id)
            .filter(Subscription.end_date >= now, Subscription.end_date <= until)
            .order_by(Subscription.end_date, Subscription.id)
            .all()
        )
        seen: set[int] = set()
        result = []
        for subscription, user in rows:
            if user.id in seen:
                continue
            seen.add(user.id)
            result.append((subscription, user))
        return result

    def run(self, now: datetime | None = None) -> ReminderStats:
        now = as_utc(now or utcnow())
        stats = ReminderStats()
        for subscription, user in self.expiring(now):
            days_left = SubscriptionService.days_remaining(subscription, now)
            try:
                self.telegram.send_message(user.telegram_id, reminder_text(days_left))
                stats.sent += 1
                expiry_reminders_total.labels(status="sent").inc()
            except Exception as e:
                stats.failed += 1
                expiry_reminders_total.labels(status="failed").inc()
                logger.warning(
                    "expiry_reminder_failed",
                    extra={"user_id": user.id, "telegram_id": user.telegram_id, "error": str(e)},
                )
        logger.info("expiry_reminders_done", extra={"sent": stats.sent, "failed": stats.failed})
        return stats
