"""
SubscriptionService: состояние доступа пользователя.

Ответственности:
- Текущая подписка (строка с максимальным end_date)
- Активна / истекла, сколько дней осталось
- Оформление и продление (новая строка, история не меняется)

Мутации делают только flush(); транзакцией управляет вызывающий код.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.errors import SubscriptionNotFound
from app.models.subscription import Subscription
from app.services.plans import is_valid_tier
from app.services.subscriptions.models import SubscriptionStatus
from app.utils.dates import add_months, as_utc, ceil_days, utcnow

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current_subscription(self, user_id: int) -> Subscription:
        """Строка с максимальным end_date. SubscriptionNotFound, если подписок не было."""
        subscription = self.get_current(user_id)
        if subscription is None:
            raise SubscriptionNotFound("no subscription", detail={"user_id": user_id})
        return subscription

    def get_current(self, user_id: int, min_tier: int | None = None) -> Subscription | None:
        """Latest-ending row; with min_tier, only rows of that tier or higher."""
        query = self.db.query(Subscription).filter(Subscription.user_id == user_id)
        if min_tier is not None:
            query = query.filter(Subscription.level >= min_tier)
        return (
            query
            .order_by(Subscription.end_date.desc(), Subscription.id.desc())
            .first()
        )

    def entitlement_for(self, user_id: int, min_tier: int) -> Subscription | None:
        """
        Row that decides access to a chat requiring min_tier.
        Falls back to the latest row of any tier so a lower tier reads as insufficient.
        """
        return self.get_current(user_id, min_tier=min_tier) or self.get_current(user_id)

    @staticmethod
    def is_active(subscription: Subscription | None, now: datetime | None = None) -> bool:
        if subscription is None:
            return False
        now = as_utc(now or utcnow())
        return as_utc(subscription.end_date) > now

    @staticmethod
    def days_remaining(subscription: Subscription, now: datetime | None = None) -> int:
        now = as_utc(now or utcnow())
        return ceil_days(as_utc(subscription.end_date) - now)

    def status(self, user_id: int, now: datetime | None = None) -> SubscriptionStatus:
        now = as_utc(now or utcnow())
        subscription = self.get_current(user_id)
        if subscription is None:
            return SubscriptionStatus(user_id=user_id, active=False, days_remaining=0)
        return SubscriptionStatus(
            user_id=user_id,
            active=self.is_active(subscription, now),
            days_remaining=self.days_remaining(subscription, now),
            subscription_id=subscription.id,
            level=subscription.level,
            start_date=as_utc(subscription.start_date),
            end_date=as_utc(subscription.end_date),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def subscribe(self, user_id: int, tier: int, months: int, now: datetime | None = None) -> Subscription:
        """Новая выдача доступа с текущего момента на months месяцев."""
        self._validate(tier, months)
        now = as_utc(now or utcnow())
        subscription = Subscription(
            user_id=user_id,
            level=tier,
            start_date=now,
            end_date=add_months(now, months),
        )
        self.db.add(subscription)
        self.db.flush()
        logger.info(
            "subscription_created",
            extra={"user_id": user_id, "tier": tier, "months": months, "end_date": subscription.end_date.isoformat()},
        )
        return subscription

    def extend(self, user_id: int, tier: int, months: int, now: datetime | None = None) -> Subscription:
        """
        Продление от конца последней подписки того же или более высокого уровня
        (или от now, если такой нет или она истекла). Остаток младшего уровня
        не переносится в старший. Результат никогда не раньше add_months(now, months).
        """
        self._validate(tier, months)
        now = as_utc(now or utcnow())
        current = self.get_current(user_id, min_tier=tier)
        base = now
        if current is not None:
            base = max(as_utc(current.end_date), now)
        subscription = Subscription(
            user_id=user_id,
            level=tier,
            start_date=now,
            end_date=add_months(base, months),
        )
        self.db.add(subscription)
        self.db.flush()
        logger.info(
            "subscription_extended",
            extra={
                "user_id": user_id,
                "tier": tier,
                "months": months,
                "end_date": subscription.end_date.isoformat(),
            },
        )
        return subscription

    @staticmethod
    def _validate(tier: int, months: int) -> None:
        if not is_valid_tier(tier):
            raise ValueError(f"unknown tier: {tier}")
        if months < 1:
            raise ValueError("months must be positive")
