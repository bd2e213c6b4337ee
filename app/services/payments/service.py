"""
PaymentReconciliationService: применение платёжных уведомлений.

Ответственности:
- Отсев неуспешных статусов (ack без изменений)
- Разбор correlation "{userId}_{tier}_{months}" и сверка с тарифом
- Идемпотентная выдача доступа: одна транзакция провайдера = одно продление
- Журнал платежей + аудит в одной транзакции БД с подпиской

Аутентификация уведомления выполняется на стороне провайдера (parse_notification).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import DuplicateTransaction, PlanMismatch, UnknownUser
from app.models.payment import Payment
from app.models.user import User
from app.services.audit.service import ACTOR_PAYMENT_PROVIDER, AuditService
from app.services.payments.base import PaymentLink, PaymentNotification, PaymentOrder, PaymentProvider
from app.services.payments.correlation import Correlation, decode_correlation, encode_correlation
from app.services.payments.hooks import Grant
from app.services.plans import get_price_decimal
from app.services.subscriptions.service import SubscriptionService
from app.utils.dates import as_utc, utcnow
from app.utils.metrics import payment_notifications_total, subscriptions_granted_total

logger = logging.getLogger(__name__)

OUTCOME_APPLIED = "applied"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"


@dataclass
class ReconciliationResult:
    outcome: str
    grant: Grant | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == OUTCOME_APPLIED


def build_order(user_id: int, tier: int, months: int, email: str | None = None) -> PaymentOrder:
    """Заказ по тарифу; ValueError, если такой тариф не продаётся."""
    price = get_price_decimal(tier, months)
    if price is None:
        raise ValueError(f"plan not sold: tier={tier} months={months}")
    return PaymentOrder(
        amount=price,
        currency=settings.payment_currency,
        description=encode_correlation(user_id, tier, months),
        email=email,
    )


def create_payment_link(
    provider: PaymentProvider,
    user_id: int,
    tier: int,
    months: int,
    email: str | None = None,
) -> PaymentLink:
    order = build_order(user_id, tier, months, email=email)
    link = provider.create_payment(order)
    logger.info(
        "payment_link_created",
        extra={"user_id": user_id, "tier": tier, "months": months, "provider": link.provider},
    )
    return link


class PaymentReconciliationService:
    def __init__(self, db: Session, enforce_plan_prices: bool | None = None):
        self.db = db
        self.enforce_plan_prices = (
            settings.enforce_plan_prices if enforce_plan_prices is None else enforce_plan_prices
        )
        self.subscriptions = SubscriptionService(db)
        self.audit = AuditService(db)

    def reconcile(self, notification: PaymentNotification, now: datetime | None = None) -> ReconciliationResult:
        """
        Применить аутентифицированное уведомление.
        Raises MalformedCorrelation / PlanMismatch / UnknownUser. Дубликат не ошибка.
        """
        now = as_utc(now or utcnow())
        provider = notification.provider

        if not notification.is_successful:
            logger.info(
                "payment_notification_ignored",
                extra={
                    "provider": provider,
                    "transaction_id": notification.transaction_id,
                    "status": notification.status,
                },
            )
            payment_notifications_total.labels(provider=provider, outcome=OUTCOME_IGNORED).inc()
            return ReconciliationResult(outcome=OUTCOME_IGNORED)

        correlation = decode_correlation(notification.description)
        if self.enforce_plan_prices:
            self._check_plan(correlation, notification.amount)

        try:
            grant = self._apply(notification, correlation, now)
        except DuplicateTransaction:
            self.db.rollback()
            logger.info(
                "payment_already_processed",
                extra={"provider": provider, "transaction_id": notification.transaction_id},
            )
            payment_notifications_total.labels(provider=provider, outcome=OUTCOME_DUPLICATE).inc()
            return ReconciliationResult(outcome=OUTCOME_DUPLICATE)
        except UnknownUser:
            self.db.rollback()
            raise

        payment_notifications_total.labels(provider=provider, outcome=OUTCOME_APPLIED).inc()
        subscriptions_granted_total.labels(tier=str(grant.tier)).inc()
        return ReconciliationResult(outcome=OUTCOME_APPLIED, grant=grant)

    @staticmethod
    def _check_plan(correlation: Correlation, amount: Decimal) -> None:
        price = get_price_decimal(correlation.tier, correlation.months)
        if price is None:
            raise PlanMismatch(
                "duration is not sold",
                detail={"tier": correlation.tier, "months": correlation.months},
            )
        if amount < price:
            raise PlanMismatch(
                "paid amount below plan price",
                detail={"amount": str(amount), "price": str(price)},
            )

    def _ledger_entry(self, provider: str, transaction_id: str) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.provider == provider, Payment.transaction_id == transaction_id)
            .one_or_none()
        )

    def _apply(self, notification: PaymentNotification, correlation: Correlation, now: datetime) -> Grant:
        user = (
            self.db.query(User)
            .filter(User.id == correlation.user_id)
            .with_for_update()
            .one_or_none()
        )
        if not user:
            logger.error("payment_user_not_found", extra={"user_id": correlation.user_id})
            raise UnknownUser("user not found", detail={"user_id": correlation.user_id})

        if self._ledger_entry(notification.provider, notification.transaction_id):
            raise DuplicateTransaction(
                "transaction already applied",
                detail={"transaction_id": notification.transaction_id},
            )

        try:
            subscription = self.subscriptions.extend(
                user.id, correlation.tier, correlation.months, now=now
            )
            payment = Payment(
                provider=notification.provider,
                transaction_id=notification.transaction_id,
                user_id=user.id,
                level=correlation.tier,
                months=correlation.months,
                amount=notification.amount,
                currency=notification.currency or settings.payment_currency,
                status="completed",
                subscription_id=subscription.id,
            )
            self.db.add(payment)
            self.db.flush()
            self.audit.log(
                actor_type=ACTOR_PAYMENT_PROVIDER,
                actor_id=notification.provider,
                action="payment_applied",
                entity_type="subscription",
                entity_id=str(subscription.id),
                payload={
                    "transaction_id": notification.transaction_id,
                    "user_id": user.id,
                    "tier": correlation.tier,
                    "months": correlation.months,
                    "amount": str(notification.amount),
                },
            )
            self.db.commit()
        except IntegrityError as e:
            # Параллельная доставка той же транзакции успела записать журнал первой
            raise DuplicateTransaction(
                "transaction already applied",
                detail={"transaction_id": notification.transaction_id},
            ) from e

        end_date = as_utc(subscription.end_date)
        logger.info(
            "payment_applied",
            extra={
                "user_id": user.id,
                "provider": notification.provider,
                "transaction_id": notification.transaction_id,
                "tier": correlation.tier,
                "months": correlation.months,
                "end_date": end_date.isoformat(),
            },
        )
        return Grant(
            user_id=user.id,
            telegram_id=user.telegram_id,
            tier=correlation.tier,
            months=correlation.months,
            end_date=end_date,
            transaction_id=notification.transaction_id,
            provider=notification.provider,
        )
