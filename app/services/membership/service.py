"""
MembershipEnforcer: сверка участников закрытых чатов с подписками.

Админов и создателя чата не трогаем никогда. Удаление = ban + unban:
пользователь сможет вернуться по новой ссылке после оплаты.
Ошибка по одному участнику не прерывает обход.
Доступ к чату решает последняя подписка уровня не ниже требуемого чатом.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.subscription import Subscription
from app.models.user import User
from app.services.plans import TIER_CHANNEL, TIER_CHANNEL_AND_CHAT
from app.services.subscriptions.service import SubscriptionService
from app.services.telegram.client import TelegramClient
from app.services.users.service import UserService
from app.utils.dates import as_utc, utcnow
from app.utils.metrics import membership_removals_total, membership_sweep_duration_seconds

logger = logging.getLogger(__name__)

STAFF_STATUSES = frozenset({"creator", "administrator"})
NOT_IN_CHAT_STATUSES = frozenset({"left", "kicked", ""})

REASON_NO_USER = "no_user"
REASON_NO_SUBSCRIPTION = "no_subscription"
REASON_EXPIRED = "expired"
REASON_INSUFFICIENT_TIER = "insufficient_tier"


@dataclass(frozen=True)
class EnforcedChat:
    chat_id: str
    min_tier: int


def enforced_chats() -> list[EnforcedChat]:
    chats = [EnforcedChat(settings.telegram_group_id, TIER_CHANNEL)]
    aux = settings.telegram_aux_chat_id
    if aux and aux != settings.telegram_group_id:
        chats.append(EnforcedChat(aux, TIER_CHANNEL_AND_CHAT))
    return chats


def evaluate_member(
    member_status: str,
    user: User | None,
    subscription: Subscription | None,
    min_tier: int = TIER_CHANNEL,
    now: datetime | None = None,
) -> str | None:
    """Reason to remove the member, or None to keep them."""
    if member_status in STAFF_STATUSES:
        return None
    if member_status in NOT_IN_CHAT_STATUSES:
        return None
    if user is None:
        return REASON_NO_USER
    if subscription is None:
        return REASON_NO_SUBSCRIPTION
    if not SubscriptionService.is_active(subscription, now):
        return REASON_EXPIRED
    if subscription.level < min_tier:
        return REASON_INSUFFICIENT_TIER
    return None


@dataclass
class SweepStats:
    checked: int = 0
    removed: int = 0
    skipped_staff: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "removed": self.removed,
            "skipped_staff": self.skipped_staff,
            "failed": self.failed,
        }


class MembershipEnforcer:
    def __init__(
        self,
        db: Session,
        telegram: TelegramClient,
        chats: list[EnforcedChat] | None = None,
    ) -> None:
        self.db = db
        self.telegram = telegram
        self.chats = chats if chats is not None else enforced_chats()
        self.subscriptions = SubscriptionService(db)

    def remove(self, chat_id: str, telegram_id: str, reason: str) -> None:
        self.telegram.kick_chat_member(chat_id, telegram_id)
        membership_removals_total.labels(reason=reason).inc()
        logger.info(
            "member_removed",
            extra={"chat_id": chat_id, "telegram_id": telegram_id, "reason": reason},
        )

    def sweep(self, now: datetime | None = None) -> SweepStats:
        now = as_utc(now or utcnow())
        stats = SweepStats()
        start = time.time()
        users = UserService(self.db).list_all()
        for user in users:
            for chat in self.chats:
                try:
                    subscription = self.subscriptions.entitlement_for(user.id, chat.min_tier)
                    member_status = self.telegram.get_chat_member_status(chat.chat_id, user.telegram_id)
                    stats.checked += 1
                    if member_status in STAFF_STATUSES:
                        stats.skipped_staff += 1
                        continue
                    reason = evaluate_member(member_status, user, subscription, chat.min_tier, now)
                    if reason:
                        self.remove(chat.chat_id, user.telegram_id, reason)
                        stats.removed += 1
                except Exception as e:
                    stats.failed += 1
                    logger.warning(
                        "membership_check_failed",
                        extra={
                            "user_id": user.id,
                            "telegram_id": user.telegram_id,
                            "chat_id": chat.chat_id,
                            "error": str(e),
                        },
                    )
        membership_sweep_duration_seconds.observe(time.time() - start)
        logger.info("membership_sweep_done", extra=stats.as_dict())
        return stats
