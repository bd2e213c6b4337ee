"""
Post-commit side effects of an applied payment.

Hooks run in order after the entitlement is committed and the provider has its ack.
Each hook is isolated: a failure is logged and counted, the next hook still runs,
the grant is never rolled back.
"""
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.config import settings
from app.services.plans import TIER_CHANNEL_AND_CHAT, TIER_TITLES, format_duration
from app.services.telegram.client import TelegramClient
from app.utils.dates import utcnow
from app.utils.metrics import invite_links_issued_total, post_commit_hook_failures_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Grant:
    """Committed entitlement, everything the hooks need without a DB session."""
    user_id: int
    telegram_id: str
    tier: int
    months: int
    end_date: datetime
    transaction_id: str
    provider: str


PostCommitHook = Callable[[Grant, TelegramClient], None]


def invite_targets_for_tier(tier: int) -> list[str]:
    """Tier 1: primary group. Tier 2: primary group + auxiliary chat."""
    targets = [settings.telegram_group_id]
    if tier >= TIER_CHANNEL_AND_CHAT:
        targets.append(settings.aux_chat_id)
    return targets


def issue_invite_links(grant: Grant, telegram: TelegramClient) -> list[str]:
    expire_date = utcnow() + timedelta(seconds=settings.invite_link_ttl_seconds)
    links = []
    try:
        for chat_id in invite_targets_for_tier(grant.tier):
            link = telegram.create_chat_invite_link(
                chat_id,
                expire_date=expire_date,
                member_limit=settings.invite_link_member_limit,
                name=f"pay {grant.transaction_id}",
            )
            invite_links_issued_total.inc()
            links.append(link)
    finally:
        # Links already created are delivered even if a later one failed
        if links:
            lines = ["Ссылки для вступления (действуют ограниченное время):"]
            lines.extend(links)
            telegram.send_message(grant.telegram_id, "\n".join(lines))
            logger.info(
                "invite_links_issued",
                extra={"user_id": grant.user_id, "tier": grant.tier, "count": len(links)},
            )
    return links


def send_payment_confirmation(grant: Grant, telegram: TelegramClient) -> None:
    text = (
        "Оплата прошла успешно! ✅\n"
        f"{TIER_TITLES.get(grant.tier, f'Уровень {grant.tier}')}, {format_duration(grant.months)}.\n"
        f"Подписка активна до {grant.end_date:%d.%m.%Y}."
    )
    telegram.send_message(grant.telegram_id, text)


DEFAULT_POST_COMMIT_HOOKS: tuple[PostCommitHook, ...] = (
    issue_invite_links,
    send_payment_confirmation,
)


def run_post_commit_hooks(
    grant: Grant,
    hooks: Sequence[PostCommitHook] = DEFAULT_POST_COMMIT_HOOKS,
    telegram: TelegramClient | None = None,
) -> int:
    """Run hooks in order; returns the number of failed hooks."""
    own_client = telegram is None
    client = telegram or TelegramClient()
    failures = 0
    try:
        for hook in hooks:
            hook_name = getattr(hook, "__name__", repr(hook))
            try:
                hook(grant, client)
            except Exception as e:
                failures += 1
                post_commit_hook_failures_total.labels(hook=hook_name).inc()
                logger.exception(
                    "post_commit_hook_failed",
                    extra={
                        "hook": hook_name,
                        "user_id": grant.user_id,
                        "transaction_id": grant.transaction_id,
                        "error": str(e),
                    },
                )
    finally:
        if own_client:
            client.close()
    return failures
