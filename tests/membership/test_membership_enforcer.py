"""MembershipEnforcer: who gets removed from gated chats."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.core.errors import TransientIOError
from app.services.membership.service import (
    REASON_EXPIRED,
    REASON_INSUFFICIENT_TIER,
    REASON_NO_SUBSCRIPTION,
    REASON_NO_USER,
    EnforcedChat,
    MembershipEnforcer,
    evaluate_member,
)
from app.services.subscriptions.service import SubscriptionService
from app.utils.dates import add_months, as_utc

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
GROUP = EnforcedChat("-100111", 1)
AUX = EnforcedChat("-100222", 2)


def _sub(level=1, end=None):
    sub = MagicMock()
    sub.level = level
    sub.end_date = end or NOW + timedelta(days=10)
    return sub


class TestEvaluateMember:
    @pytest.mark.parametrize("status", ["administrator", "creator"])
    def test_staff_never_removed(self, status):
        assert evaluate_member(status, None, None, 1, NOW) is None
        assert evaluate_member(status, MagicMock(), None, 2, NOW) is None

    @pytest.mark.parametrize("status", ["left", "kicked"])
    def test_not_in_chat_ignored(self, status):
        assert evaluate_member(status, None, None, 1, NOW) is None

    def test_no_user_record(self):
        assert evaluate_member("member", None, None, 1, NOW) == REASON_NO_USER

    def test_no_subscription(self):
        assert evaluate_member("member", MagicMock(), None, 1, NOW) == REASON_NO_SUBSCRIPTION

    def test_expired(self):
        sub = _sub(end=NOW - timedelta(seconds=1))
        assert evaluate_member("member", MagicMock(), sub, 1, NOW) == REASON_EXPIRED

    def test_ends_exactly_now_is_expired(self):
        assert evaluate_member("member", MagicMock(), _sub(end=NOW), 1, NOW) == REASON_EXPIRED

    def test_tier_too_low_for_aux_chat(self):
        assert evaluate_member("member", MagicMock(), _sub(level=1), 2, NOW) == REASON_INSUFFICIENT_TIER

    def test_active_member_kept(self):
        assert evaluate_member("member", MagicMock(), _sub(level=2), 2, NOW) is None
        assert evaluate_member("restricted", MagicMock(), _sub(level=1), 1, NOW) is None


class TestSweep:
    def _enforcer(self, db, statuses, chats=(GROUP,)):
        telegram = MagicMock()

        def status_for(chat_id, telegram_id):
            value = statuses.get(telegram_id, "left")
            if isinstance(value, Exception):
                raise value
            return value

        telegram.get_chat_member_status.side_effect = status_for
        return MembershipEnforcer(db, telegram, chats=list(chats)), telegram

    def test_admin_with_no_subscription_not_removed(self, db, make_user):
        make_user(telegram_id="1")
        enforcer, telegram = self._enforcer(db, {"1": "administrator"})
        stats = enforcer.sweep(NOW)
        telegram.kick_chat_member.assert_not_called()
        assert stats.skipped_staff == 1
        assert stats.removed == 0

    def test_removes_expired_and_unsubscribed_keeps_active(self, db, make_user):
        active = make_user(telegram_id="1")
        expired = make_user(telegram_id="2")
        make_user(telegram_id="3")
        subs = SubscriptionService(db)
        subs.subscribe(active.id, 1, 1, now=NOW - timedelta(days=1))
        subs.subscribe(expired.id, 1, 1, now=NOW - timedelta(days=90))
        db.commit()

        enforcer, telegram = self._enforcer(db, {"1": "member", "2": "member", "3": "member"})
        stats = enforcer.sweep(NOW)

        removed = sorted(c.args[1] for c in telegram.kick_chat_member.call_args_list)
        assert removed == ["2", "3"]
        assert stats.removed == 2
        assert stats.checked == 3

    def test_failure_on_one_member_does_not_abort(self, db, make_user):
        make_user(telegram_id="1")
        make_user(telegram_id="2")
        enforcer, telegram = self._enforcer(
            db, {"1": TransientIOError("timeout"), "2": "member"}
        )
        stats = enforcer.sweep(NOW)
        assert stats.failed == 1
        assert stats.removed == 1
        telegram.kick_chat_member.assert_called_once_with(GROUP.chat_id, "2")

    def test_kick_failure_counted(self, db, make_user):
        make_user(telegram_id="1")
        make_user(telegram_id="2")
        enforcer, telegram = self._enforcer(db, {"1": "member", "2": "member"})
        telegram.kick_chat_member.side_effect = [TransientIOError("boom"), None]
        stats = enforcer.sweep(NOW)
        assert stats.failed == 1
        assert stats.removed == 1

    def test_tier_one_removed_from_aux_chat_only(self, db, make_user):
        user = make_user(telegram_id="1")
        SubscriptionService(db).subscribe(user.id, 1, 1, now=NOW)
        db.commit()
        enforcer, telegram = self._enforcer(db, {"1": "member"}, chats=(GROUP, AUX))
        enforcer.sweep(NOW)
        telegram.kick_chat_member.assert_called_once_with(AUX.chat_id, "1")

    def test_non_members_skipped(self, db, make_user):
        make_user(telegram_id="1")
        enforcer, telegram = self._enforcer(db, {"1": "left"})
        enforcer.sweep(NOW)
        telegram.kick_chat_member.assert_not_called()

    def test_tier_two_kept_in_aux_chat_after_later_tier_one_purchase(self, db, make_user):
        user = make_user(telegram_id="1")
        subs = SubscriptionService(db)
        subs.extend(user.id, 2, 1, now=NOW)
        subs.extend(user.id, 1, 12, now=NOW + timedelta(days=1))
        db.commit()

        enforcer, telegram = self._enforcer(db, {"1": "member"}, chats=(GROUP, AUX))
        stats = enforcer.sweep(NOW + timedelta(days=2))

        telegram.kick_chat_member.assert_not_called()
        assert stats.checked == 2

    def test_aux_chat_closes_when_tier_two_ends_before_tier_one(self, db, make_user):
        user = make_user(telegram_id="1")
        subs = SubscriptionService(db)
        subs.extend(user.id, 2, 1, now=NOW)
        subs.extend(user.id, 1, 12, now=NOW + timedelta(days=1))
        db.commit()

        enforcer, telegram = self._enforcer(db, {"1": "member"}, chats=(GROUP, AUX))
        enforcer.sweep(NOW + timedelta(days=60))

        telegram.kick_chat_member.assert_called_once_with(AUX.chat_id, "1")

    def test_tier_one_remainder_does_not_carry_into_tier_two(self, db, make_user):
        user = make_user(telegram_id="1")
        subs = SubscriptionService(db)
        subs.extend(user.id, 1, 12, now=NOW)
        upgrade = subs.extend(user.id, 2, 1, now=NOW + timedelta(days=1))
        db.commit()
        assert as_utc(upgrade.end_date) == add_months(NOW + timedelta(days=1), 1)

        enforcer, telegram = self._enforcer(db, {"1": "member"}, chats=(GROUP, AUX))
        enforcer.sweep(NOW + timedelta(days=45))

        telegram.kick_chat_member.assert_called_once_with(AUX.chat_id, "1")
