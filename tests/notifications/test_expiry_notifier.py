"""ExpiryNotifier: 3-day window, latest row only, isolated send failures."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from app.core.errors import TelegramAPIError
from app.models.subscription import Subscription
from app.services.notifications.expiry import ExpiryNotifier, reminder_text

NOW = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)


def _add_sub(db, user, end: datetime, level: int = 1) -> Subscription:
    sub = Subscription(user_id=user.id, level=level, start_date=end - timedelta(days=30), end_date=end)
    db.add(sub)
    db.commit()
    return sub


def test_two_days_included_four_days_excluded(db, make_user):
    soon = make_user(telegram_id="100")
    later = make_user(telegram_id="200")
    _add_sub(db, soon, NOW + timedelta(days=2))
    _add_sub(db, later, NOW + timedelta(days=4))

    telegram = MagicMock()
    stats = ExpiryNotifier(db, telegram, window_days=3).run(NOW)

    assert stats.sent == 1
    telegram.send_message.assert_called_once_with("100", reminder_text(2))


def test_already_expired_not_reminded(db, make_user):
    user = make_user(telegram_id="100")
    _add_sub(db, user, NOW - timedelta(hours=1))
    assert ExpiryNotifier(db, MagicMock(), window_days=3).expiring(NOW) == []


def test_partial_day_rounds_up(db, make_user):
    user = make_user(telegram_id="100")
    _add_sub(db, user, NOW + timedelta(days=1, hours=3))
    telegram = MagicMock()
    ExpiryNotifier(db, telegram, window_days=3).run(NOW)
    telegram.send_message.assert_called_once_with("100", reminder_text(2))


def test_renewed_user_not_reminded(db, make_user):
    user = make_user(telegram_id="100")
    _add_sub(db, user, NOW + timedelta(days=2))
    _add_sub(db, user, NOW + timedelta(days=60))
    assert ExpiryNotifier(db, MagicMock(), window_days=3).expiring(NOW) == []


def test_send_failure_does_not_stop_sweep(db, make_user):
    first = make_user(telegram_id="100")
    second = make_user(telegram_id="200")
    _add_sub(db, first, NOW + timedelta(days=1))
    _add_sub(db, second, NOW + timedelta(days=2))

    telegram = MagicMock()
    telegram.send_message.side_effect = [TelegramAPIError("403: bot was blocked", error_code=403), None]
    stats = ExpiryNotifier(db, telegram, window_days=3).run(NOW)

    assert stats.failed == 1
    assert stats.sent == 1
    assert telegram.send_message.call_count == 2


def test_no_mutation(db, make_user):
    user = make_user(telegram_id="100")
    sub = _add_sub(db, user, NOW + timedelta(days=2))
    end_before = sub.end_date
    ExpiryNotifier(db, MagicMock(), window_days=3).run(NOW)
    db.refresh(sub)
    assert sub.end_date == end_before
    assert db.query(Subscription).count() == 1
