"""PaymentReconciliationService: status filter, correlation, idempotent apply."""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from app.core.errors import MalformedCorrelation, PlanMismatch, UnknownUser
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.services.audit.service import AuditService
from app.services.payments.base import PaymentNotification
from app.services.payments.service import (
    OUTCOME_APPLIED,
    OUTCOME_DUPLICATE,
    OUTCOME_IGNORED,
    PaymentReconciliationService,
    build_order,
)
from app.services.subscriptions.service import SubscriptionService
from app.utils.dates import add_months, as_utc

NOW = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def _notification(description: str, transaction_id: str = "tx-1", **overrides) -> PaymentNotification:
    data = dict(
        provider="cloudpayments",
        transaction_id=transaction_id,
        status="Completed",
        amount=Decimal("1490"),
        currency="RUB",
        description=description,
        is_successful=True,
    )
    data.update(overrides)
    return PaymentNotification(**data)


class TestReconcile:
    def test_applies_and_returns_grant(self, db, make_user):
        user = make_user(telegram_id="777")
        result = PaymentReconciliationService(db).reconcile(_notification(f"{user.id}_1_1"), now=NOW)

        assert result.outcome == OUTCOME_APPLIED
        assert result.grant.telegram_id == "777"
        assert result.grant.tier == 1
        assert result.grant.end_date == add_months(NOW, 1)
        assert db.query(Payment).count() == 1
        payment_row = db.query(Payment).one()
        entries = AuditService(db).entries_for("subscription", str(payment_row.subscription_id))
        assert [e.action for e in entries] == ["payment_applied"]
        assert entries[0].payload["transaction_id"] == "tx-1"

    def test_same_transaction_twice_same_end_date(self, db, make_user):
        user = make_user()
        svc = PaymentReconciliationService(db)
        notification = _notification(f"{user.id}_1_1")

        first = svc.reconcile(notification, now=NOW)
        end_once = as_utc(SubscriptionService(db).current_subscription(user.id).end_date)
        second = svc.reconcile(notification, now=NOW)
        end_twice = as_utc(SubscriptionService(db).current_subscription(user.id).end_date)

        assert first.outcome == OUTCOME_APPLIED
        assert second.outcome == OUTCOME_DUPLICATE
        assert second.grant is None
        assert end_once == end_twice
        assert db.query(Payment).count() == 1

    def test_concurrent_delivery_caught_by_unique_ledger(self, db, make_user):
        user = make_user()
        svc = PaymentReconciliationService(db)
        notification = _notification(f"{user.id}_1_1")
        svc.reconcile(notification, now=NOW)
        end_once = as_utc(SubscriptionService(db).current_subscription(user.id).end_date)

        # The other delivery committed its ledger row after our lookup
        with patch.object(PaymentReconciliationService, "_ledger_entry", return_value=None):
            result = svc.reconcile(notification, now=NOW)

        assert result.outcome == OUTCOME_DUPLICATE
        assert result.grant is None
        assert as_utc(SubscriptionService(db).current_subscription(user.id).end_date) == end_once
        assert db.query(Payment).count() == 1
        assert db.query(Subscription).count() == 1

    def test_distinct_transactions_stack(self, db, make_user):
        user = make_user()
        svc = PaymentReconciliationService(db)
        svc.reconcile(_notification(f"{user.id}_1_1", "tx-1"), now=NOW)
        svc.reconcile(_notification(f"{user.id}_1_1", "tx-2"), now=NOW)
        end = as_utc(SubscriptionService(db).current_subscription(user.id).end_date)
        assert end == add_months(add_months(NOW, 1), 1)

    def test_non_success_status_ignored(self, db, make_user):
        user = make_user()
        result = PaymentReconciliationService(db).reconcile(
            _notification(f"{user.id}_1_1", status="Declined", is_successful=False), now=NOW
        )
        assert result.outcome == OUTCOME_IGNORED
        assert SubscriptionService(db).get_current(user.id) is None
        assert db.query(Payment).count() == 0

    def test_non_success_ignored_even_with_garbage_correlation(self, db):
        result = PaymentReconciliationService(db).reconcile(
            _notification("garbage", is_successful=False), now=NOW
        )
        assert result.outcome == OUTCOME_IGNORED

    def test_malformed_correlation(self, db):
        with pytest.raises(MalformedCorrelation):
            PaymentReconciliationService(db).reconcile(_notification("1_1"), now=NOW)

    def test_unknown_user_is_not_created(self, db):
        with pytest.raises(UnknownUser):
            PaymentReconciliationService(db).reconcile(_notification("999_1_1"), now=NOW)
        assert db.query(Payment).count() == 0

    def test_amount_below_price(self, db, make_user):
        user = make_user()
        with pytest.raises(PlanMismatch):
            PaymentReconciliationService(db).reconcile(
                _notification(f"{user.id}_2_1", amount=Decimal("1490")), now=NOW
            )

    def test_duration_not_sold(self, db, make_user):
        user = make_user()
        with pytest.raises(PlanMismatch):
            PaymentReconciliationService(db).reconcile(_notification(f"{user.id}_1_2"), now=NOW)

    def test_price_check_can_be_disabled(self, db, make_user):
        user = make_user()
        result = PaymentReconciliationService(db, enforce_plan_prices=False).reconcile(
            _notification(f"{user.id}_1_2", amount=Decimal("1")), now=NOW
        )
        assert result.outcome == OUTCOME_APPLIED
        assert result.grant.end_date == add_months(NOW, 2)

    def test_same_transaction_id_from_other_provider_is_separate(self, db, make_user):
        user = make_user()
        svc = PaymentReconciliationService(db)
        svc.reconcile(_notification(f"{user.id}_1_1", "tx-1"), now=NOW)
        other = svc.reconcile(
            _notification(f"{user.id}_1_1", "tx-1", provider="signed_redirect"), now=NOW
        )
        assert other.outcome == OUTCOME_APPLIED
        assert db.query(Payment).count() == 2


def test_build_order_uses_plan_price():
    order = build_order(42, 2, 12)
    assert order.amount == Decimal("47890")
    assert order.description == "42_2_12"
    assert order.currency == "RUB"


def test_build_order_rejects_unsold_plan():
    with pytest.raises(ValueError):
        build_order(42, 1, 2)
