"""
Payment state machine: status mapping, idempotent replays, orphans and
the compare-and-set retry.
"""
from uuid import uuid4

import pytest

from core.exceptions import InvalidWebhookEvent, PersistenceConflict, SubscriptionNotFound, UnknownProviderStatus
from models import PaymentLog, Subscription, UserProfile
from services import payment_state_machine as psm
from services.mercadopago_service import ProviderPayment
from services.payment_state_machine import (
    PaymentStatus,
    PaymentWebhookEvent,
    TransitionOutcome,
    apply_provider_status,
    cancel_pending,
    map_provider_status,
    process_payment_webhook,
)


def _subscription(db, user, status="pending", provider_payment_id=None, external_reference=None):
    sub = Subscription(
        user_id=user.id,
        plan_id="premium_monthly",
        amount_cents=3900,
        payment_method="pix",
        provider_payment_id=provider_payment_id or str(uuid4().int)[:12],
        external_reference=external_reference,
        status=status,
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    return sub


def _logs(db, event=None):
    q = db.query(PaymentLog)
    if event:
        q = q.filter(PaymentLog.event == event)
    return q.all()


class _Gateway:
    def __init__(self, status, external_reference=None):
        self.status = status
        self.external_reference = external_reference
        self.calls = []

    def get_payment(self, payment_id):
        self.calls.append(payment_id)
        return ProviderPayment(
            id=payment_id,
            status=self.status,
            status_detail="accredited",
            amount=39.0,
            payment_method_id="pix",
            external_reference=self.external_reference,
        )


class TestMapping:
    @pytest.mark.parametrize(
        "provider,internal",
        [
            ("approved", PaymentStatus.PAID),
            ("pending", PaymentStatus.PENDING),
            ("in_process", PaymentStatus.PENDING),
            ("rejected", PaymentStatus.FAILED),
            ("cancelled", PaymentStatus.FAILED),
            ("refunded", PaymentStatus.REFUNDED),
            ("charged_back", PaymentStatus.REFUNDED),
        ],
    )
    def test_known_statuses(self, provider, internal):
        assert map_provider_status(provider) is internal

    @pytest.mark.parametrize("provider", ["authorized", "", None, "APPROVED_ISH"])
    def test_unknown_status(self, provider):
        with pytest.raises(UnknownProviderStatus):
            map_provider_status(provider)


class TestApplyProviderStatus:
    def test_approved_pending_grants_premium(self, db_session, test_user, test_profile):
        sub = _subscription(db_session, test_user, provider_payment_id="123")

        result = apply_provider_status(db_session, "123", "approved")
        db_session.commit()

        assert result.outcome is TransitionOutcome.APPLIED
        assert result.previous_status == "pending"
        assert result.status == "paid"
        assert result.premium_granted is True

        db_session.expire_all()
        sub = db_session.get(Subscription, sub.id)
        assert sub.status == "paid"
        assert sub.paid_at is not None
        assert db_session.get(UserProfile, test_profile.id).is_premium is True
        assert len(_logs(db_session, "status_changed")) == 1

    def test_replay_is_idempotent(self, db_session, test_user, test_profile):
        _subscription(db_session, test_user, provider_payment_id="123")

        first = apply_provider_status(db_session, "123", "approved")
        second = apply_provider_status(db_session, "123", "approved")
        db_session.commit()

        assert first.outcome is TransitionOutcome.APPLIED
        assert second.outcome is TransitionOutcome.UNCHANGED
        assert second.premium_granted is False
        assert len(_logs(db_session, "status_changed")) == 1
        assert len(_logs(db_session, "webhook_duplicate")) == 1
        # one audit row per delivery
        assert len(_logs(db_session)) == 2

    def test_rejected_marks_failed_without_premium(self, db_session, test_user, test_profile):
        sub = _subscription(db_session, test_user, provider_payment_id="55")

        result = apply_provider_status(db_session, "55", "rejected")
        db_session.commit()

        assert result.outcome is TransitionOutcome.APPLIED
        db_session.expire_all()
        assert db_session.get(Subscription, sub.id).status == "failed"
        assert db_session.get(UserProfile, test_profile.id).is_premium is False

    def test_refund_keeps_premium(self, db_session, test_user, make_profile):
        make_profile(test_user, is_premium=True)
        sub = _subscription(db_session, test_user, status="paid", provider_payment_id="77")

        result = apply_provider_status(db_session, "77", "refunded")
        db_session.commit()

        assert result.outcome is TransitionOutcome.APPLIED
        assert result.premium_granted is False
        db_session.expire_all()
        assert db_session.get(Subscription, sub.id).status == "refunded"
        profile = db_session.query(UserProfile).filter(UserProfile.user_id == test_user.id).one()
        assert profile.is_premium is True

    def test_terminal_state_is_not_left(self, db_session, test_user, test_profile):
        sub = _subscription(db_session, test_user, status="failed", provider_payment_id="88")

        result = apply_provider_status(db_session, "88", "approved")
        db_session.commit()

        assert result.outcome is TransitionOutcome.INVALID_TRANSITION
        db_session.expire_all()
        assert db_session.get(Subscription, sub.id).status == "failed"
        assert db_session.get(UserProfile, test_profile.id).is_premium is False
        assert len(_logs(db_session, "invalid_transition")) == 1

    def test_pending_to_refunded_is_rejected(self, db_session, test_user, test_profile):
        _subscription(db_session, test_user, provider_payment_id="89")
        result = apply_provider_status(db_session, "89", "refunded")
        assert result.outcome is TransitionOutcome.INVALID_TRANSITION
        assert result.status == "pending"

    def test_unknown_status_leaves_subscription(self, db_session, test_user, test_profile):
        sub = _subscription(db_session, test_user, provider_payment_id="99")

        result = apply_provider_status(db_session, "99", "authorized")
        db_session.commit()

        assert result.outcome is TransitionOutcome.UNKNOWN_STATUS
        db_session.expire_all()
        assert db_session.get(Subscription, sub.id).status == "pending"
        assert len(_logs(db_session, "unknown_provider_status")) == 1

    def test_missing_subscription_raises(self, db_session):
        with pytest.raises(SubscriptionNotFound):
            apply_provider_status(db_session, "nope", "approved")

    def test_lookup_falls_back_to_external_reference(self, db_session, test_user, test_profile):
        sub = _subscription(db_session, test_user, provider_payment_id="pref-1", external_reference="ref-1")

        result = apply_provider_status(db_session, "pay-1", "approved", external_reference="ref-1")

        assert result.outcome is TransitionOutcome.APPLIED
        assert result.subscription_id == sub.id
        db_session.expire_all()
        # later notifications for the payment match directly
        assert db_session.get(Subscription, sub.id).provider_payment_id == "pay-1"

    def test_checkout_retried_after_rejection_opens_new_subscription(self, db_session, test_user, test_profile):
        first_attempt = _subscription(db_session, test_user, provider_payment_id="pref-1", external_reference="ref-1")

        rejected = apply_provider_status(db_session, "pay-1", "rejected", external_reference="ref-1")
        approved = apply_provider_status(db_session, "pay-2", "approved", external_reference="ref-1")
        db_session.commit()

        assert rejected.outcome is TransitionOutcome.APPLIED
        assert rejected.subscription_id == first_attempt.id
        assert approved.outcome is TransitionOutcome.APPLIED
        assert approved.subscription_id != first_attempt.id
        assert approved.premium_granted is True

        db_session.expire_all()
        assert db_session.get(Subscription, first_attempt.id).status == "failed"
        retry = db_session.get(Subscription, approved.subscription_id)
        assert retry.status == "paid"
        assert retry.provider_payment_id == "pay-2"
        assert retry.external_reference == "ref-1"
        assert retry.plan_id == first_attempt.plan_id
        assert db_session.get(UserProfile, test_profile.id).is_premium is True

        retry_log = (
            db_session.query(PaymentLog)
            .filter(PaymentLog.subscription_id == retry.id, PaymentLog.event == "status_changed")
            .one()
        )
        assert retry_log.payload["retry_of"] == str(first_attempt.id)
        # still one audit row per delivery
        assert len(_logs(db_session)) == 2

    def test_retried_payment_replay_reuses_the_new_subscription(self, db_session, test_user, test_profile):
        _subscription(db_session, test_user, status="failed", provider_payment_id="pay-1", external_reference="ref-1")

        first = apply_provider_status(db_session, "pay-2", "approved", external_reference="ref-1")
        again = apply_provider_status(db_session, "pay-2", "approved", external_reference="ref-1")

        assert again.outcome is TransitionOutcome.UNCHANGED
        assert again.subscription_id == first.subscription_id
        assert db_session.query(Subscription).filter(Subscription.external_reference == "ref-1").count() == 2

    def test_paid_before_onboarding_still_records_payment(self, db_session, test_user):
        _subscription(db_session, test_user, provider_payment_id="101")

        result = apply_provider_status(db_session, "101", "approved")

        assert result.outcome is TransitionOutcome.APPLIED
        assert result.status == "paid"
        assert psm.has_premium_purchase(db_session, test_user.id) is True

    def test_has_premium_purchase_ignores_unpaid(self, db_session, test_user):
        _subscription(db_session, test_user, status="failed")
        _subscription(db_session, test_user, status="pending")
        assert psm.has_premium_purchase(db_session, test_user.id) is False

        _subscription(db_session, test_user, status="refunded")
        assert psm.has_premium_purchase(db_session, test_user.id) is True


class TestCompareAndSet:
    def test_concurrent_winner_means_no_second_grant(self, db_session, test_user, test_profile, monkeypatch):
        sub = _subscription(db_session, test_user, provider_payment_id="200")
        real = psm._conditional_update

        def _lose_to_other_writer(db, subscription_id, target, predecessors):
            # Another delivery commits "paid" between our read and our write.
            db.query(Subscription).filter(Subscription.id == subscription_id).update(
                {"status": "paid"}, synchronize_session=False
            )
            monkeypatch.setattr(psm, "_conditional_update", real)
            return False

        monkeypatch.setattr(psm, "_conditional_update", _lose_to_other_writer)

        result = apply_provider_status(db_session, "200", "approved")

        assert result.outcome is TransitionOutcome.UNCHANGED
        assert result.premium_granted is False
        assert len(_logs(db_session, "status_changed")) == 0
        assert len(_logs(db_session, "webhook_duplicate")) == 1
        assert sub.status == "paid"

    def test_single_miss_is_retried(self, db_session, test_user, test_profile, monkeypatch):
        _subscription(db_session, test_user, provider_payment_id="201")
        real = psm._conditional_update
        calls = []

        def _miss_once(*args):
            calls.append(args)
            if len(calls) == 1:
                return False
            return real(*args)

        monkeypatch.setattr(psm, "_conditional_update", _miss_once)

        result = apply_provider_status(db_session, "201", "approved")

        assert len(calls) == 2
        assert result.outcome is TransitionOutcome.APPLIED
        assert result.premium_granted is True

    def test_two_misses_raise_persistence_conflict(self, db_session, test_user, test_profile, monkeypatch):
        _subscription(db_session, test_user, provider_payment_id="202")
        monkeypatch.setattr(psm, "_conditional_update", lambda *args: False)

        with pytest.raises(PersistenceConflict):
            apply_provider_status(db_session, "202", "approved")


class TestProcessWebhook:
    def test_non_payment_event_is_ignored(self, db_session):
        gateway = _Gateway("approved")
        event = PaymentWebhookEvent.from_payload({"type": "merchant_order", "data": {"id": "1"}})

        result = process_payment_webhook(db_session, event=event, gateway=gateway)

        assert result.outcome is TransitionOutcome.IGNORED
        assert gateway.calls == []

    def test_payment_without_id(self, db_session):
        event = PaymentWebhookEvent.from_payload({"type": "payment", "data": {}})
        with pytest.raises(InvalidWebhookEvent):
            process_payment_webhook(db_session, event=event, gateway=_Gateway("approved"))

    def test_orphan_is_absorbed_and_logged(self, db_session):
        event = PaymentWebhookEvent.from_payload({"type": "payment", "data": {"id": 424242}})

        result = process_payment_webhook(db_session, event=event, gateway=_Gateway("approved"))
        db_session.commit()

        assert result.outcome is TransitionOutcome.ORPHAN
        orphans = _logs(db_session, "webhook_received_orphan")
        assert len(orphans) == 1
        assert orphans[0].user_id is None
        assert orphans[0].payload["payment"]["id"] == "424242"

    def test_payment_is_fetched_and_applied(self, db_session, test_user, test_profile):
        _subscription(db_session, test_user, provider_payment_id="300")
        gateway = _Gateway("approved")
        event = PaymentWebhookEvent.from_payload({"type": "payment", "action": "payment.updated", "data": {"id": "300"}})

        result = process_payment_webhook(db_session, event=event, gateway=gateway)

        assert gateway.calls == ["300"]
        assert result.outcome is TransitionOutcome.APPLIED
        assert result.premium_granted is True


def test_cancel_pending(db_session, test_user):
    sub = _subscription(db_session, test_user)

    result = cancel_pending(db_session, sub)

    assert result.outcome is TransitionOutcome.APPLIED
    assert sub.status == "cancelled"
    with pytest.raises(psm.InvalidTransition):
        cancel_pending(db_session, _subscription(db_session, test_user, status="paid"))
