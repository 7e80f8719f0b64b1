"""
Payment / subscription state machine.

Maps gateway payment statuses onto Subscription.status and grants the
premium flag when a subscription enters `paid`.

    pending -> paid | failed | cancelled
    paid    -> refunded

failed, cancelled and refunded are terminal. Premium is never revoked here.

Every status write is a conditional UPDATE guarded by the set of valid
predecessor states, so two concurrent deliveries of the same notification
cannot both observe `pending` and both grant premium.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any, Optional, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import (
    InvalidWebhookEvent,
    PersistenceConflict,
    SubscriptionNotFound,
    UnknownProviderStatus,
)
from models import PaymentLog, Subscription, UserProfile
from services import audit_logger
from services.mercadopago_service import ProviderPayment

logger = logging.getLogger(__name__)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


TERMINAL_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED})
TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)

# A user who reached either status has bought premium; refunds never revoke it.
PREMIUM_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value)

PROVIDER_STATUS_MAP: dict[str, PaymentStatus] = {
    "approved": PaymentStatus.PAID,
    "pending": PaymentStatus.PENDING,
    "in_process": PaymentStatus.PENDING,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
}

VALID_PREDECESSORS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PAID: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.CANCELLED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.REFUNDED: frozenset({PaymentStatus.PAID}),
}


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    UNKNOWN_STATUS = "unknown_status"
    INVALID_TRANSITION = "invalid_transition"
    ORPHAN = "orphan"
    IGNORED = "ignored"


class InvalidTransition(ValueError):
    """Target status is not reachable from the subscription's current status."""

    def __init__(self, current: str, target: PaymentStatus):
        super().__init__(f"Cannot move subscription from {current} to {target.value}")
        self.current = current
        self.target = target


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    subscription_id: Optional[UUID] = None
    previous_status: Optional[str] = None
    status: Optional[str] = None
    premium_granted: bool = False


@dataclass(frozen=True)
class PaymentWebhookEvent:
    event_type: str
    payment_id: Optional[str]
    action: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, body: dict[str, Any]) -> "PaymentWebhookEvent":
        data = body.get("data") or {}
        payment_id = data.get("id") if isinstance(data, dict) else None
        return cls(
            event_type=str(body.get("type") or ""),
            payment_id=str(payment_id) if payment_id not in (None, "") else None,
            action=body.get("action"),
            raw=body,
        )


class PaymentLookup(Protocol):
    def get_payment(self, payment_id: str) -> ProviderPayment: ...


def map_provider_status(provider_status: Optional[str]) -> PaymentStatus:
    mapped = PROVIDER_STATUS_MAP.get((provider_status or "").strip().lower())
    if mapped is None:
        raise UnknownProviderStatus(provider_status)
    return mapped


def append_payment_log(
    db: Session,
    *,
    event: str,
    payload: Optional[dict[str, Any]],
    user_id: Optional[UUID] = None,
    subscription_id: Optional[UUID] = None,
) -> PaymentLog:
    entry = PaymentLog(user_id=user_id, subscription_id=subscription_id, event=event, payload=payload)
    db.add(entry)
    db.flush()
    return entry


def find_subscription(
    db: Session,
    provider_payment_id: str,
    external_reference: Optional[str] = None,
) -> Subscription:
    """
    Subscription for a gateway payment.

    Card checkouts store the preference id, not the payment id, so the
    external reference echoed on the payment is the fallback key. Several
    rows can share one reference after a retried checkout; an open row wins
    over ended ones.
    """
    sub = db.query(Subscription).filter(Subscription.provider_payment_id == str(provider_payment_id)).first()
    if sub is None and external_reference:
        candidates = (
            db.query(Subscription)
            .filter(Subscription.external_reference == external_reference)
            .order_by(Subscription.created_at.desc())
            .all()
        )
        still_open = [s for s in candidates if s.status not in TERMINAL_VALUES]
        sub = (still_open or candidates or [None])[0]
    if sub is None:
        raise SubscriptionNotFound(str(provider_payment_id))
    return sub


def attach_payment(db: Session, subscription: Subscription, provider_payment_id: str) -> Subscription:
    """
    Bind a payment matched through its external reference to a row.

    A pending checkout row adopts the payment id. When the checkout already
    ended (the buyer retried after a rejection) the payment gets a new
    pending row, since terminal rows never move again.
    """
    if subscription.status == PaymentStatus.PENDING.value:
        subscription.provider_payment_id = provider_payment_id
        db.flush()
        return subscription
    if subscription.status not in TERMINAL_VALUES:
        return subscription

    retry = Subscription(
        user_id=subscription.user_id,
        plan_id=subscription.plan_id,
        amount_cents=subscription.amount_cents,
        payment_method=subscription.payment_method,
        provider=subscription.provider,
        provider_payment_id=provider_payment_id,
        external_reference=subscription.external_reference,
        status=PaymentStatus.PENDING.value,
    )
    db.add(retry)
    db.flush()
    logger.info(
        f"Payment {provider_payment_id} retries checkout {subscription.external_reference}; "
        f"opened subscription {retry.id} after {subscription.id} ended {subscription.status}"
    )
    return retry


def _conditional_update(
    db: Session,
    subscription_id: UUID,
    target: PaymentStatus,
    predecessors: frozenset[PaymentStatus],
) -> bool:
    values: dict[str, Any] = {"status": target.value}
    if target is PaymentStatus.PAID:
        values["paid_at"] = datetime.now(timezone.utc)
    rows = (
        db.query(Subscription)
        .filter(
            Subscription.id == subscription_id,
            Subscription.status.in_([s.value for s in predecessors]),
        )
        .update(values, synchronize_session=False)
    )
    return rows == 1


def transition_subscription(db: Session, subscription: Subscription, target: PaymentStatus) -> bool:
    """
    Compare-and-set `subscription` into `target`.

    Returns True when this call moved the record, False when it was already
    in `target` (replay, or a concurrent delivery won).

    Raises:
        InvalidTransition: current status is not a valid predecessor.
        PersistenceConflict: the conditional update lost twice.
    """
    predecessors = VALID_PREDECESSORS.get(target, frozenset())

    for attempt in range(2):
        if _conditional_update(db, subscription.id, target, predecessors):
            db.refresh(subscription)
            return True

        current = db.query(Subscription.status).filter(Subscription.id == subscription.id).scalar()
        if current == target.value:
            db.refresh(subscription)
            return False
        if current not in {s.value for s in predecessors}:
            raise InvalidTransition(str(current), target)
        logger.warning(
            f"Conditional update of subscription {subscription.id} to {target.value} missed "
            f"(attempt {attempt + 1}), current={current}"
        )

    raise PersistenceConflict(f"Subscription {subscription.id} kept changing while moving to {target.value}")


def has_premium_purchase(db: Session, user_id: UUID) -> bool:
    """True once any of the user's subscriptions reached `paid`."""
    return (
        db.query(Subscription.id)
        .filter(Subscription.user_id == user_id, Subscription.status.in_(PREMIUM_STATUSES))
        .first()
        is not None
    )


def grant_premium(db: Session, user_id: UUID) -> bool:
    """
    Set the premium flag on the user's profile.

    Returns False when the user has no profile yet; profile creation picks
    the purchase up through has_premium_purchase.
    """
    rows = (
        db.query(UserProfile)
        .filter(UserProfile.user_id == user_id)
        .update({"is_premium": True}, synchronize_session=False)
    )
    if rows == 0:
        logger.info(f"Paid subscription for user {user_id} before onboarding; premium applied on profile creation")
    return rows > 0


def apply_provider_status(
    db: Session,
    provider_payment_id: str,
    provider_status: Optional[str],
    payload: Optional[dict[str, Any]] = None,
    external_reference: Optional[str] = None,
) -> TransitionResult:
    """
    Apply a gateway-reported status to the matching subscription.

    Appends exactly one payment_logs row per call. Does not commit.

    Raises:
        SubscriptionNotFound: no subscription for the payment.
        PersistenceConflict: concurrent writers kept winning.
    """
    matched = find_subscription(db, provider_payment_id, external_reference)
    sub = matched
    if matched.provider_payment_id != str(provider_payment_id):
        sub = attach_payment(db, matched, str(provider_payment_id))
    previous = sub.status
    log_payload = dict(payload or {})
    log_payload.update({"previous_status": previous, "provider_status": provider_status})
    if sub.id != matched.id:
        log_payload["retry_of"] = str(matched.id)

    try:
        target = map_provider_status(provider_status)
    except UnknownProviderStatus:
        logger.warning(f"Unknown provider status {provider_status!r} for payment {provider_payment_id}; left {previous}")
        append_payment_log(db, event="unknown_provider_status", payload=log_payload, user_id=sub.user_id, subscription_id=sub.id)
        return TransitionResult(TransitionOutcome.UNKNOWN_STATUS, sub.id, previous, previous)

    log_payload["new_status"] = target.value

    if previous == target.value:
        append_payment_log(db, event="webhook_duplicate", payload=log_payload, user_id=sub.user_id, subscription_id=sub.id)
        return TransitionResult(TransitionOutcome.UNCHANGED, sub.id, previous, previous)

    try:
        moved = transition_subscription(db, sub, target)
    except InvalidTransition as e:
        logger.warning(f"Rejected transition for payment {provider_payment_id}: {e}")
        append_payment_log(db, event="invalid_transition", payload=log_payload, user_id=sub.user_id, subscription_id=sub.id)
        return TransitionResult(TransitionOutcome.INVALID_TRANSITION, sub.id, previous, sub.status)

    if not moved:
        append_payment_log(db, event="webhook_duplicate", payload=log_payload, user_id=sub.user_id, subscription_id=sub.id)
        return TransitionResult(TransitionOutcome.UNCHANGED, sub.id, previous, sub.status)

    premium_granted = False
    if target is PaymentStatus.PAID:
        premium_granted = grant_premium(db, sub.user_id)
        if premium_granted:
            audit_logger.log_premium_granted(sub.user_id, sub.id)

    log_payload["premium_granted"] = premium_granted
    append_payment_log(db, event="status_changed", payload=log_payload, user_id=sub.user_id, subscription_id=sub.id)
    audit_logger.log_subscription_transition(sub.user_id, sub.id, previous, target.value, provider_status)
    logger.info(f"Subscription {sub.id} {previous} -> {target.value} (provider status {provider_status})")

    return TransitionResult(TransitionOutcome.APPLIED, sub.id, previous, target.value, premium_granted)


def cancel_pending(db: Session, subscription: Subscription) -> TransitionResult:
    """User-initiated cancel of a payment that never completed."""
    previous = subscription.status
    moved = transition_subscription(db, subscription, PaymentStatus.CANCELLED)
    if not moved:
        return TransitionResult(TransitionOutcome.UNCHANGED, subscription.id, previous, subscription.status)
    append_payment_log(
        db,
        event="status_changed",
        payload={"previous_status": previous, "new_status": PaymentStatus.CANCELLED.value, "source": "user_cancel"},
        user_id=subscription.user_id,
        subscription_id=subscription.id,
    )
    audit_logger.log_subscription_transition(subscription.user_id, subscription.id, previous, PaymentStatus.CANCELLED.value)
    return TransitionResult(TransitionOutcome.APPLIED, subscription.id, previous, PaymentStatus.CANCELLED.value)


def process_payment_webhook(db: Session, *, event: PaymentWebhookEvent, gateway: PaymentLookup) -> TransitionResult:
    """
    Handle one gateway notification.

    Non-payment events are acknowledged without state change. Notifications
    for unknown payments are recorded as orphans and acknowledged.

    Raises:
        InvalidWebhookEvent: payment notification without a payment id.
        PaymentGatewayError: the payment could not be fetched.
        PersistenceConflict: see transition_subscription.
    """
    if event.event_type != "payment":
        logger.info(f"Ignoring non-payment webhook event: {event.event_type!r}")
        return TransitionResult(TransitionOutcome.IGNORED)

    if not event.payment_id:
        raise InvalidWebhookEvent("Missing payment ID")

    payment = gateway.get_payment(event.payment_id)
    logger.info(
        f"Payment {payment.id}: status={payment.status} detail={payment.status_detail} "
        f"method={payment.payment_method_id} amount={payment.amount}"
    )
    payload = {"webhook": event.raw, "payment": payment.to_dict()}

    try:
        return apply_provider_status(
            db,
            event.payment_id,
            payment.status,
            payload=payload,
            external_reference=payment.external_reference,
        )
    except SubscriptionNotFound:
        logger.error(f"Subscription not found for payment {event.payment_id}; recording orphan webhook")
        append_payment_log(db, event="webhook_received_orphan", payload=payload)
        audit_logger.log_orphan_webhook(event.payment_id, payment.status)
        return TransitionResult(TransitionOutcome.ORPHAN)
