"""
Premium plans: payment creation, user cancel and the entitlement query.

Payments start life as a `pending` Subscription row keyed by the gateway's
id; only the payment state machine moves them on from there.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import time
from typing import Any, Optional, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import InvalidInput
from models import Subscription, User, UserProfile
from services.payment_state_machine import (
    PaymentStatus,
    TransitionResult,
    append_payment_log,
    cancel_pending,
    has_premium_purchase,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanConfig:
    plan_id: str
    name: str
    description: str
    amount_cents: int
    currency: str
    interval_months: int

    @property
    def amount(self) -> float:
        return self.amount_cents / 100


PLANS: dict[str, PlanConfig] = {
    "premium_monthly": PlanConfig(
        plan_id="premium_monthly",
        name="MacroFit Premium Mensal",
        description="Planos completos de 7 dias, treinos ilimitados e ajustes semanais",
        amount_cents=3900,
        currency="BRL",
        interval_months=1,
    ),
    "premium_yearly": PlanConfig(
        plan_id="premium_yearly",
        name="MacroFit Premium Anual",
        description="Todos os recursos Premium por 12 meses",
        amount_cents=39900,
        currency="BRL",
        interval_months=12,
    ),
}

PAYMENT_METHODS = ("pix", "credit_card", "debit_card")
PAYMENT_METHOD_ALIASES = {"card": "credit_card"}


class PaymentGateway(Protocol):
    def create_pix_payment(self, **kwargs: Any) -> dict[str, Any]: ...
    def create_card_preference(self, **kwargs: Any) -> dict[str, Any]: ...


@dataclass(frozen=True)
class Entitlement:
    is_premium: bool
    latest_paid_subscription: Optional[Subscription]


def get_plan(plan_id: str) -> PlanConfig:
    plan = PLANS.get((plan_id or "").strip())
    if plan is None:
        raise InvalidInput(f"Unknown plan: {plan_id!r}", field="plan_id")
    return plan


def normalize_payment_method(method: str) -> str:
    key = (method or "").strip().lower()
    key = PAYMENT_METHOD_ALIASES.get(key, key)
    if key not in PAYMENT_METHODS:
        raise InvalidInput(f"Unsupported payment method: {method!r}", field="payment_method")
    return key


def build_external_reference(user_id: UUID, plan_id: str) -> str:
    return f"{user_id}-{plan_id}-{int(time.time() * 1000)}"


def _pix_transaction_data(response: dict[str, Any]) -> dict[str, Any]:
    poi = response.get("point_of_interaction") or {}
    return poi.get("transaction_data") or {}


def create_payment(
    db: Session,
    *,
    user: User,
    plan_id: str,
    payment_method: str,
    gateway: PaymentGateway,
) -> dict[str, Any]:
    """
    Start a premium purchase.

    PIX returns QR code data; cards return the hosted checkout URL.
    Gateway failures propagate (PaymentGatewayError) before anything is stored.
    """
    plan = get_plan(plan_id)
    method = normalize_payment_method(payment_method)
    external_reference = build_external_reference(user.id, plan.plan_id)

    if method == "pix":
        response = gateway.create_pix_payment(
            amount=plan.amount,
            description=plan.description,
            payer_email=user.email,
            payer_first_name=user.display_name or "Usuário",
            external_reference=external_reference,
        )
    else:
        response = gateway.create_card_preference(
            title=plan.name,
            description=plan.description,
            amount=plan.amount,
            currency=plan.currency,
            payer_email=user.email,
            external_reference=external_reference,
        )
    provider_payment_id = str(response["id"])

    sub = Subscription(
        user_id=user.id,
        plan_id=plan.plan_id,
        amount_cents=plan.amount_cents,
        payment_method=method,
        provider_payment_id=provider_payment_id,
        external_reference=external_reference,
        status=PaymentStatus.PENDING.value,
    )
    db.add(sub)
    db.flush()

    append_payment_log(db, event="payment_created", payload=response, user_id=user.id, subscription_id=sub.id)
    logger.info(f"Created {method} payment {provider_payment_id} for plan {plan.plan_id}")

    result: dict[str, Any] = {
        "success": True,
        "subscription_id": sub.id,
        "provider_payment_id": provider_payment_id,
        "payment_method": method,
        "plan_id": plan.plan_id,
        "amount_cents": plan.amount_cents,
    }
    if method == "pix":
        tx = _pix_transaction_data(response)
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.PIX_EXPIRATION_MINUTES)
        result.update(
            {
                "qr_code": tx.get("qr_code"),
                "qr_code_base64": tx.get("qr_code_base64"),
                "copy_paste": tx.get("qr_code"),
                "expires_at": expires_at,
            }
        )
    else:
        result["checkout_url"] = response.get("init_point")
    return result


def get_user_subscription(db: Session, user_id: UUID, subscription_id: UUID) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.id == subscription_id, Subscription.user_id == user_id)
        .first()
    )


def cancel_pending_subscription(db: Session, subscription: Subscription) -> TransitionResult:
    """
    Cancel a payment the user abandoned.

    Raises:
        InvalidTransition: the subscription is no longer pending.
    """
    return cancel_pending(db, subscription)


def get_entitlement(db: Session, user_id: UUID) -> Entitlement:
    """
    Premium flag plus the most recent paid subscription.

    Raises:
        LookupError: unknown user.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise LookupError(f"User not found: {user_id}")

    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    latest = (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.status == PaymentStatus.PAID.value)
        .order_by(Subscription.created_at.desc(), Subscription.paid_at.desc())
        .first()
    )
    if profile is not None:
        is_premium = bool(profile.is_premium)
    else:
        is_premium = has_premium_purchase(db, user_id)
    return Entitlement(
        is_premium=is_premium,
        latest_paid_subscription=latest,
    )
