from __future__ import annotations

from typing import Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from pydantic import BaseModel

from core.auth import get_current_user
from core.config import settings
from core.database import get_db
from core.exceptions import (
    ConflictError,
    InvalidInput,
    InvalidWebhookEvent,
    NotFoundError,
    PaymentGatewayError,
    PersistenceConflict,
)
from models import User
from schemas import SubscriptionResponse, SubscriptionStatusResponse
from services.mercadopago_service import MercadoPagoService
from services.payment_state_machine import (
    InvalidTransition,
    PaymentStatus,
    PaymentWebhookEvent,
    append_payment_log,
    process_payment_webhook,
)
from services.subscription_service import (
    cancel_pending_subscription,
    create_payment,
    get_entitlement,
    get_user_subscription,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])


class CreatePaymentRequest(BaseModel):
    plan_id: str
    payment_method: str


def _gateway() -> MercadoPagoService:
    try:
        return MercadoPagoService()
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post("/payments")
def create_payment_endpoint(
    request: CreatePaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Start a premium purchase.

    PIX: returns QR code, copy-paste code and expiry.
    Card: returns the hosted checkout URL to redirect to.
    """
    gateway = _gateway()
    try:
        return create_payment(
            db,
            user=current_user,
            plan_id=request.plan_id,
            payment_method=request.payment_method,
            gateway=gateway,
        )
    except InvalidInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.post("/payments/{subscription_id}/cancel", response_model=SubscriptionResponse)
def cancel_payment(
    subscription_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub = get_user_subscription(db, current_user.id, subscription_id)
    if sub is None:
        raise NotFoundError("Subscription", str(subscription_id))
    if sub.status != PaymentStatus.PENDING.value:
        raise ConflictError(f"Subscription is {sub.status}, only pending payments can be cancelled")
    try:
        cancel_pending_subscription(db, sub)
    except InvalidTransition as e:
        raise ConflictError(str(e))
    except PersistenceConflict as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return sub


@router.get("/subscription-status", response_model=SubscriptionStatusResponse)
def subscription_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        entitlement = get_entitlement(db, current_user.id)
    except LookupError:
        raise NotFoundError("User", str(current_user.id))
    return {
        "success": True,
        "is_premium": entitlement.is_premium,
        "subscription": entitlement.latest_paid_subscription,
    }


@router.get("/webhooks/payment")
def payment_webhook_probe():
    """Gateway readiness probe."""
    return {"status": "ok", "message": "Payment webhook endpoint is ready"}


@router.post("/webhooks/payment")
async def payment_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Mercado Pago payment notification.

    Acknowledges (200) everything that was processed or can never be
    processed (orphans, non-payment events). Transient failures answer 5xx
    so the gateway redelivers.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook body")

    event = PaymentWebhookEvent.from_payload(body)
    logger.info(f"Payment webhook received: type={event.event_type!r} action={event.action!r} id={event.payment_id}")

    if event.event_type != "payment":
        return {"received": True}

    gateway = _gateway()

    if settings.MP_WEBHOOK_SIGNATURE_REQUIRED:
        data_id: Optional[str] = request.query_params.get("data.id") or event.payment_id
        valid = gateway.validate_webhook_signature(
            x_signature=request.headers.get("x-signature"),
            x_request_id=request.headers.get("x-request-id"),
            data_id=data_id,
        )
        if not valid:
            logger.warning(f"Rejected payment webhook with invalid signature (id={event.payment_id})")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        result = process_payment_webhook(db, event=event, gateway=gateway)
    except InvalidWebhookEvent as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentGatewayError as e:
        append_payment_log(db, event="webhook_error", payload={"webhook": body, "error": str(e)})
        # Commit the audit row; the 502 below would otherwise roll it back.
        db.commit()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not fetch payment")
    except PersistenceConflict as e:
        logger.error(f"Payment webhook conflict for {event.payment_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Concurrent update, retry")

    return {
        "received": True,
        "outcome": result.outcome.value,
        "status": result.status,
        "premium_granted": result.premium_granted,
    }
