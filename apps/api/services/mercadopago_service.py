from __future__ import annotations

from dataclasses import dataclass
import hashlib
import hmac
import logging
from typing import Any, Optional
import uuid

import requests

from core.config import settings
from core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MercadoPagoConfig:
    access_token: str
    base_url: str
    webhook_secret: Optional[str]
    notification_url: str
    success_url: str
    failure_url: str
    pending_url: str
    timeout_s: int


@dataclass(frozen=True)
class ProviderPayment:
    """The subset of a Mercado Pago payment the billing flow reads."""

    id: str
    status: Optional[str]
    status_detail: Optional[str]
    amount: Optional[float]
    payment_method_id: Optional[str]
    external_reference: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ProviderPayment":
        return cls(
            id=str(data.get("id") or ""),
            status=data.get("status"),
            status_detail=data.get("status_detail"),
            amount=data.get("transaction_amount"),
            payment_method_id=data.get("payment_method_id"),
            external_reference=data.get("external_reference"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "status_detail": self.status_detail,
            "amount": self.amount,
            "payment_method_id": self.payment_method_id,
            "external_reference": self.external_reference,
        }


def _get_mercadopago_config() -> MercadoPagoConfig:
    """
    Load gateway config from Settings.

    Fail closed: without an access token, billing endpoints must not proceed.
    """
    token = settings.MP_ACCESS_TOKEN
    if not token:
        raise RuntimeError("Mercado Pago not configured (missing: MP_ACCESS_TOKEN)")

    base = settings.APP_BASE_URL.rstrip("/")
    return MercadoPagoConfig(
        access_token=str(token),
        base_url=settings.MP_BASE_URL.rstrip("/"),
        webhook_secret=settings.MP_WEBHOOK_SECRET or None,
        notification_url=f"{base}/v1/billing/webhooks/payment",
        success_url=f"{base}/payment/success",
        failure_url=f"{base}/payment/failure",
        pending_url=f"{base}/payment/pending",
        timeout_s=int(settings.EXTERNAL_API_TIMEOUT),
    )


def parse_signature_header(x_signature: str) -> dict[str, str]:
    """'ts=1704908010,v1=abc...' -> {'ts': '1704908010', 'v1': 'abc...'}"""
    parts: dict[str, str] = {}
    for chunk in (x_signature or "").split(","):
        key, sep, value = chunk.partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def signature_manifest(data_id: str, request_id: str, ts: str) -> str:
    # Mercado Pago lower-cases alphanumeric data ids before signing.
    return f"id:{str(data_id).lower()};request-id:{request_id};ts:{ts};"


def compute_webhook_signature(secret: str, data_id: str, request_id: str, ts: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        signature_manifest(data_id, request_id, ts).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class MercadoPagoService:
    def __init__(self) -> None:
        self.cfg = _get_mercadopago_config()

    def _headers(self, *, idempotent: bool = False) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.cfg.access_token}",
        }
        if idempotent:
            headers["X-Idempotency-Key"] = str(uuid.uuid4())
        return headers

    def _request(self, method: str, path: str, *, json_body: Optional[dict] = None, idempotent: bool = False) -> dict[str, Any]:
        url = f"{self.cfg.base_url}{path}"
        try:
            r = requests.request(
                method,
                url,
                headers=self._headers(idempotent=idempotent),
                json=json_body,
                timeout=self.cfg.timeout_s,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Mercado Pago request failed: {method} {path}: {e}")
            raise PaymentGatewayError(f"Mercado Pago unreachable: {e}") from e

        if not r.ok:
            try:
                message = (r.json() or {}).get("message") or r.reason
            except ValueError:
                message = r.reason
            logger.error(f"Mercado Pago error {r.status_code} on {method} {path}: {message}")
            raise PaymentGatewayError(f"Mercado Pago error: {message}", status_code=r.status_code)

        return r.json()

    def create_pix_payment(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        payer_first_name: Optional[str],
        external_reference: str,
    ) -> dict[str, Any]:
        payer: dict[str, Any] = {"email": payer_email}
        if payer_first_name:
            payer["first_name"] = payer_first_name
        body = {
            "transaction_amount": amount,
            "description": description,
            "payment_method_id": "pix",
            "payer": payer,
            "external_reference": external_reference,
            "notification_url": self.cfg.notification_url,
        }
        return self._request("POST", "/v1/payments", json_body=body, idempotent=True)

    def create_card_preference(
        self,
        *,
        title: str,
        description: str,
        amount: float,
        currency: str,
        payer_email: str,
        external_reference: str,
    ) -> dict[str, Any]:
        body = {
            "items": [
                {
                    "title": title,
                    "description": description,
                    "quantity": 1,
                    "unit_price": amount,
                    "currency_id": currency,
                }
            ],
            "payer": {"email": payer_email},
            "back_urls": {
                "success": self.cfg.success_url,
                "failure": self.cfg.failure_url,
                "pending": self.cfg.pending_url,
            },
            "auto_return": "approved",
            "external_reference": external_reference,
            "notification_url": self.cfg.notification_url,
        }
        return self._request("POST", "/checkout/preferences", json_body=body, idempotent=True)

    def get_payment(self, payment_id: str) -> ProviderPayment:
        data = self._request("GET", f"/v1/payments/{payment_id}")
        return ProviderPayment.from_api(data)

    def validate_webhook_signature(
        self,
        *,
        x_signature: Optional[str],
        x_request_id: Optional[str],
        data_id: Optional[str],
    ) -> bool:
        """
        Check the `x-signature` header against HMAC-SHA256 of the manifest
        `id:{data.id};request-id:{x-request-id};ts:{ts};`.
        """
        if not self.cfg.webhook_secret:
            logger.warning("MP_WEBHOOK_SECRET not set, cannot verify webhook signature")
            return False
        if not x_signature or not x_request_id or not data_id:
            logger.warning("Webhook missing signature headers or data id")
            return False

        parts = parse_signature_header(x_signature)
        ts = parts.get("ts")
        received = parts.get("v1")
        if not ts or not received:
            return False

        expected = compute_webhook_signature(self.cfg.webhook_secret, data_id, x_request_id, ts)
        return hmac.compare_digest(received, expected)
