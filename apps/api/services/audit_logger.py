"""
Audit Logger

Structured log lines for user-impacting actions (payments, entitlement
changes, plan generation). User ids are hashed before they reach the logs.

The `payment_logs` table is the durable audit trail for billing; these lines
are the operational mirror that log aggregation picks up.
"""

import logging
import json
import hashlib
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import UUID

from core.logging import AUDIT_LOGGER_NAME

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)


def _anonymize_id(user_id: Optional[UUID]) -> Optional[str]:
    if user_id is None:
        return None
    return hashlib.sha256(str(user_id).encode()).hexdigest()[:12]


def log_audit(
    action: str,
    user_id: Optional[UUID],
    success: bool = True,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None
) -> None:
    """
    Log an audit event.

    Args:
        action: Action type (e.g., "subscription.status_changed")
        user_id: User UUID (anonymized); None for events with no known owner
        success: Whether the action succeeded
        before_state: State before action (optional)
        after_state: State after action (optional)
        metadata: Additional context
        error: Error message if failed
    """
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "user_hash": _anonymize_id(user_id),
        "success": success,
    }

    if before_state:
        event["before"] = before_state

    if after_state:
        event["after"] = after_state

    if metadata:
        event["metadata"] = metadata

    if error:
        event["error"] = error

    audit_logger.info(json.dumps(event, default=str))


# =============================================================================
# BILLING
# =============================================================================

def log_subscription_transition(
    user_id: UUID,
    subscription_id: UUID,
    previous_status: str,
    new_status: str,
    provider_status: Optional[str] = None,
) -> None:
    log_audit(
        action="subscription.status_changed",
        user_id=user_id,
        before_state={"status": previous_status},
        after_state={"status": new_status},
        metadata={"subscription_id": str(subscription_id), "provider_status": provider_status},
    )


def log_premium_granted(user_id: UUID, subscription_id: UUID) -> None:
    log_audit(
        action="entitlement.premium_granted",
        user_id=user_id,
        after_state={"is_premium": True},
        metadata={"subscription_id": str(subscription_id)},
    )


def log_orphan_webhook(provider_payment_id: str, provider_status: Optional[str]) -> None:
    log_audit(
        action="webhook.orphan",
        user_id=None,
        success=False,
        metadata={"provider_payment_id": provider_payment_id, "provider_status": provider_status},
    )


# =============================================================================
# PLAN GENERATION
# =============================================================================

def log_plan_generated(user_id: UUID, meal_days: int, workout_days: int, model: str) -> None:
    log_audit(
        action="plan.generated",
        user_id=user_id,
        after_state={"meal_days": meal_days, "workout_days": workout_days},
        metadata={"model": model},
    )
