"""Payment and fulfillment status transitions for orders.

Payment status moves only out of ``pending``; ``completed`` is terminal.
Fulfillment status advances forward only, and only once payment has
completed. The functions here are pure: they decide whether a transition is
allowed and what it writes, and ``OrderService`` performs the conditional
update that makes the transition atomic against concurrent deliveries.
"""

from datetime import datetime, timezone
from typing import Any

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"completed", "failed", "expired"}),
    "completed": frozenset(),
    "failed": frozenset(),
    "expired": frozenset(),
}

FULFILLMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


def can_transition_payment(current: str, target: str) -> bool:
    """Check whether payment status may move from current to target."""
    return target in PAYMENT_TRANSITIONS.get(current, frozenset())


def can_advance_fulfillment(payment_status: str, current: str, target: str) -> bool:
    """Check whether fulfillment status may move from current to target.

    Args:
        payment_status: Payment status the order has once the write lands.
        current: Current fulfillment status.
        target: Requested fulfillment status.
    """
    if target != "cancelled" and payment_status != "completed":
        return False
    return target in FULFILLMENT_TRANSITIONS.get(current, frozenset())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def paid_update(
    charge_id: str | None,
    now: str | None = None,
    advance_fulfillment: bool = True,
) -> dict[str, Any]:
    """Build the write for pending -> completed.

    Payment status, fulfillment status, charge reference, payment timestamp
    and the settlement start stamp go out in a single statement. The start
    stamp lets a later delivery tell an interrupted settlement from an order
    completed elsewhere. Fulfillment is left alone when it has already moved
    past ``pending``.
    """
    now = now or utc_now()
    update: dict[str, Any] = {
        "payment_status": "completed",
        "charge_id": charge_id,
        "paid_at": now,
        "settlement_started_at": now,
        "updated_at": now,
    }
    if advance_fulfillment:
        update["status"] = "processing"
    return update


def failed_update(
    charge_id: str | None,
    failure_code: str | None = None,
    failure_message: str | None = None,
) -> dict[str, Any]:
    """Build the write for pending -> failed."""
    return {
        "payment_status": "failed",
        "charge_id": charge_id,
        "failure_code": failure_code,
        "failure_reason": failure_message or "Payment failed",
        "updated_at": utc_now(),
    }


def expired_update(charge_id: str | None) -> dict[str, Any]:
    """Build the write for pending -> expired."""
    return {
        "payment_status": "expired",
        "charge_id": charge_id,
        "updated_at": utc_now(),
    }
