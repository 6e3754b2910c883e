# marketplace/services/order_status.py
"""
Order lifecycle: which status may follow which, who may move an order there,
and the side effects (stock, timestamps, audit trail) of each change.
Callers commit the session.
"""
from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from marketplace.extensions import db
from marketplace.models import Order, OrderStatusHistory
from marketplace.services import inventory
from marketplace.api.utils.email import notify_order_status

log = logging.getLogger(__name__)

ORDER_STATUSES = (
    "pending",
    "paid",
    "confirmed",
    "processing",
    "packed",
    "shipped",
    "delivered",
    "cancelled",
    "refunded",
    "disputed",
)

ORDER_STATUS_TRANSITIONS = {
    "pending": ("paid", "cancelled", "disputed"),
    "paid": ("confirmed", "cancelled", "disputed"),
    "confirmed": ("processing", "cancelled", "disputed"),
    "processing": ("packed", "cancelled", "disputed"),
    "packed": ("shipped", "cancelled", "disputed"),
    "shipped": ("delivered", "cancelled", "disputed"),
    "delivered": ("refunded", "disputed"),
    "cancelled": (),
    "refunded": (),
    "disputed": ("cancelled", "refunded"),
}

STATUS_BUSINESS_RULES = {
    "paid": {},
    "confirmed": {"allowed_roles": ("admin", "vendor")},
    "processing": {},
    "packed": {"allowed_roles": ("admin", "vendor")},
    "shipped": {"allowed_roles": ("admin", "vendor"), "requires_tracking": True},
    "delivered": {"allowed_roles": ("admin", "vendor")},
    "cancelled": {"requires_reason": True},
    "refunded": {"allowed_roles": ("admin",)},
    "disputed": {"allowed_roles": ("customer", "vendor", "admin")},
}

# statuses a captured payment can still be refunded from
REFUNDABLE_STATUSES = ("paid", "confirmed", "processing", "packed", "shipped", "delivered", "disputed")

# buyer self-service cancellation
CUSTOMER_CANCELLABLE = ("pending", "confirmed")


class StatusTransitionError(ValueError):
    pass


def validate_order_status(status) -> bool:
    return status in ORDER_STATUSES


def can_transition_status(current: str, new: str) -> bool:
    if not validate_order_status(current) or not validate_order_status(new):
        return False
    # closed orders can only be disputed
    if current in ("cancelled", "refunded"):
        return new == "disputed"
    return new in ORDER_STATUS_TRANSITIONS.get(current, ())


def validate_status_transition(role: str, current: str, new: str, order_data: dict | None = None):
    """Returns (valid, reason)."""
    order_data = order_data or {}
    if not can_transition_status(current, new):
        return False, f"Cannot transition from {current} to {new}"

    rules = STATUS_BUSINESS_RULES.get(new)
    if rules is None:
        return False, "Status rules not defined"

    allowed = rules.get("allowed_roles")
    if allowed and role not in allowed:
        return False, f"Role {role} cannot change status to {new}"

    if rules.get("requires_reason") and not order_data.get("cancellation_reason"):
        return False, "Cancellation reason is required"

    if rules.get("requires_tracking") and not order_data.get("tracking_number"):
        return False, "Tracking number is required for shipped status"

    return True, None


def change_order_status(order: Order, new_status: str, changed_by=None, role: str = "system",
                        metadata: dict | None = None, check_transition: bool = True) -> str:
    """Apply a status change and its side effects. Returns the previous status."""
    metadata = dict(metadata or {})
    old_status = order.status

    if check_transition:
        valid, reason = validate_status_transition(
            role,
            old_status,
            new_status,
            {
                "cancellation_reason": metadata.get("reason"),
                "tracking_number": metadata.get("tracking_number") or order.tracking_number,
            },
        )
        if not valid:
            raise StatusTransitionError(reason)
    elif not validate_order_status(new_status):
        raise StatusTransitionError(f"Invalid status: {new_status}")

    now = datetime.utcnow()
    order.status = new_status
    order.updated_at = now

    if new_status == "paid":
        order.paid_at = now
        inventory.deduct_for_order(order)
    elif new_status == "confirmed":
        if old_status != "paid":
            inventory.deduct_for_order(order)
    elif new_status == "shipped":
        order.shipped_at = now
        if metadata.get("tracking_number"):
            order.tracking_number = metadata["tracking_number"]
        if metadata.get("carrier"):
            order.shipping_carrier = metadata["carrier"]
    elif new_status == "delivered":
        order.delivered_at = now
    elif new_status == "cancelled":
        order.cancelled_at = now
        order.cancellation_reason = metadata.get("reason")
        inventory.restore_for_order(order, metadata.get("reason"))
    elif new_status == "refunded":
        order.refunded_at = now

    db.session.add(OrderStatusHistory(
        order_id=order.id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        change_reason=metadata.get("reason"),
        details={**metadata, "timestamp": now.isoformat()},
    ))
    log.info("Order %s: %s -> %s (by %s)", order.id, old_status, new_status, changed_by or role)
    return old_status


def send_status_notification(order: Order, old_status: str, new_status: str) -> None:
    """Best effort: a failed mail never undoes a committed status change."""
    try:
        notify_order_status(order, old_status, new_status)
    except Exception:
        current_app.logger.exception("Status e-mail for order %s failed", order.id)
