# marketplace/services/paypal_webhooks.py
"""
PayPal event notifications. `apply_event` maps one event onto the local
order it concerns and leaves the session uncommitted; the route commits and
mails the buyer.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass

from marketplace.models import Order, Refund
from marketplace.services.cart import value_to_cents
from marketplace.services.order_status import REFUNDABLE_STATUSES, change_order_status
from marketplace.services.paypal import extract_capture_id

log = logging.getLogger(__name__)

SIGNATURE_HEADER = "PayPal-Transmission-Sig"
TRANSMISSION_ID_HEADER = "PayPal-Transmission-Id"
TRANSMISSION_TIME_HEADER = "PayPal-Transmission-Time"


@dataclass
class EventOutcome:
    order: Order | None
    old_status: str | None = None
    new_status: str | None = None

    @property
    def changed(self) -> bool:
        return self.new_status is not None and self.new_status != self.old_status


def sign_transmission(webhook_id: str, transmission_id: str, timestamp: str, body: bytes) -> str:
    message = f"{transmission_id}|{timestamp}|".encode("utf-8") + body
    return hmac.new(webhook_id.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(webhook_id: str | None, headers, body: bytes) -> bool:
    signature = headers.get(SIGNATURE_HEADER)
    if not signature or not webhook_id:
        log.error("Missing webhook signature or webhook ID")
        return False
    expected = sign_transmission(
        webhook_id,
        headers.get(TRANSMISSION_ID_HEADER) or "",
        headers.get(TRANSMISSION_TIME_HEADER) or "",
        body,
    )
    return hmac.compare_digest(signature, expected)


def _text(value) -> str | None:
    """PayPal ids are strings; anything else is treated as absent."""
    if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
        return str(value)
    return None


def _mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


def _related_ids(resource: dict) -> dict:
    return _mapping(_mapping(resource.get("supplementary_data")).get("related_ids"))


def _order_by_paypal_id(paypal_order_id) -> Order | None:
    paypal_order_id = _text(paypal_order_id)
    if paypal_order_id is None:
        return None
    return Order.query.filter_by(payment_id=paypal_order_id).first()


def _mark_paid(order: Order | None, capture_id, reason: str) -> EventOutcome:
    if order is None:
        return EventOutcome(None)
    if capture_id:
        order.paypal_capture_id = capture_id
    if order.status != "pending":
        return EventOutcome(order)
    old = change_order_status(
        order, "paid", role="system",
        metadata={"reason": reason, "paypal_order_id": order.payment_id},
    )
    return EventOutcome(order, old, "paid")


def _capture_completed(resource: dict) -> EventOutcome:
    order = _order_by_paypal_id(_related_ids(resource).get("order_id"))
    return _mark_paid(order, _text(resource.get("id")), "PayPal capture completed")


def _order_completed(resource: dict) -> EventOutcome:
    order = _order_by_paypal_id(resource.get("id"))
    return _mark_paid(order, extract_capture_id(resource), "PayPal order completed")


def _capture_denied(resource: dict) -> EventOutcome:
    order = _order_by_paypal_id(_related_ids(resource).get("order_id"))
    if order is None or order.status != "pending":
        return EventOutcome(order)
    old = change_order_status(
        order, "cancelled", role="system",
        metadata={"reason": "PayPal capture denied", "paypal_capture_id": _text(resource.get("id"))},
    )
    return EventOutcome(order, old, "cancelled")


def _capture_refunded(resource: dict) -> EventOutcome:
    capture_id = _text(_related_ids(resource).get("capture_id"))
    order = Order.query.filter_by(paypal_capture_id=capture_id).first() if capture_id else None
    if order is None:
        return EventOutcome(None)

    refund_id = _text(resource.get("id"))
    refund = Refund.query.filter_by(order_id=order.id, paypal_refund_id=refund_id).first() if refund_id else None
    if refund is None:
        amount = value_to_cents(_mapping(resource.get("amount")).get("value"))
        refund = Refund(
            amount_cents=order.total_amount_cents if amount is None else amount,
            currency=order.currency,
            reason=_text(resource.get("note_to_payer")) or "Refunded at PayPal",
            paypal_refund_id=refund_id,
        )
        order.refunds.append(refund)
    refund.status = "completed"

    refunded = sum(r.amount_cents for r in order.refunds if r.status in ("completed", "pending"))
    if order.status not in REFUNDABLE_STATUSES or refunded < order.total_amount_cents:
        return EventOutcome(order)
    old = change_order_status(
        order, "refunded", role="system",
        metadata={"reason": "PayPal refund completed", "paypal_refund_id": refund_id},
        check_transition=False,
    )
    return EventOutcome(order, old, "refunded")


def _order_approved(resource: dict) -> EventOutcome:
    # buyer approved in the PayPal window; money moves on capture
    return EventOutcome(_order_by_paypal_id(resource.get("id")))


EVENT_HANDLERS = {
    "PAYMENT.CAPTURE.COMPLETED": _capture_completed,
    "PAYMENT.CAPTURE.DENIED": _capture_denied,
    "PAYMENT.CAPTURE.REFUNDED": _capture_refunded,
    "CHECKOUT.ORDER.APPROVED": _order_approved,
    "CHECKOUT.ORDER.COMPLETED": _order_completed,
}


def apply_event(event: dict) -> EventOutcome | None:
    """None for event types this shop does not handle."""
    event_type = _text(event.get("event_type"))
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        log.info("Unhandled PayPal webhook event: %s", event_type)
        return None
    outcome = handler(_mapping(event.get("resource")))
    if outcome.order is None:
        log.warning("PayPal %s event %s matched no local order", event_type, event.get("id"))
    return outcome
