# marketplace/api/utils/email.py
from flask import current_app
from flask_mail import Message

from marketplace.extensions import mail
from marketplace.api.utils.product_utils import format_product_price


def send_email(subject, recipients, body, sender=None):
    """Send a plain UTF-8 text e-mail through Flask-Mail."""
    if isinstance(recipients, str):
        recipients = [recipients]

    msg = Message(
        subject=subject or "",
        recipients=list(recipients or []),
        body=body or "",
        sender=sender,
    )
    msg.charset = "utf-8"
    mail.send(msg)
    return msg


STATUS_MESSAGES = {
    "paid": "We received your payment.",
    "confirmed": "The seller confirmed your order.",
    "processing": "Your order is being prepared.",
    "packed": "Your order is packed and ready to ship.",
    "shipped": "Your order is on its way.",
    "delivered": "Your order was delivered.",
    "cancelled": "Your order was cancelled.",
    "refunded": "Your order was refunded.",
    "disputed": "A dispute was opened for your order.",
}


def notify_order_status(order, old_status, new_status) -> list[str]:
    """Mail the buyer (and ORDER_NOTIFY_EMAIL, when set) about a status change."""
    recipients = []
    if order.user is not None and order.user.email:
        recipients.append(order.user.email)
    owner = current_app.config.get("ORDER_NOTIFY_EMAIL")
    if owner:
        recipients.append(owner)
    if not recipients:
        return []

    lines = [
        f"Order #{order.id}: {old_status or 'new'} -> {new_status}",
        STATUS_MESSAGES.get(new_status, ""),
        "",
        f"Total: {format_product_price(order.total_amount_cents, order.currency)}",
    ]
    if new_status == "shipped" and order.tracking_number:
        lines.append(f"Tracking: {order.tracking_number} ({order.shipping_carrier or 'carrier n/a'})")
    if new_status == "cancelled" and order.cancellation_reason:
        lines.append(f"Reason: {order.cancellation_reason}")
    lines += ["", "SKN Bridge Trade"]

    send_email(
        subject=f"Order #{order.id} is now {new_status}",
        recipients=recipients,
        body="\n".join(lines),
    )
    return recipients
