# marketplace/api/routes/paypal_routes.py
import json
from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request

from marketplace.api.utils.auth import can_view_order, require_profile
from marketplace.extensions import db
from marketplace.models import Order
from marketplace.services.cart import (
    CartValidationError,
    cart_summary,
    cart_total_cents,
    cents_to_value,
    validate_cart_items,
    value_to_cents,
)
from marketplace.services.order_status import change_order_status, send_status_notification
from marketplace.services.paypal import PayPalClient, PayPalError, build_order_payload, extract_capture_id
from marketplace.services.paypal_webhooks import apply_event, verify_signature

paypal_bp = Blueprint("paypal_bp", __name__, url_prefix="/api/paypal")

# order statuses that mean the buyer's money has arrived
PAYMENT_RECEIVED_STATUSES = ("paid", "confirmed", "processing", "packed", "shipped", "delivered")

MAX_BATCH_VERIFY = 50


# --- Helpers ---------------------------------------------------------------

def _expose_details() -> bool:
    cfg = current_app.config
    return cfg.get("APP_ENV") != "production" or bool(cfg.get("DEBUG_PAYPAL"))


def _error(message, status: int, details=None):
    payload = {"error": message}
    if details is not None and _expose_details():
        payload["details"] = details
    return jsonify(payload), status


def _upstream_error(err: PayPalError):
    """`message` from PayPal's error body, else the whole body."""
    body = err.details
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return body if body is not None else err.message


def _client() -> PayPalClient:
    return PayPalClient.from_app()


def _viewable_order(order_id: int):
    """Order the requester may see, or an error response."""
    order = db.session.get(Order, order_id)
    if order is None:
        return None, (jsonify({"error": "Order not found"}), 404)
    if not can_view_order(order, g.profile):
        return None, (jsonify({"error": "Unauthorized"}), 403)
    return order, None


def _lookup_error(err: PayPalError, fallback: str):
    if err.status is None:
        return _error(err.message, 500, err.details)
    return _error(fallback, err.status, err.details)


def _now() -> str:
    return datetime.utcnow().isoformat()


# --- Endpoints -------------------------------------------------------------

@paypal_bp.post("/create-order")
def create_order():
    try:
        current_app.logger.info("Received create-order request")
        data = request.get_json(silent=True) or {}
        cart_items = data.get("cartItems") if isinstance(data, dict) else None

        try:
            validate_cart_items(cart_items)
        except CartValidationError as e:
            current_app.logger.error("Invalid cart items: %s", json.dumps(cart_items, default=str)[:2000])
            return jsonify({"error": str(e)}), 400

        if cart_total_cents(cart_items) <= 0:
            return jsonify({"error": "Invalid order total amount"}), 400

        cfg = current_app.config
        summary = cart_summary(cart_items, cfg.get("PAYPAL_CURRENCY", "USD"))
        current_app.logger.info("Cart: %s item(s), total %s", summary["items"], summary["totalFormatted"])
        payload = build_order_payload(
            cart_items,
            currency=cfg.get("PAYPAL_CURRENCY", "USD"),
            brand_name=cfg.get("PAYPAL_BRAND_NAME"),
            return_url=cfg.get("PAYPAL_RETURN_URL"),
            cancel_url=cfg.get("PAYPAL_CANCEL_URL"),
        )

        try:
            order = _client().create_order(payload)
        except PayPalError as e:
            if e.status is None:
                # token or transport failure
                return _error(e.message, 500, e.details)
            status = 502 if e.status >= 500 else 400
            return jsonify({"error": _upstream_error(e)}), status

        return jsonify({"id": order.get("id"), "links": order.get("links")}), 200

    except Exception as e:
        current_app.logger.exception("Server create-order error")
        return _error(str(e) or "Server error", 500, getattr(e, "details", None))


@paypal_bp.post("/capture-order/<order_id>")
def capture_order(order_id: str):
    try:
        current_app.logger.info("Attempting to capture PayPal order: %s", order_id)
        try:
            captured = _client().capture_order(order_id)
        except PayPalError as e:
            if e.status is None:
                return _error(e.message, 500, e.details)
            return jsonify({"error": _upstream_error(e) or "Payment capture failed"}), e.status

        local = Order.query.filter_by(payment_id=order_id).first()
        if local is not None:
            local.paypal_capture_id = extract_capture_id(captured) or local.paypal_capture_id
            was_pending = local.status == "pending"
            if was_pending:
                change_order_status(
                    local, "paid", role="system",
                    metadata={"reason": "PayPal capture", "paypal_order_id": order_id},
                )
            db.session.commit()
            if was_pending:
                send_status_notification(local, "pending", "paid")

        return jsonify(captured), 200

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Server capture-order error")
        return _error(str(e) or "Server error", 500, getattr(e, "details", None))


@paypal_bp.get("/config")
def paypal_config():
    cfg = current_app.config
    client_id_present = bool(cfg.get("PAYPAL_CLIENT_ID"))
    secret_present = bool(cfg.get("PAYPAL_SECRET"))
    debug_mode = bool(cfg.get("DEBUG_PAYPAL"))

    out = {
        "clientIdPresent": client_id_present,
        "secretPresent": secret_present,
        "env": cfg.get("APP_ENV") or "not set",
        "paypalEnv": cfg.get("PAYPAL_ENV"),
        "debug": debug_mode,
        "ready": client_id_present and secret_present,
    }

    if debug_mode:
        out["errors"] = []
        if not client_id_present:
            out["errors"].append("Missing PAYPAL_CLIENT_ID")
        if not secret_present:
            out["errors"].append("Missing PAYPAL_SECRET")

    if cfg.get("APP_ENV") == "production" and not debug_mode:
        return jsonify({"ready": out["ready"]})

    return jsonify(out)


@paypal_bp.post("/webhook")
def webhook():
    cfg = current_app.config
    body = request.get_data()
    webhook_id = cfg.get("PAYPAL_WEBHOOK_ID")
    if cfg.get("APP_ENV") == "production" or webhook_id:
        if not verify_signature(webhook_id, request.headers, body):
            current_app.logger.error("Invalid PayPal webhook signature")
            return "INVALID_SIGNATURE", 400

    event = request.get_json(silent=True)
    if not isinstance(event, dict):
        return jsonify({"error": "Invalid webhook payload"}), 400
    current_app.logger.info("Received PayPal webhook: %s %s", event.get("event_type"), event.get("id"))

    try:
        outcome = apply_event(event)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("PayPal webhook %s failed", event.get("id"))
        return jsonify({"error": "Webhook processing failed"}), 500

    if outcome is not None and outcome.changed:
        send_status_notification(outcome.order, outcome.old_status, outcome.new_status)
    return "OK", 200


@paypal_bp.get("/verify-payment/<int:order_id>")
@require_profile
def verify_payment(order_id: int):
    order, err = _viewable_order(order_id)
    if err:
        return err

    out = {
        "order_id": order.id,
        "paypal_order_id": order.payment_id,
        "order_status": order.status,
    }
    if not order.paypal_capture_id:
        out.update(payment_verified=False, message="No PayPal capture ID available")
        return jsonify(out), 200

    out.update(
        paypal_capture_id=order.paypal_capture_id,
        payment_verified=order.status in PAYMENT_RECEIVED_STATUSES,
        verification_timestamp=_now(),
    )
    return jsonify(out), 200


@paypal_bp.get("/verify-order/<int:order_id>")
@require_profile
def verify_order(order_id: int):
    order, err = _viewable_order(order_id)
    if err:
        return err
    if not order.payment_id:
        return jsonify({"error": "No PayPal order ID associated with this order"}), 400

    try:
        remote = _client().get_order(order.payment_id)
    except PayPalError as e:
        current_app.logger.error("PayPal order verification failed for order %s: %s", order.id, e.details)
        return _lookup_error(e, "Failed to verify PayPal order")

    units = remote.get("purchase_units") or [{}]
    paypal_value = (units[0].get("amount") or {}).get("value")
    captures = (units[0].get("payments") or {}).get("captures") or [{}]
    amount_match = value_to_cents(paypal_value) == order.total_amount_cents
    paypal_status = remote.get("status")

    result = {
        "order_id": order.id,
        "paypal_order_id": order.payment_id,
        "paypal_capture_id": order.paypal_capture_id,
        "order_status": order.status,
        "paypal_order_status": paypal_status,
        "paypal_capture_status": captures[0].get("status"),
        "amount_match": amount_match,
        "paypal_amount": paypal_value,
        "database_amount": cents_to_value(order.total_amount_cents),
        "verification_timestamp": _now(),
        "is_valid": amount_match and paypal_status in ("COMPLETED", "APPROVED"),
    }
    current_app.logger.info("Verified PayPal order %s for order %s: valid=%s",
                            order.payment_id, order.id, result["is_valid"])
    return jsonify(result), 200


@paypal_bp.get("/verify-capture/<capture_id>")
@require_profile
def verify_capture(capture_id: str):
    if not g.profile.is_admin:
        return jsonify({"error": "Only admins can verify captures"}), 403
    try:
        capture = _client().get_capture(capture_id)
    except PayPalError as e:
        current_app.logger.error("PayPal capture verification failed for %s: %s", capture_id, e.details)
        return _lookup_error(e, "Failed to verify PayPal capture")

    order = Order.query.filter_by(paypal_capture_id=capture_id).first()
    return jsonify({
        "capture_id": capture_id,
        "capture_status": capture.get("status"),
        "amount": capture.get("amount"),
        "order_id": order.id if order else None,
        "order_status": order.status if order else None,
        "verification_timestamp": _now(),
        "is_valid": capture.get("status") == "COMPLETED",
    }), 200


@paypal_bp.get("/payment-status/<int:order_id>")
@require_profile
def payment_status(order_id: int):
    order, err = _viewable_order(order_id)
    if err:
        return err
    base = order.to_dict(with_items=False)
    history = sorted(order.history, key=lambda h: h.id, reverse=True)[:10]
    return jsonify({
        "order_id": order.id,
        "order_status": order.status,
        "paypal_order_id": order.payment_id,
        "paypal_capture_id": order.paypal_capture_id,
        "total_amount_cents": order.total_amount_cents,
        "payment_received": order.status in PAYMENT_RECEIVED_STATUSES,
        "created_at": base["created_at"],
        "updated_at": base["updated_at"],
        "refunds": [r.to_dict() for r in order.refunds],
        "status_history": [h.to_dict() for h in history],
    }), 200


@paypal_bp.post("/batch-verify")
@require_profile
def batch_verify():
    """Checks local payment state only; no PayPal calls."""
    if not g.profile.is_admin:
        return jsonify({"error": "Only admins can batch verify orders"}), 403
    data = request.get_json(silent=True) or {}
    order_ids = data.get("orderIds")
    if not isinstance(order_ids, list) or not order_ids:
        return jsonify({"error": "orderIds array is required"}), 400
    if len(order_ids) > MAX_BATCH_VERIFY:
        return jsonify({"error": f"Maximum {MAX_BATCH_VERIFY} orders can be verified at once"}), 400

    results = []
    for raw in order_ids:
        try:
            order = db.session.get(Order, int(raw))
        except (TypeError, ValueError):
            order = None
        if order is None:
            results.append({"order_id": raw, "error": "Order not found"})
            continue
        results.append({
            "order_id": order.id,
            "paypal_order_id": order.payment_id,
            "paypal_capture_id": order.paypal_capture_id,
            "order_status": order.status,
            "total_amount_cents": order.total_amount_cents,
            "is_valid": bool(order.payment_id and order.paypal_capture_id)
                        and order.status in PAYMENT_RECEIVED_STATUSES,
            "verified_at": _now(),
        })

    return jsonify({
        "total_orders": len(order_ids),
        "verified_orders": sum(1 for r in results if "error" not in r),
        "results": results,
    }), 200


@paypal_bp.get("/refund/<refund_id>")
@require_profile
def get_refund(refund_id: str):
    if not g.profile.is_admin:
        return jsonify({"error": "Only admins can look up refunds"}), 403
    try:
        refund = _client().get_refund(refund_id)
    except PayPalError as e:
        if e.status is None:
            return _error(e.message, 500, e.details)
        return jsonify({"error": _upstream_error(e)}), e.status
    return jsonify(refund), 200
