from flask import Blueprint, current_app, g, jsonify, request

from marketplace.api.utils.auth import can_view_order, owns_vendor, require_profile
from marketplace.extensions import db
from marketplace.models import Order, OrderItem, ProductVariant, Refund
from marketplace.services.cart import unit_price_cents
from marketplace.services.order_status import (
    CUSTOMER_CANCELLABLE,
    REFUNDABLE_STATUSES,
    StatusTransitionError,
    change_order_status,
    send_status_notification,
    validate_order_status,
)
from marketplace.services.paypal import PayPalClient, PayPalError

order_bp = Blueprint("order_bp", __name__, url_prefix="/api/orders")


def _safe_int(value, default):
    """Non-negative int or the default."""
    try:
        v = int(value)
        return v if v >= 0 else default
    except (TypeError, ValueError):
        return default


def _order_json(order: Order) -> dict:
    data = order.to_dict()
    data["history"] = [h.to_dict() for h in order.history]
    data["refunds"] = [r.to_dict() for r in order.refunds]
    return data


@order_bp.post("")
@require_profile
def create_order():
    try:
        data = request.get_json(silent=True) or {}
        paypal_order_id = str(data.get("paypalOrderId") or "").strip()
        shipping_address = data.get("shippingAddress")
        items_in = data.get("items") or []

        if not paypal_order_id or not shipping_address or not isinstance(items_in, list) or not items_in:
            return jsonify({"ok": False, "error": "Missing required fields"}), 400

        total_cents = 0
        lines = []
        for it in items_in:
            if not isinstance(it, dict):
                return jsonify({"ok": False, "error": "Invalid order item"}), 400
            qty = it.get("quantity")
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                return jsonify({"ok": False, "error": "Item quantity must be a positive integer"}), 400

            variant = db.session.get(ProductVariant, _safe_int(it.get("variantId"), -1))
            if variant is None:
                return jsonify({"ok": False, "error": f"Variant {it.get('variantId')} not found"}), 404

            price = it.get("priceAtPurchase")
            if not price:
                price = unit_price_cents({
                    "variant": variant.to_dict(),
                    "product": {"base_price": variant.product.base_price},
                })
            elif isinstance(price, bool) or not isinstance(price, int) or price <= 0:
                return jsonify({"ok": False, "error": "priceAtPurchase must be a positive integer (cents)"}), 400
            subtotal = price * qty
            total_cents += subtotal
            lines.append((variant, qty, price, subtotal))

        vendor_id = lines[0][0].product.vendor_id
        currency = lines[0][0].product.currency or current_app.config.get("PAYPAL_CURRENCY", "USD")

        order = Order(
            user_id=g.profile.id,
            vendor_id=vendor_id,
            status="pending",
            total_amount_cents=total_cents,
            currency=currency,
            shipping_address=shipping_address,
            payment_method="paypal",
            payment_id=paypal_order_id,
        )
        db.session.add(order)
        db.session.flush()

        for variant, qty, price, subtotal in lines:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=variant.product_id,
                variant_id=variant.id,
                quantity=qty,
                price_at_purchase_cents=price,
                subtotal_cents=subtotal,
            ))

        db.session.commit()
        current_app.logger.info("Order #%s created for PayPal order %s (%sc)", order.id, paypal_order_id, total_cents)
        return jsonify({"ok": True, "order": order.to_dict()}), 201

    except (TypeError, ValueError) as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": f"Invalid order data: {e}"}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("create_order failed")
        return jsonify({"ok": False, "error": str(e)}), 500


@order_bp.get("/my-orders")
@require_profile
def my_orders():
    status = (request.args.get("status") or "").strip()
    page = max(1, _safe_int(request.args.get("page"), 1))
    limit = max(1, min(_safe_int(request.args.get("limit"), 10), 100))

    q = Order.query.filter_by(user_id=g.profile.id)
    if status:
        q = q.filter(Order.status == status)
    total = q.count()
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return jsonify({
        "ok": True,
        "orders": [o.to_dict() for o in rows],
        "pagination": {"page": page, "limit": limit, "total": total},
    }), 200


@order_bp.get("/<int:order_id>")
@require_profile
def get_order(order_id: int):
    order = db.session.get(Order, order_id)
    if order is None:
        return jsonify({"ok": False, "error": "Order not found"}), 404
    if not can_view_order(order, g.profile):
        return jsonify({"ok": False, "error": "Unauthorized"}), 403
    return jsonify({"ok": True, "order": _order_json(order)}), 200


@order_bp.patch("/<int:order_id>/status")
@require_profile
def update_status(order_id: int):
    try:
        order = db.session.get(Order, order_id)
        if order is None:
            return jsonify({"ok": False, "error": "Order not found"}), 404

        profile = g.profile
        if not (profile.is_admin or owns_vendor(order.vendor, profile)):
            return jsonify({"ok": False, "error": "Unauthorized"}), 403

        data = request.get_json(silent=True) or {}
        new_status = str(data.get("status") or "").strip()
        if not validate_order_status(new_status):
            return jsonify({"ok": False, "error": "Invalid status"}), 400

        metadata = {
            k: data[k] for k in ("reason", "tracking_number", "carrier", "notes") if data.get(k)
        }
        role = "admin" if profile.is_admin else "vendor"
        try:
            old_status = change_order_status(order, new_status, changed_by=profile.id, role=role, metadata=metadata)
        except StatusTransitionError as e:
            db.session.rollback()
            return jsonify({"ok": False, "error": str(e)}), 400

        db.session.commit()
        send_status_notification(order, old_status, new_status)
        return jsonify({"ok": True, "order": order.to_dict()}), 200

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("update_status failed")
        return jsonify({"ok": False, "error": str(e)}), 500


@order_bp.post("/<int:order_id>/cancel")
@require_profile
def cancel_order(order_id: int):
    try:
        order = db.session.get(Order, order_id)
        if order is None:
            return jsonify({"ok": False, "error": "Order not found"}), 404
        if order.user_id != g.profile.id:
            return jsonify({"ok": False, "error": "Unauthorized"}), 403
        if order.status not in CUSTOMER_CANCELLABLE:
            return jsonify({"ok": False, "error": "Cannot cancel this order"}), 400

        data = request.get_json(silent=True) or {}
        reason = str(data.get("reason") or "").strip() or "Cancelled by customer"

        old_status = change_order_status(
            order, "cancelled", changed_by=g.profile.id, role="customer", metadata={"reason": reason}
        )
        db.session.commit()
        send_status_notification(order, old_status, "cancelled")
        return jsonify({"ok": True, "order": order.to_dict()}), 200

    except StatusTransitionError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("cancel_order failed")
        return jsonify({"ok": False, "error": str(e)}), 500


@order_bp.post("/<int:order_id>/refund")
@require_profile
def refund_order(order_id: int):
    if not g.profile.is_admin:
        return jsonify({"ok": False, "error": "Only admins can refund orders"}), 403

    order = db.session.get(Order, order_id)
    if order is None:
        return jsonify({"ok": False, "error": "Order not found"}), 404
    if not order.paypal_capture_id:
        return jsonify({"ok": False, "error": "No PayPal capture ID found for this order"}), 400
    if order.status not in REFUNDABLE_STATUSES:
        return jsonify({"ok": False, "error": f"Orders in status {order.status} cannot be refunded"}), 400

    data = request.get_json(silent=True) or {}
    reason = str(data.get("reason") or "").strip() or "Refund processed through PayPal"
    # pending refunds are already committed at PayPal
    already = sum(r.amount_cents for r in order.refunds if r.status in ("completed", "pending"))
    remaining = order.total_amount_cents - already
    if remaining <= 0:
        return jsonify({"ok": False, "error": "Nothing left to refund on this order"}), 400

    amount = data.get("amount_cents")
    if amount is not None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            return jsonify({"ok": False, "error": "amount_cents must be a positive integer"}), 400
        if amount > remaining:
            return jsonify({"ok": False, "error": f"Refund exceeds the remaining {remaining} cents"}), 400
    full = amount is None or amount >= remaining
    refund_cents = remaining if amount is None else amount

    try:
        # a full refund sends no amount, which PayPal treats as "everything left"
        result = PayPalClient.from_app().refund_capture(
            order.paypal_capture_id,
            None if full else refund_cents,
            order.currency,
        )
    except PayPalError as e:
        current_app.logger.error("Refund for order %s failed: %s", order.id, e.message)
        db.session.add(Refund(
            order_id=order.id,
            amount_cents=refund_cents,
            currency=order.currency,
            reason=reason,
            status="failed",
            created_by=g.profile.id,
        ))
        db.session.commit()
        return jsonify({"ok": False, "error": e.message}), e.status or 500

    try:
        refund = Refund(
            order_id=order.id,
            amount_cents=refund_cents,
            currency=order.currency,
            reason=reason,
            status="completed" if str(result.get("status", "")).upper() == "COMPLETED" else "pending",
            paypal_refund_id=result.get("id"),
            created_by=g.profile.id,
        )
        db.session.add(refund)

        old_status = None
        if full:
            old_status = change_order_status(
                order,
                "refunded",
                changed_by=g.profile.id,
                role="admin",
                metadata={"reason": reason, "paypal_refund_id": result.get("id"), "refund_amount_cents": refund_cents},
                check_transition=False,
            )
        db.session.commit()
        if old_status is not None:
            send_status_notification(order, old_status, "refunded")

        return jsonify({
            "ok": True,
            "refund": refund.to_dict(),
            "order": order.to_dict(with_items=False),
            "paypal_status": result.get("status"),
        }), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("refund bookkeeping failed for order %s", order.id)
        return jsonify({"ok": False, "error": str(e)}), 500
