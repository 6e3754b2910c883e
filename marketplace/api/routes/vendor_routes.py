# marketplace/api/routes/vendor_routes.py
from flask import Blueprint, g, jsonify, request
from sqlalchemy.orm import selectinload

from marketplace.api.utils.auth import owns_vendor, require_profile
from marketplace.extensions import db
from marketplace.models import Order, OrderItem, Vendor

vendor_bp = Blueprint("vendor_bp", __name__, url_prefix="/api/vendors")


def _line(item: OrderItem, order: Order) -> dict:
    return {
        "id": item.id,
        "orderId": order.id,
        "itemId": item.id,
        "productId": item.product_id,
        "productTitle": item.product.title if item.product else None,
        "variantId": item.variant_id,
        "quantity": item.quantity,
        "unitPrice": item.price_at_purchase_cents,
        "totalPrice": item.subtotal_cents,
        "currency": order.currency,
        "status": order.status,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "userEmail": order.user.email if order.user else None,
        "userId": order.user_id,
    }


@vendor_bp.get("/<int:vendor_id>/orders")
@require_profile
def vendor_orders(vendor_id: int):
    """Sold lines for one vendor, newest order first."""
    vendor = db.session.get(Vendor, vendor_id)
    if vendor is None:
        return jsonify({"ok": False, "error": "Vendor not found"}), 404
    if not (g.profile.is_admin or owns_vendor(vendor, g.profile)):
        return jsonify({"ok": False, "error": "Unauthorized - not vendor owner"}), 403

    q = Order.query.options(selectinload(Order.items)).filter(Order.vendor_id == vendor_id)
    status = (request.args.get("status") or "").strip()
    if status:
        q = q.filter(Order.status == status)
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()

    lines = [_line(item, order) for order in orders for item in order.items]
    return jsonify({"ok": True, "orders": lines, "total": len(lines)}), 200
