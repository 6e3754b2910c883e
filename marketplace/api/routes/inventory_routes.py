from flask import Blueprint, current_app, g, jsonify, request

from marketplace.api.utils.auth import require_profile
from marketplace.extensions import db
from marketplace.models import InventoryLog, Product, ProductVariant, Vendor
from marketplace.services.inventory import (
    InventoryError,
    adjust_variant_quantity,
    low_stock_variants,
    set_variant_quantity,
)

inventory_bp = Blueprint("inventory_bp", __name__, url_prefix="/api/inventory")


def _safe_int(value, default):
    try:
        v = int(value)
        return v if v >= 0 else default
    except (TypeError, ValueError):
        return default


def _may_manage_vendor(vendor_id) -> bool:
    profile = g.profile
    if profile.is_admin:
        return True
    vendor = db.session.get(Vendor, vendor_id) if vendor_id is not None else None
    return vendor is not None and vendor.owner_id == profile.id


def _variant_or_error(variant_id: int):
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        return None, (jsonify({"ok": False, "error": "Variant not found"}), 404)
    if not _may_manage_vendor(variant.product.vendor_id):
        return None, (jsonify({"ok": False, "error": "Unauthorized"}), 403)
    return variant, None


def _variant_json(variant: ProductVariant) -> dict:
    data = variant.to_dict()
    data["product_title"] = variant.product.title
    return data


@inventory_bp.get("/vendor/<int:vendor_id>")
@require_profile
def vendor_inventory(vendor_id: int):
    if not _may_manage_vendor(vendor_id):
        return jsonify({"ok": False, "error": "Unauthorized"}), 403

    page = max(1, _safe_int(request.args.get("page"), 1))
    per_page = max(1, min(_safe_int(request.args.get("perPage"), 50), 200))
    search = (request.args.get("search") or "").strip()
    threshold = _safe_int(request.args.get("threshold"), current_app.config.get("LOW_STOCK_THRESHOLD", 5))
    low_only = (request.args.get("lowStock") or "").lower() in ("1", "true", "yes")

    q = ProductVariant.query.join(Product, Product.id == ProductVariant.product_id).filter(
        Product.vendor_id == vendor_id
    )
    if search:
        q = q.filter(db.or_(Product.title.ilike(f"%{search}%"), ProductVariant.title.ilike(f"%{search}%"),
                            ProductVariant.sku.ilike(f"%{search}%")))
    if low_only:
        q = q.filter(ProductVariant.manage_inventory.is_(True), ProductVariant.inventory_quantity <= threshold)

    total = q.count()
    rows = q.order_by(ProductVariant.inventory_quantity.asc(), ProductVariant.id.asc()) \
        .offset((page - 1) * per_page).limit(per_page).all()

    alerts = [
        {"variant_id": v.id, "title": v.title, "inventory_quantity": v.inventory_quantity}
        for v in low_stock_variants(vendor_id, threshold)
    ]
    return jsonify({
        "ok": True,
        "variants": [_variant_json(v) for v in rows],
        "alerts": alerts,
        "pagination": {"page": page, "perPage": per_page, "total": total},
    }), 200


@inventory_bp.get("/variant/<int:variant_id>")
@require_profile
def variant_inventory(variant_id: int):
    variant, err = _variant_or_error(variant_id)
    if err:
        return err
    return jsonify({"ok": True, "variant": _variant_json(variant)}), 200


@inventory_bp.patch("/variant/<int:variant_id>/quantity")
@require_profile
def update_variant_quantity(variant_id: int):
    variant, err = _variant_or_error(variant_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        change = set_variant_quantity(variant, data.get("quantity"), data.get("reason"), created_by=g.profile.id)
        db.session.commit()
    except InventoryError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "variant": _variant_json(variant), "quantity_change": change}), 200


@inventory_bp.patch("/variant/<int:variant_id>/adjust")
@require_profile
def adjust_quantity(variant_id: int):
    variant, err = _variant_or_error(variant_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        applied = adjust_variant_quantity(
            variant, data.get("adjustment"), "adjustment", data.get("reason"), created_by=g.profile.id
        )
        db.session.commit()
    except InventoryError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "variant": _variant_json(variant), "applied": applied}), 200


@inventory_bp.patch("/bulk-update")
@require_profile
def bulk_update():
    data = request.get_json(silent=True) or {}
    updates = data.get("updates")
    if not isinstance(updates, list) or not updates:
        return jsonify({"ok": False, "error": "updates must be a non-empty array"}), 400

    results = []
    try:
        for upd in updates:
            if not isinstance(upd, dict):
                raise InventoryError("Each update must be an object")
            variant, err = _variant_or_error(_safe_int(upd.get("variantId"), -1))
            if err:
                db.session.rollback()
                return err
            change = set_variant_quantity(variant, upd.get("quantity"), upd.get("reason"), created_by=g.profile.id)
            results.append({"variantId": variant.id, "quantity": variant.inventory_quantity, "quantity_change": change})
        db.session.commit()
    except InventoryError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(e)}), 400

    return jsonify({"ok": True, "updated": results}), 200


@inventory_bp.get("/transactions/<int:variant_id>")
@require_profile
def variant_transactions(variant_id: int):
    variant, err = _variant_or_error(variant_id)
    if err:
        return err

    page = max(1, _safe_int(request.args.get("page"), 1))
    per_page = max(1, min(_safe_int(request.args.get("perPage"), 50), 200))
    tx_type = (request.args.get("type") or "").strip()

    q = InventoryLog.query.filter_by(variant_id=variant.id)
    if tx_type:
        q = q.filter(InventoryLog.transaction_type == tx_type)
    total = q.count()
    rows = q.order_by(InventoryLog.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return jsonify({
        "ok": True,
        "transactions": [r.to_dict() for r in rows],
        "pagination": {"page": page, "perPage": per_page, "total": total},
    }), 200
