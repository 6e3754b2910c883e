from flask import Blueprint, jsonify, request
from sqlalchemy.orm import selectinload

from marketplace.extensions import db
from marketplace.models import Category, Product
from marketplace.api.utils.product_utils import (
    get_all_product_images,
    get_product_image_url,
    get_product_price,
    get_product_rating,
    normalize_product,
    validate_product_for_display,
)

api_products = Blueprint("api_products", __name__, url_prefix="/api/products")


def _safe_int(value, default):
    try:
        v = int(value)
        return v if v >= 0 else default
    except (TypeError, ValueError):
        return default


def _card(product: Product) -> dict:
    """Normalized product plus the fields the product card renders."""
    data = normalize_product(product.to_dict())
    data["display_image"] = get_product_image_url(data)
    data["display_price"] = get_product_price(data)
    data["all_images"] = get_all_product_images(data)
    data["rating"] = get_product_rating(data)
    data["category_id"] = product.category_id
    return data


@api_products.get("")
@api_products.get("/")
def list_products():
    page = max(1, _safe_int(request.args.get("page"), 1))
    per_page = max(1, min(_safe_int(request.args.get("perPage"), 24), 100))
    vendor_id = _safe_int(request.args.get("vendor"), None)
    category = (request.args.get("category") or "").strip()
    search = (request.args.get("search") or "").strip()

    q = Product.query.options(selectinload(Product.variants)).filter(Product.is_published.is_(True))
    if vendor_id is not None:
        q = q.filter(Product.vendor_id == vendor_id)
    if category:
        if category.isdigit():
            q = q.filter(Product.category_id == int(category))
        else:
            q = q.join(Category, Category.id == Product.category_id).filter(Category.slug == category)
    if search:
        q = q.filter(Product.title.ilike(f"%{search}%"))

    total = q.count()
    rows = q.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return jsonify({
        "ok": True,
        "products": [_card(p) for p in rows],
        "pagination": {"page": page, "perPage": per_page, "total": total},
    }), 200


@api_products.get("/<int:product_id>")
def get_product(product_id: int):
    product = db.session.get(Product, product_id)
    if product is None or not product.is_published:
        return jsonify({"ok": False, "error": "Product not found"}), 404

    data = _card(product)
    return jsonify({
        "ok": True,
        "product": data,
        "display": validate_product_for_display(data),
    }), 200
