# marketplace/services/cart.py
"""
Cart arithmetic shared by the PayPal checkout and the order endpoints.

A cart item is the storefront shape::

    {"product": {"title": ..., "base_price": ...},
     "variant": {"id": ..., "price_in_cents": ..., "sale_price_in_cents": ...},
     "quantity": 2}

All amounts are in cents until `cents_to_value` renders them for PayPal.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from marketplace.api.utils.product_utils import format_product_price

log = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CartValidationError(ValueError):
    """Cart payload rejected before any payment call."""


def _to_decimal(val) -> Decimal | None:
    try:
        d = Decimal(str(val))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return d if d.is_finite() else None


def _is_number(val) -> bool:
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        return False
    return math.isfinite(val)


def _first_not_none(*values):
    for v in values:
        if v is not None:
            return v
    return None


def validate_cart_items(items) -> list:
    if not isinstance(items, list) or not items:
        raise CartValidationError("cartItems required and must be a non-empty array")
    for item in items:
        if not isinstance(item, Mapping):
            raise CartValidationError("Each cart item must have a variant and numeric quantity")
        if not isinstance(item.get("variant"), Mapping) or not _is_number(item.get("quantity")):
            raise CartValidationError("Each cart item must have a variant and numeric quantity")
    return items


def item_product(item: Mapping) -> Mapping:
    """The item's product mapping; anything else (a bare title, None) reads as empty."""
    product = item.get("product")
    return product if isinstance(product, Mapping) else {}


def unit_price_cents(item: Mapping) -> Decimal:
    """Sale price, then list price, then the product's base price; missing means 0."""
    variant = item.get("variant") or {}
    raw = _first_not_none(
        variant.get("sale_price_in_cents"),
        variant.get("price_in_cents"),
        item_product(item).get("base_price"),
    )
    if raw is None:
        return Decimal(0)
    price = _to_decimal(raw)
    if price is None:
        log.warning("Unparseable price %r for variant %s", raw, variant.get("id"))
        return Decimal(0)
    return price


def _quantity(item: Mapping) -> Decimal:
    return _to_decimal(item.get("quantity")) or Decimal(0)


def line_total_cents(item: Mapping) -> Decimal:
    return unit_price_cents(item) * _quantity(item)


def cart_total_cents(items) -> Decimal:
    return sum((line_total_cents(it) for it in items), Decimal(0))


def cents_to_value(cents) -> str:
    """1999 -> '19.99' (PayPal amount string)."""
    amount = (Decimal(str(cents)) / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"{amount:.2f}"


def value_to_cents(value) -> int | None:
    """'19.99' -> 1999; None when the amount cannot be read."""
    amount = _to_decimal(value)
    if amount is None:
        return None
    return int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_quantity(quantity) -> str:
    if isinstance(quantity, float) and quantity.is_integer():
        return str(int(quantity))
    return str(quantity)


def cart_summary(items, currency: str = "USD") -> dict:
    total = cart_total_cents(items)
    return {
        "items": len(items),
        "totalCents": total,
        "totalFormatted": format_product_price(total, currency),
        "details": [
            {
                "product": item_product(it).get("title"),
                "variant": (it.get("variant") or {}).get("title"),
                "quantity": it.get("quantity"),
                "unitPrice": format_product_price(unit_price_cents(it), currency),
                "subtotal": format_product_price(line_total_cents(it), currency),
            }
            for it in items
        ],
    }
