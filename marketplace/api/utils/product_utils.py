# marketplace/api/utils/product_utils.py
"""
Safe getters and formatters over product payloads (dicts as returned by
`Product.to_dict()` or by the storefront). None of these raise on bad input.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

log = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = (
    "data:image/svg+xml;utf8,<svg xmlns='http://www.w3.org/2000/svg' width='400' height='300'>"
    "<rect width='100%' height='100%' fill='%23eef2ff'/>"
    "<text x='50%' y='50%' dominant-baseline='middle' text-anchor='middle' fill='%23728bd6' "
    "font-family='Arial,Helvetica,sans-serif' font-size='20'>No Image</text></svg>"
)

# en-US rendering of common ISO 4217 codes
CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "XCD": "EC$",
    "INR": "₹",
    "CNY": "CN¥",
    "MXN": "MX$",
    "BRL": "R$",
    "KRW": "₩",
    "NZD": "NZ$",
    "HKD": "HK$",
}
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK", "HUF", "TWD"}


def _list(val) -> list:
    return list(val) if isinstance(val, (list, tuple)) else []


def _number(val):
    """JS-like Number(): None/NaN/garbage -> None."""
    if val is None or isinstance(val, bool):
        return None
    try:
        n = float(val)
    except (TypeError, ValueError):
        return None
    if math.isnan(n):
        return None
    return int(n) if n.is_integer() else n


def _text(val) -> str:
    return str(val or "").strip()


def normalize_product(product):
    if not isinstance(product, Mapping):
        log.warning("Invalid product object: %r", product)
        return None

    return {
        "id": product.get("id") or None,
        "title": _text(product.get("title")) or "Untitled",
        "slug": _text(product.get("slug")) or "unknown",
        "description": _text(product.get("description")),
        "ribbon_text": _text(product.get("ribbon_text")),
        "base_price": _number(product.get("base_price")) or 0,
        "currency": str(product.get("currency") or "USD").upper(),
        "image_url": _text(product.get("image_url")) or None,
        "gallery_images": _list(product.get("gallery_images")),
        "is_published": bool(product.get("is_published")),
        "vendor_id": product.get("vendor_id") or None,
        "product_variants": _list(product.get("product_variants")),
        "product_ratings": _list(product.get("product_ratings")),
        "images": _list(product.get("images")),
    }


def _first_variant(product: Mapping):
    variants = product.get("product_variants")
    if isinstance(variants, (list, tuple)) and variants and isinstance(variants[0], Mapping):
        return variants[0]
    return None


def get_product_image_url(product) -> str:
    """main image -> first variant image -> gallery -> legacy images -> placeholder"""
    if not isinstance(product, Mapping):
        return PLACEHOLDER_IMAGE

    if product.get("image_url"):
        return product["image_url"]

    variant = _first_variant(product)
    if variant is not None:
        if variant.get("image_url"):
            return variant["image_url"]
        variant_images = _list(variant.get("images"))
        if variant_images:
            return variant_images[0]

    gallery = _list(product.get("gallery_images"))
    if gallery:
        return gallery[0]

    legacy = _list(product.get("images"))
    if legacy:
        return legacy[0]

    return PLACEHOLDER_IMAGE


def format_product_price(amount_in_cents, currency: str = "USD"):
    """
    Format a price stored in cents the way en-US Intl.NumberFormat renders
    currency: `1999 -> "$19.99"`, `-500 -> "-$5.00"`, unknown codes as
    `"ABC 19.99"`. Returns None for None/NaN/non-numeric input.
    """
    if amount_in_cents is None or isinstance(amount_in_cents, bool):
        return None
    try:
        cents = Decimal(str(amount_in_cents))
    except (InvalidOperation, ValueError, TypeError):
        log.warning("Invalid price: %r", amount_in_cents)
        return None
    if not cents.is_finite():
        log.warning("Invalid price: %r", amount_in_cents)
        return None

    code = str(currency or "USD").strip().upper()
    amount = cents / 100
    if len(code) != 3 or not code.isalpha():
        # not a currency code at all
        return f"{currency} {amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}"

    places = Decimal("1") if code in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    amount = amount.quantize(places, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    digits = f"{abs(amount):,.{0 if places == 1 else 2}f}"

    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{digits}"
    return f"{sign}{code} {digits}"


def get_product_price(product) -> dict:
    """Prefers the first variant's price, falls back to the base price."""
    if not isinstance(product, Mapping):
        return {"amount": 0, "formatted": "$0.00", "source": "default"}

    currency = product.get("currency") or "USD"
    variant = _first_variant(product)
    if variant is not None:
        raw = variant.get("price_in_cents")
        if raw is None:
            raw = variant.get("price")
        if raw is None:
            raw = variant.get("price_cents")
        amount = _number(raw)
        if amount is not None:
            return {
                "amount": amount,
                "formatted": format_product_price(amount, currency) or "$0.00",
                "source": "variant",
            }

    amount = _number(product.get("base_price"))
    if amount is not None:
        return {
            "amount": amount,
            "formatted": format_product_price(amount, currency) or "$0.00",
            "source": "base",
        }

    return {"amount": 0, "formatted": "$0.00", "source": "default"}


def get_product_rating(product):
    if not isinstance(product, Mapping):
        return None
    ratings = _list(product.get("product_ratings"))
    return ratings[0] if ratings else None


def validate_product_for_display(product) -> dict:
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(product, Mapping):
        errors.append("Product is null or undefined")
        return {"valid": False, "errors": errors, "warnings": warnings, "isDisplayable": False}

    pid = product.get("id")
    if pid in (None, "", "null"):
        errors.append("Missing product ID" if pid in (None, "") else "Product ID is invalid")

    if not product.get("title") or product.get("title") == "Untitled":
        warnings.append("Product has no title")

    if product.get("base_price") in (0, None):
        warnings.append("Product has no price")

    if not product.get("image_url"):
        warnings.append("Product has no primary image (will use placeholder)")

    return {
        "valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "isDisplayable": not errors,
    }


def get_all_product_images(product) -> list[str]:
    if not isinstance(product, Mapping):
        return []

    images: list = []
    if product.get("image_url"):
        images.append(product["image_url"])
    images.extend(_list(product.get("gallery_images")))
    images.extend(_list(product.get("images")))
    for variant in _list(product.get("product_variants")):
        if not isinstance(variant, Mapping):
            continue
        if variant.get("image_url"):
            images.append(variant["image_url"])
        images.extend(_list(variant.get("images")))

    seen = set()
    unique = []
    for img in images:
        if isinstance(img, str) and img and img not in seen:
            seen.add(img)
            unique.append(img)
    return unique
