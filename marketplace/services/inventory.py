# marketplace/services/inventory.py
"""
Stock bookkeeping. Quantities never go below zero; every change writes an
InventoryLog row with the change that was actually applied, so a cancelled
order gives back exactly what its sale took.
"""
from __future__ import annotations

import logging

from sqlalchemy import func

from marketplace.extensions import db
from marketplace.models import InventoryLog, Order, Product, ProductVariant

log = logging.getLogger(__name__)

TRANSACTION_TYPES = ("initial", "adjustment", "sale", "cancellation")


class InventoryError(ValueError):
    pass


def _log(holder, change: int, after: int, transaction_type: str, reason=None,
         reference_type=None, reference_id=None, created_by=None) -> InventoryLog:
    entry = InventoryLog(
        transaction_type=transaction_type,
        quantity_change=change,
        quantity_after=after,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by=created_by,
    )
    if isinstance(holder, ProductVariant):
        entry.variant_id = holder.id
        entry.product_id = holder.product_id
    else:
        entry.product_id = holder.id
    db.session.add(entry)
    return entry


def _apply_delta(holder, delta: int, transaction_type: str, **log_kwargs) -> int:
    current = int(holder.inventory_quantity or 0)
    new_qty = max(0, current + int(delta))
    applied = new_qty - current
    holder.inventory_quantity = new_qty
    _log(holder, applied, new_qty, transaction_type, **log_kwargs)
    if applied != delta:
        log.warning(
            "Inventory for %r clamped at zero: requested %s, applied %s", holder, delta, applied
        )
    return applied


def adjust_variant_quantity(variant: ProductVariant, delta: int, transaction_type: str = "adjustment",
                            reason: str | None = None, reference_type=None, reference_id=None,
                            created_by=None) -> int:
    """Add `delta` (may be negative) and return the change actually applied."""
    if transaction_type not in TRANSACTION_TYPES:
        raise InventoryError(f"Unknown inventory transaction type: {transaction_type}")
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InventoryError("Adjustment must be a whole number")
    return _apply_delta(
        variant,
        delta,
        transaction_type,
        reason=reason or "Inventory adjustment",
        reference_type=reference_type,
        reference_id=reference_id,
        created_by=created_by,
    )


def set_variant_quantity(variant: ProductVariant, quantity, reason: str | None = None,
                         created_by=None) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise InventoryError("Invalid quantity")
    delta = quantity - int(variant.inventory_quantity or 0)
    return _apply_delta(
        variant,
        delta,
        "adjustment",
        reason=reason or "Manual adjustment",
        created_by=created_by,
    )


def _stock_holder(item):
    """The variant when it tracks stock, else the product when it does."""
    variant = item.variant
    if variant is not None:
        return variant if variant.manage_inventory else None
    product = item.product
    if product is not None and product.inventory_quantity is not None:
        return product
    return None


def deduct_for_order(order: Order) -> list[dict]:
    taken = []
    for item in order.items:
        holder = _stock_holder(item)
        if holder is None:
            log.info("No tracked inventory for order %s item %s", order.id, item.id)
            continue
        applied = _apply_delta(
            holder,
            -int(item.quantity),
            "sale",
            reason=f"Order #{order.id}",
            reference_type="order",
            reference_id=order.id,
        )
        taken.append({"item_id": item.id, "taken_qty": -applied, "remaining": holder.inventory_quantity})
    return taken


def _sold_for_order(order_id: int, holder) -> int:
    """Net quantity still out of stock for this order (sales minus earlier restores)."""
    q = db.session.query(func.coalesce(func.sum(InventoryLog.quantity_change), 0)).filter(
        InventoryLog.reference_type == "order",
        InventoryLog.reference_id == order_id,
        InventoryLog.transaction_type.in_(("sale", "cancellation")),
    )
    if isinstance(holder, ProductVariant):
        q = q.filter(InventoryLog.variant_id == holder.id)
    else:
        q = q.filter(InventoryLog.variant_id.is_(None), InventoryLog.product_id == holder.id)
    return -int(q.scalar() or 0)


def restore_for_order(order: Order, reason: str | None = None) -> list[dict]:
    """Give back what `deduct_for_order` took for this order, once."""
    db.session.flush()
    restored = []
    seen = set()
    for item in order.items:
        holder = _stock_holder(item)
        if holder is None:
            continue
        key = (type(holder).__name__, holder.id)
        if key in seen:
            continue
        seen.add(key)

        outstanding = _sold_for_order(order.id, holder)
        if outstanding <= 0:
            continue
        _apply_delta(
            holder,
            outstanding,
            "cancellation",
            reason=f"Order cancelled: {reason or 'No reason provided'}",
            reference_type="order",
            reference_id=order.id,
        )
        restored.append({"item_id": item.id, "restored_qty": outstanding, "remaining": holder.inventory_quantity})
    return restored


def low_stock_variants(vendor_id: int, threshold: int = 5):
    return (
        ProductVariant.query.join(Product, Product.id == ProductVariant.product_id)
        .filter(
            Product.vendor_id == vendor_id,
            ProductVariant.manage_inventory.is_(True),
            ProductVariant.inventory_quantity <= threshold,
        )
        .order_by(ProductVariant.inventory_quantity.asc())
        .all()
    )
