# Overview: Service-layer operations for stock levels; encapsulates business logic and database work.

"""
Stock Invariants (authoritative)

- Product.quantity is only written here (and by product create/import, which
  follow the same rule). Every write inserts an InventoryAudit row in the SAME
  DB transaction, with old_quantity equal to the quantity read under the row
  lock. If either write fails, both roll back.
- Quantities never go negative. Decreases that would go below zero are
  rejected with ValidationError before anything is written.
- After commit, a product at or below its reorder level gets a deduplicated
  low-stock notification. That step is best-effort: failures are logged and
  never undo the committed adjustment.
"""
from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from flask import current_app

from ..errors import AppError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAudit, Notification, Product
from ..validation import coerce_int, require_operation_type, require_reason
from . import notification_service
from .concurrency import atomic, lock_for_update


def _locked_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        raise NotFoundError("Product")
    return product


def _locked_products(product_ids) -> dict[int, Product]:
    """Lock several products in id order so concurrent callers cannot deadlock."""
    ids = sorted(set(product_ids))
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id.asc())
    ).all()
    found = {p.id: p for p in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"Product {missing[0]}")
    return found


def record_quantity_change(
    product: Product,
    new_quantity: int,
    *,
    user_id: int,
    reason: str,
    operation_type: str,
) -> InventoryAudit:
    """
    Set product.quantity and stage the matching audit row.

    Caller owns the transaction (and the row lock on product).
    """
    audit = InventoryAudit(
        product_id=product.id,
        user_id=user_id,
        old_quantity=product.quantity,
        new_quantity=new_quantity,
        reason=reason,
        operation_type=operation_type,
    )
    product.quantity = new_quantity
    db.session.add(audit)
    return audit


def notify_if_low_stock(product: Product) -> Notification | None:
    """Best-effort low-stock alert; never raises."""
    try:
        if not product.is_low_stock:
            return None
        return notification_service.create_low_stock_if_not_exists(product)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Low stock check failed for product %s", product.id)
        return None


def _stock_level(quantity: int, reorder_level: int) -> str:
    if quantity == 0:
        return "out_of_stock"
    if quantity <= reorder_level:
        return "low_stock"
    return "normal_stock"


def _change_type(old_quantity: int, new_quantity: int) -> str:
    if new_quantity > old_quantity:
        return "increase"
    if new_quantity < old_quantity:
        return "decrease"
    return "no_change"


def adjust_stock(
    *,
    product_id: int,
    new_quantity,
    user_id: int,
    reason,
    operation_type: str = "manual_adjustment",
) -> dict:
    """
    Set a product's quantity to new_quantity and record the audit row atomically.

    Raises:
        ValidationError: negative quantity, reason shorter than 3 chars, bad operation_type
        NotFoundError: product does not exist
    """
    new_quantity = coerce_int("quantity", new_quantity)
    if new_quantity < 0:
        raise ValidationError("Stock quantity cannot be negative")
    reason = require_reason(reason)
    require_operation_type(operation_type)

    with atomic():
        product = _locked_product(product_id)
        old_quantity = product.quantity
        record_quantity_change(
            product,
            new_quantity,
            user_id=user_id,
            reason=reason,
            operation_type=operation_type,
        )

    notification = notify_if_low_stock(product)

    return {
        "product": product.to_dict(),
        "adjustment": {
            "old_quantity": old_quantity,
            "new_quantity": new_quantity,
            "change": new_quantity - old_quantity,
            "change_type": _change_type(old_quantity, new_quantity),
            "reason": reason,
            "operation_type": operation_type,
        },
        "status": {
            "is_low_stock": product.is_low_stock,
            "is_out_of_stock": product.is_out_of_stock,
            "stock_level": _stock_level(new_quantity, product.reorder_level),
            "notification_created": notification is not None,
        },
    }


def bulk_adjust(
    *,
    adjustments,
    user_id: int,
    reason,
    operation_type: str = "manual_adjustment",
) -> dict:
    """
    Apply several adjustments by SKU. Each row commits on its own; a bad row
    is reported in `failed` and does not stop the others.
    """
    if not isinstance(adjustments, list) or not adjustments:
        raise ValidationError("adjustments must be a non-empty list")
    require_operation_type(operation_type)

    successful: list[dict] = []
    failed: list[dict] = []

    for index, item in enumerate(adjustments):
        sku = str((item or {}).get("sku") or "").strip().upper()
        try:
            if not sku:
                raise ValidationError("sku is required")
            product = db.session.query(Product).filter(Product.sku == sku).first()
            if product is None:
                raise NotFoundError(f"Product with SKU '{sku}'")
            result = adjust_stock(
                product_id=product.id,
                new_quantity=item.get("quantity"),
                user_id=user_id,
                reason=item.get("reason") or reason,
                operation_type=operation_type,
            )
            successful.append({"index": index, "sku": sku, **result["adjustment"]})
        except AppError as exc:
            failed.append({"index": index, "sku": sku or None, "error": exc.message})

    return {
        "successful": successful,
        "failed": failed,
        "summary": {
            "total": len(adjustments),
            "successful": len(successful),
            "failed": len(failed),
        },
    }


def transfer_stock(
    *,
    from_product_id: int,
    to_product_id: int,
    quantity,
    user_id: int,
    reason,
) -> dict:
    """
    Move quantity units from one product record to another (e.g. between
    locations). Both sides are locked and audited in one transaction.
    """
    quantity = coerce_int("quantity", quantity)
    if quantity <= 0:
        raise ValidationError("Transfer quantity must be greater than 0")
    if from_product_id == to_product_id:
        raise ValidationError("Source and destination products must be different")
    reason = require_reason(reason)

    with atomic():
        products = _locked_products([from_product_id, to_product_id])
        source = products[from_product_id]
        destination = products[to_product_id]

        if source.quantity < quantity:
            raise ValidationError(
                f"Insufficient stock for transfer. Available: {source.quantity}, requested: {quantity}"
            )

        source_old = source.quantity
        destination_old = destination.quantity
        record_quantity_change(
            source,
            source_old - quantity,
            user_id=user_id,
            reason=f"Transfer to {destination.sku}: {reason}"[:255],
            operation_type="transfer",
        )
        record_quantity_change(
            destination,
            destination_old + quantity,
            user_id=user_id,
            reason=f"Transfer from {source.sku}: {reason}"[:255],
            operation_type="transfer",
        )

    notification = notify_if_low_stock(source)

    return {
        "quantity": quantity,
        "reason": reason,
        "from": {"product": source.to_dict(), "old_quantity": source_old, "new_quantity": source.quantity},
        "to": {
            "product": destination.to_dict(),
            "old_quantity": destination_old,
            "new_quantity": destination.quantity,
        },
        "notification_created": notification is not None,
    }


def _normalize_items(items) -> "OrderedDict[int, int]":
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    totals: "OrderedDict[int, int]" = OrderedDict()
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object with product_id and quantity")
        product_id = coerce_int("product_id", item.get("product_id"))
        qty = coerce_int("quantity", item.get("quantity"))
        if qty <= 0:
            raise ValidationError("Item quantity must be greater than 0")
        totals[product_id] = totals.get(product_id, 0) + qty
    return totals


def _require_reference(reference) -> str:
    reference = str(reference or "").strip()
    if not reference:
        raise ValidationError("reference is required")
    return reference[:200]


def process_sale(*, items, user_id: int, reference) -> dict:
    """
    Decrement stock for every line of a sale. All lines must have enough
    stock or nothing is written.
    """
    totals = _normalize_items(items)
    reference = _require_reference(reference)

    lines: list[dict] = []
    total_value = Decimal("0")
    with atomic():
        products = _locked_products(totals.keys())
        short = [
            f"{products[pid].sku} (available {products[pid].quantity}, requested {qty})"
            for pid, qty in totals.items()
            if products[pid].quantity < qty
        ]
        if short:
            raise ValidationError("Insufficient stock: " + ", ".join(short), details=short)

        for pid, qty in totals.items():
            product = products[pid]
            old_quantity = product.quantity
            record_quantity_change(
                product,
                old_quantity - qty,
                user_id=user_id,
                reason=f"Sale: {reference}",
                operation_type="sale",
            )
            line_value = Decimal(qty) * Decimal(product.price)
            total_value += line_value
            lines.append({
                "product_id": pid,
                "sku": product.sku,
                "quantity": qty,
                "old_quantity": old_quantity,
                "new_quantity": old_quantity - qty,
                "line_value": float(line_value),
            })

    alerts = sum(1 for p in products.values() if notify_if_low_stock(p) is not None)

    return {
        "reference": reference,
        "items": lines,
        "total_units": sum(totals.values()),
        "total_value": float(total_value),
        "notifications_created": alerts,
    }


def process_purchase(*, items, user_id: int, reference) -> dict:
    """Increment stock for every line of a purchase / goods receipt."""
    totals = _normalize_items(items)
    reference = _require_reference(reference)

    lines: list[dict] = []
    with atomic():
        products = _locked_products(totals.keys())
        for pid, qty in totals.items():
            product = products[pid]
            old_quantity = product.quantity
            record_quantity_change(
                product,
                old_quantity + qty,
                user_id=user_id,
                reason=f"Purchase: {reference}",
                operation_type="purchase",
            )
            lines.append({
                "product_id": pid,
                "sku": product.sku,
                "quantity": qty,
                "old_quantity": old_quantity,
                "new_quantity": old_quantity + qty,
            })

    return {
        "reference": reference,
        "items": lines,
        "total_units": sum(totals.values()),
    }


def stock_level_report() -> dict:
    products = db.session.query(Product).order_by(Product.quantity.asc(), Product.name.asc()).all()
    out_of_stock = [p for p in products if p.is_out_of_stock]
    low_stock = [p for p in products if p.is_low_stock and not p.is_out_of_stock]
    return {
        "summary": {
            "total_products": len(products),
            "out_of_stock": len(out_of_stock),
            "low_stock": len(low_stock),
            "normal_stock": len(products) - len(out_of_stock) - len(low_stock),
        },
        "needs_attention": [
            {**p.to_dict(), "stock_level": _stock_level(p.quantity, p.reorder_level)}
            for p in out_of_stock + low_stock
        ],
    }
