# backend/inventory_api/services/product_service.py
"""
Product catalogue service.

Quantity changes made through create/update go through
stock_service.record_quantity_change so they are audited in the same
transaction as the product write.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, User
from .concurrency import atomic, lock_for_update
from .stock_service import notify_if_low_stock, record_quantity_change

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "category", "reorder_level", "price", "location"}

SORTABLE_COLUMNS = {
    "name": Product.name,
    "sku": Product.sku,
    "category": Product.category,
    "quantity": Product.quantity,
    "price": Product.price,
    "created_at": Product.created_at,
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product")
    return product


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Product with SKU '{sku}' already exists")


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
    sort_by: str | None = None,
    descending: bool = True,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Product], int]:
    """
    Filtered, sorted product page.

    sort_by outside the whitelist falls back to created_at.
    Returns (products, total matching count).
    """
    query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category:
        query = query.filter(Product.category == category)
    if low_stock:
        query = query.filter(Product.quantity <= Product.reorder_level)

    total = query.count()

    column = SORTABLE_COLUMNS.get(sort_by or "", Product.created_at)
    if descending:
        query = query.order_by(column.desc(), Product.id.desc())
    else:
        query = query.order_by(column.asc(), Product.id.asc())

    return query.offset(offset).limit(limit).all(), total


def create_product(*, patch: dict, user_id: int) -> Product:
    """
    Create product using a validated patch dict.

    A non-zero starting quantity is recorded as a purchase audit
    ("Initial product creation") in the same transaction.
    """
    quantity = patch.get("quantity") or 0
    with atomic():
        _ensure_sku_available(patch["sku"])

        product = Product(quantity=0)
        apply_product_patch(product, patch)
        if product.reorder_level is None:
            product.reorder_level = current_app.config["DEFAULT_REORDER_LEVEL"]
        db.session.add(product)
        db.session.flush()

        if quantity > 0:
            record_quantity_change(
                product,
                quantity,
                user_id=user_id,
                reason="Initial product creation",
                operation_type="purchase",
            )

    notify_if_low_stock(product)
    return product


def update_product(*, product_id: int, patch: dict, user_id: int, reason: str | None = None) -> dict:
    """
    Apply a validated patch. A quantity change is audited as a manual
    adjustment with `reason` (default "Product quantity updated").
    """
    new_quantity = patch.get("quantity")
    quantity_changed = False

    with atomic():
        product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if product is None:
            raise NotFoundError("Product")

        if "sku" in patch and patch["sku"] != product.sku:
            _ensure_sku_available(patch["sku"], exclude_id=product.id)

        apply_product_patch(product, patch)

        if new_quantity is not None and new_quantity != product.quantity:
            change_reason = (reason or "").strip() or "Product quantity updated"
            if len(change_reason) < 3:
                raise ValidationError("Reason must be at least 3 characters long")
            record_quantity_change(
                product,
                new_quantity,
                user_id=user_id,
                reason=change_reason[:255],
                operation_type="manual_adjustment",
            )
            quantity_changed = True

    notification = notify_if_low_stock(product)
    return {
        "product": product,
        "quantity_changed": quantity_changed,
        "notification_created": notification is not None,
    }


def delete_product(*, product_id: int, user: User) -> dict:
    """
    Delete a product and (by cascade) its audits and notifications.

    Staff may only delete products with zero stock.
    """
    product = get_product(product_id)
    if not user.is_manager and product.quantity > 0:
        raise AuthorizationError(
            "Staff can only delete products with zero stock. "
            "Contact a manager to delete products with remaining inventory."
        )

    snapshot = product.to_dict()
    with atomic():
        db.session.delete(product)

    current_app.logger.info(
        "Product %s (%s) deleted by %s with quantity %s",
        snapshot["id"], snapshot["sku"], user.username, snapshot["quantity"],
    )
    return snapshot


def list_categories() -> list[dict]:
    rows = (
        db.session.query(
            Product.category,
            func.count(Product.id),
            func.coalesce(func.sum(Product.quantity), 0),
            func.coalesce(func.sum(Product.quantity * Product.price), 0),
        )
        .group_by(Product.category)
        .order_by(Product.category.asc())
        .all()
    )
    return [
        {
            "category": category,
            "product_count": int(count),
            "total_quantity": int(qty),
            "total_value": round(float(value), 2),
        }
        for category, count, qty, value in rows
    ]


def low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.quantity <= Product.reorder_level)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


def search_products(q: str | None, *, limit: int = 20) -> list[Product]:
    term = (q or "").strip()
    if len(term) < 2:
        raise ValidationError("Search term must be at least 2 characters long")
    pattern = f"%{term}%"
    return (
        db.session.query(Product)
        .filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.description.ilike(pattern),
        ))
        .order_by(Product.name.asc())
        .limit(limit)
        .all()
    )


def products_in_category(category: str) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.category == category)
        .order_by(Product.name.asc())
        .all()
    )


def inventory_stats() -> dict:
    total_products, total_quantity, total_value, avg_price = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(Product.quantity), 0),
        func.coalesce(func.sum(Product.quantity * Product.price), 0),
        func.avg(Product.price),
    ).one()
    low_stock_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.quantity <= Product.reorder_level)
        .scalar()
    )
    out_of_stock_count = db.session.query(func.count(Product.id)).filter(Product.quantity == 0).scalar()
    categories_count = db.session.query(func.count(func.distinct(Product.category))).scalar()

    return {
        "total_products": int(total_products),
        "total_quantity": int(total_quantity),
        "total_value": round(float(Decimal(str(total_value))), 2),
        "average_price": round(float(avg_price), 2) if avg_price is not None else 0,
        "low_stock_count": int(low_stock_count or 0),
        "out_of_stock_count": int(out_of_stock_count or 0),
        "categories_count": int(categories_count or 0),
    }
