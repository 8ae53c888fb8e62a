# Overview: Flask API routes for products and stock operations; parses input and returns JSON responses.

"""
Product management routes.

SECURITY: All routes require authentication.
- Staff and managers may read, create, update and adjust stock
- Staff may only delete products with zero stock
- Transfers are manager only
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_manager, require_staff_or_manager
from ..models import Product
from ..responses import PageOptions, envelope
from ..services import product_service, stock_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    parse_bool,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "category", "quantity", "reorder_level", "price", "location"},
    required_on_create={"sku", "name", "category", "price"},
    min_lengths={"name": 2, "category": 2},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@products_bp.get("")
@require_auth
@require_staff_or_manager
def list_products_route():
    """
    List products.

    Query params:
    - search: matches name or sku
    - category: exact category
    - low_stock: true to only return products at or below reorder level
    - sort_by: name|sku|category|quantity|price|created_at
    - page, take, order: page options
    """
    page = PageOptions.from_args(request.args)
    products, total = product_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=parse_bool(request.args.get("low_stock")),
        sort_by=request.args.get("sort_by"),
        descending=page.descending,
        offset=page.offset,
        limit=page.limit,
    )
    return envelope(
        [p.to_dict() for p in products],
        "Products retrieved successfully",
        page=page,
        total=total,
    )


@products_bp.post("")
@require_auth
@require_staff_or_manager
def create_product_route():
    payload = _json_body()
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = product_service.create_product(patch=patch, user_id=g.current_user.id)
    return envelope(
        {**product.to_dict(), "status": product.status_dict()},
        "Product created successfully",
        201,
    )


@products_bp.get("/categories")
@require_auth
@require_staff_or_manager
def categories_route():
    return envelope(product_service.list_categories(), "Categories retrieved successfully")


@products_bp.get("/low-stock")
@require_auth
@require_staff_or_manager
def low_stock_route():
    products = product_service.low_stock_products()
    return envelope(
        {
            "products": [{**p.to_dict(), "status": p.status_dict()} for p in products],
            "count": len(products),
            "out_of_stock_count": sum(1 for p in products if p.is_out_of_stock),
        },
        "Low stock products retrieved successfully",
    )


@products_bp.get("/search")
@require_auth
@require_staff_or_manager
def search_route():
    q = request.args.get("q")
    products = product_service.search_products(q, limit=request.args.get("limit", 20, type=int))
    return envelope(
        {"query": q, "results": [p.to_dict() for p in products], "count": len(products)},
        "Search completed successfully",
    )


@products_bp.get("/stats")
@require_auth
@require_staff_or_manager
def stats_route():
    return envelope(product_service.inventory_stats(), "Inventory statistics retrieved successfully")


@products_bp.get("/category/<string:category>")
@require_auth
@require_staff_or_manager
def by_category_route(category: str):
    products = product_service.products_in_category(category)
    return envelope(
        {"category": category, "products": [p.to_dict() for p in products], "count": len(products)},
        "Category products retrieved successfully",
    )


@products_bp.get("/<int:product_id>")
@require_auth
@require_staff_or_manager
def get_product_route(product_id: int):
    product = product_service.get_product(product_id)
    return envelope({**product.to_dict(), "status": product.status_dict()}, "Product retrieved successfully")


@products_bp.put("/<int:product_id>")
@require_auth
@require_staff_or_manager
def update_product_route(product_id: int):
    """
    Update product fields.

    A quantity change is audited; pass "reason" to describe it.
    """
    payload = dict(_json_body())
    reason = payload.pop("reason", None)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if not patch:
        raise ValidationError("No valid fields provided for update")

    result = product_service.update_product(
        product_id=product_id,
        patch=patch,
        user_id=g.current_user.id,
        reason=reason,
    )
    product = result["product"]
    return envelope(
        {
            **product.to_dict(),
            "status": product.status_dict(),
            "quantity_changed": result["quantity_changed"],
            "notification_created": result["notification_created"],
        },
        "Product updated successfully",
    )


@products_bp.delete("/<int:product_id>")
@require_auth
@require_staff_or_manager
def delete_product_route(product_id: int):
    deleted = product_service.delete_product(product_id=product_id, user=g.current_user)
    return envelope(deleted, "Product deleted successfully")


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_staff_or_manager
def adjust_stock_route(product_id: int):
    """
    Set the stock level of a product.

    Body:
    - quantity: int >= 0 (required), the new stock level
    - reason: str, at least 3 chars (required)
    - operation_type: manual_adjustment|sale|purchase|damage|transfer|correction
    """
    payload = _json_body()
    if payload.get("quantity") is None:
        raise ValidationError("quantity is required")

    result = stock_service.adjust_stock(
        product_id=product_id,
        new_quantity=payload.get("quantity"),
        user_id=g.current_user.id,
        reason=payload.get("reason"),
        operation_type=payload.get("operation_type") or "manual_adjustment",
    )
    return envelope(result, "Stock adjusted successfully")


@products_bp.post("/stock/bulk")
@require_auth
@require_staff_or_manager
def bulk_adjust_route():
    payload = _json_body()
    result = stock_service.bulk_adjust(
        adjustments=payload.get("adjustments"),
        user_id=g.current_user.id,
        reason=payload.get("reason"),
        operation_type=payload.get("operation_type") or "manual_adjustment",
    )
    return envelope(result, "Bulk stock adjustment completed")


@products_bp.post("/stock/transfer")
@require_auth
@require_manager
def transfer_route():
    payload = _json_body()
    for key in ("from_product_id", "to_product_id", "quantity"):
        if payload.get(key) is None:
            raise ValidationError(f"{key} is required")

    result = stock_service.transfer_stock(
        from_product_id=coerce_int("from_product_id", payload["from_product_id"]),
        to_product_id=coerce_int("to_product_id", payload["to_product_id"]),
        quantity=payload["quantity"],
        user_id=g.current_user.id,
        reason=payload.get("reason"),
    )
    return envelope(result, "Stock transferred successfully")


@products_bp.post("/stock/sale")
@require_auth
@require_staff_or_manager
def sale_route():
    payload = _json_body()
    result = stock_service.process_sale(
        items=payload.get("items"),
        user_id=g.current_user.id,
        reference=payload.get("reference"),
    )
    return envelope(result, "Sale processed successfully")


@products_bp.post("/stock/purchase")
@require_auth
@require_staff_or_manager
def purchase_route():
    payload = _json_body()
    result = stock_service.process_purchase(
        items=payload.get("items"),
        user_id=g.current_user.id,
        reference=payload.get("reference"),
    )
    return envelope(result, "Purchase processed successfully")


@products_bp.get("/stock/report")
@require_auth
@require_staff_or_manager
def stock_report_route():
    return envelope(stock_service.stock_level_report(), "Stock level report generated successfully")
