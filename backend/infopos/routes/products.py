# Overview: Flask API routes for products and stock; parses input and returns JSON responses.

"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the tenant resolved from
the X-Tenant-ID header (see tenant_context.py). A product id owned by another
tenant answers 404.

Write operations require the X-User-ID header.
"""
from flask import Blueprint, g, jsonify, request

from ..services import products_service
from ..services import stock_service
from ..events import publisher
from ..models import Product
from ..tenant_context import require_tenant
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from ..decorators import handle_service_errors, require_user

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "category", "price_cents", "stock_quantity",
        "alert_threshold", "sku", "barcode", "is_active",
    },
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@handle_service_errors("list products")
def list_products():
    """
    Query params:
    - category: exact category match (optional)
    - q: substring of name, SKU or barcode (optional)
    """
    result = products_service.list_products(
        require_tenant(),
        category=request.args.get("category"),
        q=request.args.get("q"),
    )
    return jsonify(result), 200


@products_bp.get("/low-stock")
@handle_service_errors("list low-stock products")
def low_stock():
    """threshold omitted: each product's own alert_threshold applies."""
    threshold = request.args.get("threshold") or None
    products = stock_service.low_stock_products(require_tenant(), threshold)
    return jsonify({
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }), 200


@products_bp.get("/<int:product_id>")
@handle_service_errors("load product")
def get_product(product_id: int):
    product = products_service.get_product(require_tenant(), product_id)
    return jsonify(product.to_dict()), 200


@products_bp.post("")
@require_user
@handle_service_errors("create product")
def create_product():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(
        patch=patch, tenant_id=require_tenant(), created_by=g.current_user_id,
    )
    return jsonify(created), 201


@products_bp.put("/<int:product_id>")
@require_user
@handle_service_errors("update product")
def update_product(product_id: int):
    """
    Partial update. A stock_quantity here is a physical count; the
    difference is booked through the stock ledger.
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(
        product_id=product_id, patch=patch, tenant_id=require_tenant(), updated_by=g.current_user_id,
    )
    return jsonify(updated), 200


@products_bp.delete("/<int:product_id>")
@require_user
@handle_service_errors("delete product")
def delete_product(product_id: int):
    products_service.delete_product(product_id=product_id, tenant_id=require_tenant())
    return jsonify({"ok": True}), 200


@products_bp.post("/<int:product_id>/stock")
@require_user
@handle_service_errors("adjust stock")
def adjust_stock(product_id: int):
    """
    Apply a signed delta to stock.

    Body: {"delta": int}. Negative consumes, positive restocks.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict) or "delta" not in payload:
        raise ValidationError("delta is required")

    adjustment = stock_service.adjust_stock(require_tenant(), product_id, payload["delta"])
    publisher.publish_all(stock_service.inventory_events_for(adjustment, g.current_user_id))

    return jsonify({"adjustment": adjustment.to_dict(), "product": adjustment.snapshot}), 200
