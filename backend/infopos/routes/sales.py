# Overview: Flask API routes for sales and offline sync; parses input and returns JSON responses.

"""Sales API routes. Tenant from X-Tenant-ID, acting user from X-User-ID."""

from flask import Blueprint, current_app, g, jsonify, request

from ..services import sales_service
from ..services import offline_sync_service
from ..tenant_context import require_tenant
from ..validation import ValidationError
from ..decorators import handle_service_errors, require_user


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_user
@handle_service_errors("create sale")
def create_sale_route():
    """
    Create one completed (or pending) sale and consume its stock.

    Errors come back with their category: 400 validation / invalid_state,
    404 not_found, 409 conflict / insufficient_stock.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    sale = sales_service.create_sale(require_tenant(), g.current_user_id, payload)
    return jsonify({"sale": sale}), 201


@sales_bp.get("")
@handle_service_errors("list sales")
def list_sales_route():
    result = sales_service.list_sales(
        require_tenant(),
        status=request.args.get("status"),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@handle_service_errors("load sale")
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale(require_tenant(), sale_id)}), 200


@sales_bp.put("/<int:sale_id>/status")
@require_user
@handle_service_errors("update sale status")
def update_status_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    sale = sales_service.update_sale_status(
        require_tenant(), sale_id, payload.get("status"), user_id=g.current_user_id,
    )
    return jsonify({"sale": sale}), 200


@sales_bp.post("/sync-offline")
@require_user
def sync_offline_route():
    """
    Upload sales rung up offline.

    Body: {"sales": [record, ...]} or a bare list of records.
    Always 200 with {processed, skipped, failed, summary}; a bad record never
    fails the batch.
    """
    payload = request.get_json(silent=True)
    records = payload.get("sales") if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        return jsonify({"error": "Expected a list of sale records"}), 400

    try:
        result = offline_sync_service.sync_batch(require_tenant(), g.current_user_id, records)
    except Exception:
        current_app.logger.exception("Failed to sync offline sales")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 200
