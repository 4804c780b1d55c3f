from flask import Blueprint, jsonify, request

from ..services import reporting_service
from ..tenant_context import require_tenant
from ..decorators import handle_service_errors


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/daily")
@handle_service_errors("build daily sales report")
def daily_report():
    report = reporting_service.daily_report(
        require_tenant(),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return jsonify(report), 200


@reports_bp.get("/sales-summary")
@handle_service_errors("build sales summary")
def sales_summary():
    report = reporting_service.sales_summary(
        require_tenant(),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return jsonify(report), 200


@reports_bp.get("/payment-methods")
@handle_service_errors("build payment method report")
def payment_methods():
    report = reporting_service.sales_by_payment_method(
        require_tenant(),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return jsonify(report), 200


@reports_bp.get("/inventory-status")
@handle_service_errors("build inventory status")
def inventory_status():
    report = reporting_service.inventory_status(
        require_tenant(),
        threshold=request.args.get("threshold") or None,
    )
    return jsonify(report), 200
