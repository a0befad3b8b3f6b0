# Overview: Flask API routes for reporting; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..errors import POSError
from ..services import reporting_service
from ..decorators import require_auth, require_role


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/low-stock")
@require_auth
def low_stock_route():
    return jsonify(reporting_service.low_stock_report()), 200


@reports_bp.get("/sales-summary")
@require_auth
@require_role("admin", "manager")
def sales_summary_route():
    """Query params: period (today|week|month|year) or start/end ISO-8601."""
    try:
        summary = reporting_service.sales_summary(
            request.args.get("period", "today"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(summary), 200
