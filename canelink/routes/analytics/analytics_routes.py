# canelink/routes/analytics/analytics_routes.py

from flask import Blueprint, jsonify
from flask_jwt_extended import current_user

from canelink.security import role_required
from canelink.services.analytics_service import AnalyticsService
from canelink.utils.helpers import to_json
from canelink.utils.responses import ok

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")

farmer_only = role_required("Farmer")


@analytics_bp.get("/factory-profitability")
@farmer_only
def factory_profitability():
    result = AnalyticsService.factory_profitability()
    return jsonify({
        "success": True,
        "message": "Factory profitability analysis completed successfully",
        **to_json(result),
    })


@analytics_bp.get("/factory-details/<factory_id>")
@farmer_only
def factory_details(factory_id):
    result = AnalyticsService.factory_details(factory_id)
    return jsonify({
        "success": True,
        "message": "Factory contract details retrieved successfully",
        **to_json(result),
    })


@analytics_bp.get("/market-trends")
@farmer_only
def market_trends():
    return ok(AnalyticsService.market_trends())


@analytics_bp.get("/hhm-performance")
@farmer_only
def hhm_performance():
    rows = AnalyticsService.hhm_performance()
    return ok(rows, count=len(rows))


@analytics_bp.get("/farmer-dashboard")
@farmer_only
def farmer_dashboard():
    return ok(AnalyticsService.farmer_dashboard(current_user))
