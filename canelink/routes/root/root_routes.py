# canelink/routes/root/root_routes.py

from flask import Blueprint, jsonify

from canelink.mongo import ping
from canelink.utils.helpers import to_json, utcnow

root_bp = Blueprint("root", __name__)


# -----------------------------
# API INFO
# -----------------------------
@root_bp.get("/")
def index():
    return jsonify({
        "success": True,
        "message": "CaneLink marketplace API",
        "version": "1.0.0",
        "endpoints": {
            "auth": "/api/auth",
            "listings": "/api/listings",
            "orders": "/api/orders",
            "farmer": "/api/farmer",
            "factory": "/api/factory",
            "hhm": "/api/hhm",
            "worker": "/api/worker",
            "contracts": "/api/contracts",
            "farmerContracts": "/api/farmer-contracts",
            "analytics": "/api/analytics",
            "public": "/api/public",
            "users": "/api/users",
        },
    })


# -----------------------------
# HEALTH
# -----------------------------
@root_bp.get("/api/health")
def health():
    db_ok = ping()
    return jsonify({
        "success": True,
        "status": "ok" if db_ok else "degraded",
        "database": "connected" if db_ok else "unreachable",
        "timestamp": to_json(utcnow()),
    })
