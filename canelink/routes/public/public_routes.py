# canelink/routes/public/public_routes.py

from flask import Blueprint, request

from canelink.services.public_service import PublicService
from canelink.utils.responses import ok, page_args

public_bp = Blueprint("public", __name__, url_prefix="/api/public")


# -----------------------------
# FACTORIES
# -----------------------------
@public_bp.get("/factories")
def list_factories():
    page, limit = page_args(default_limit=10)
    factories, pagination = PublicService.factories(request.args, page, limit)
    return ok({"factories": factories, "pagination": pagination}, "Factories retrieved successfully")


@public_bp.get("/factories/<factory_id>")
def get_factory(factory_id):
    return ok({"factory": PublicService.factory(factory_id)}, "Factory retrieved successfully")


# -----------------------------
# ROLE FEATURES
# -----------------------------
@public_bp.get("/roles-features")
def roles_features():
    return ok(PublicService.role_features(request.args), "Role features retrieved successfully")


@public_bp.get("/roles-features/<role_name>")
def role_features(role_name):
    role = PublicService.role_feature(role_name, request.args)
    return ok({"roleFeature": role}, f"Role features for {role['roleName']} retrieved successfully")
