# canelink/routes/farmer/farmer_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import role_required
from canelink.services.announcement_service import AnnouncementService
from canelink.services.factory_service import FactoryService
from canelink.services.user_service import UserService
from canelink.utils.responses import body, ok, page_args

farmer_bp = Blueprint("farmer", __name__, url_prefix="/api/farmer")

farmer_only = role_required("Farmer")


@farmer_bp.get("/profile")
@farmer_only
def get_profile():
    return ok(UserService.public_user(current_user))


@farmer_bp.put("/profile")
@farmer_only
def update_profile():
    user = UserService.update_profile(current_user, body())
    return ok(UserService.public_user(user), "Profile updated successfully")


# -----------------------------------------
# DIRECTORIES
# -----------------------------------------
@farmer_bp.get("/hhms")
@farmer_only
def list_hhms():
    page, limit = page_args()
    hhms, pagination = UserService.directory("HHM", request.args, page, limit, total_key="totalHHMs")
    return ok(hhms, pagination=pagination)


@farmer_bp.get("/factories")
@farmer_only
def list_factories():
    page, limit = page_args()
    factories, pagination = UserService.directory(
        "Factory", request.args, page, limit, total_key="totalFactories"
    )
    return ok(factories, pagination=pagination)


@farmer_bp.get("/bills")
@farmer_only
def my_bills():
    page, limit = page_args()
    bills, pagination, totals = FactoryService.farmer_bills(current_user, request.args, page, limit)
    return ok(bills, pagination=pagination, totals=totals)


@farmer_bp.get("/announcements")
@farmer_only
def announcements():
    rows = AnnouncementService.for_role(current_user["role"])
    return ok(rows, count=len(rows))
