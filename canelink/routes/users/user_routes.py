# canelink/routes/users/user_routes.py

from flask import Blueprint, request

from canelink.services.user_service import UserService
from canelink.utils.responses import ok, page_args

user_bp = Blueprint("users", __name__, url_prefix="/api/users")


@user_bp.get("/profile/<user_id>")
def public_profile(user_id):
    return ok(UserService.public_profile(user_id))


@user_bp.get("/search")
def search():
    page, limit = page_args()
    users, pagination = UserService.search(request.args, page, limit)
    return ok(users, pagination=pagination)
