# canelink/routes/auth/auth_routes.py

from flask import Blueprint
from flask_jwt_extended import create_access_token, current_user, get_jwt, jwt_required

from canelink.security import issue_tokens, login_required
from canelink.services.user_service import UserService
from canelink.utils.responses import body, ok

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# -------------------------------------------------------------------
# Register / login
# -------------------------------------------------------------------
@auth_bp.post("/register")
def register():
    user = UserService.register(body())
    token, refresh = issue_tokens(user)
    return ok(
        {"user": UserService.public_user(user), "token": token, "refreshToken": refresh},
        "User registered successfully",
        201,
    )


@auth_bp.post("/login")
def login():
    user = UserService.authenticate(body())
    token, refresh = issue_tokens(user)
    return ok(
        {"user": UserService.public_user(user), "token": token, "refreshToken": refresh},
        "Login successful",
    )


# -------------------------------------------------------------------
# Token checks
# -------------------------------------------------------------------
@auth_bp.get("/verify")
@login_required
def verify():
    return ok({"user": UserService.public_user(current_user)}, "Token is valid")


@auth_bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    claims = {"role": get_jwt().get("role", "")}
    token = create_access_token(identity=str(current_user["_id"]), additional_claims=claims)
    return ok({"token": token}, "Token refreshed")
