# canelink/security.py
from __future__ import annotations

from functools import wraps

from flask import jsonify
from flask_bcrypt import Bcrypt
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    create_refresh_token,
    current_user,
    jwt_required,
)

from canelink.errors import ServiceError
from canelink.mongo import mongo
from canelink.utils.helpers import optional_object_id

bcrypt = Bcrypt()
jwt = JWTManager()

ROLES = ("Farmer", "HHM", "Worker", "Factory")
ROLE_ALIASES = {"labour": "Worker", "worker": "Worker", "farmer": "Farmer",
                "hhm": "HHM", "factory": "Factory"}


def normalize_role(value) -> str | None:
    if not value:
        return None
    return ROLE_ALIASES.get(str(value).strip().lower())


def hash_password(password: str) -> str:
    return bcrypt.generate_password_hash(password).decode("utf-8")


def check_password(hashed: str, password: str) -> bool:
    return bool(hashed) and bcrypt.check_password_hash(hashed, password)


def issue_tokens(user_doc: dict) -> tuple[str, str]:
    ident = str(user_doc["_id"])
    claims = {"role": user_doc.get("role", "")}
    access = create_access_token(identity=ident, additional_claims=claims)
    refresh = create_refresh_token(identity=ident, additional_claims=claims)
    return access, refresh


# -------------------------------------------------------------------
# JWT callbacks: every auth failure is a JSON 401
# -------------------------------------------------------------------
def _unauthorized(message: str):
    return jsonify(success=False, message=message), 401


def init_security(app):
    bcrypt.init_app(app)
    jwt.init_app(app)

    @jwt.user_lookup_loader
    def _load_user(_jwt_header, jwt_data):
        try:
            user_id = optional_object_id(jwt_data.get("sub"))
        except ServiceError:
            return None
        if user_id is None:
            return None
        return mongo.db.users.find_one({"_id": user_id}, {"password": 0})

    @jwt.user_lookup_error_loader
    def _user_missing(_jwt_header, _jwt_data):
        return _unauthorized("Access denied. User not found.")

    @jwt.unauthorized_loader
    def _no_token(_reason):
        return _unauthorized("Access denied. No token provided.")

    @jwt.expired_token_loader
    def _expired(_jwt_header, _jwt_data):
        return _unauthorized("Access denied. Token expired.")

    @jwt.invalid_token_loader
    def _invalid(_reason):
        return _unauthorized("Access denied. Invalid token.")


# -------------------------------------------------------------------
# Route guard
# -------------------------------------------------------------------
def role_required(*roles):
    """
    jwt_required() plus the active-account check and an optional role gate.
    With no roles, any authenticated user passes.
    """

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            user = current_user
            if not user.get("isActive", True):
                raise ServiceError("Access denied. Account is deactivated.", 401)
            if roles and user.get("role") not in roles:
                raise ServiceError(
                    f"Access denied. Required role: {' or '.join(roles)}. "
                    f"Your role: {user.get('role')}",
                    403,
                )
            return fn(*args, **kwargs)

        return wrapper

    return decorator


login_required = role_required()
