# canelink/services/user_service.py

import re

from flask import current_app
from pymongo.errors import DuplicateKeyError

from canelink.errors import ServiceError
from canelink.models.user_models import (
    COMMON_PROFILE_FIELDS,
    ROLE_PROFILE_FIELDS,
    ContactInfoModel,
    LoginModel,
    PHONE_PATTERN,
    RegisterModel,
    WorkerProfileModel,
)
from canelink.mongo import mongo
from canelink.security import ROLES, check_password, hash_password, normalize_role
from canelink.utils.helpers import icontains, paginate, to_json, to_object_id, utcnow

# never leave the service layer
PRIVATE_FIELDS = {"password"}


class UserService:

    # =========================
    # SHAPES
    # =========================
    @staticmethod
    def public_user(doc: dict) -> dict:
        if not doc:
            return {}
        return to_json({k: v for k, v in doc.items() if k not in PRIVATE_FIELDS})

    @staticmethod
    def summary(doc: dict) -> dict:
        """Small embed used when joining users into listings, orders, invitations."""
        if not doc:
            return {}
        out = {
            "_id": str(doc["_id"]),
            "name": doc.get("name"),
            "username": doc.get("username"),
            "email": doc.get("email"),
            "phone": doc.get("phone"),
            "role": doc.get("role"),
            "location": doc.get("location") or doc.get("factoryLocation"),
        }
        if doc.get("role") == "Factory":
            out["factoryName"] = doc.get("factoryName")
        return out

    @staticmethod
    def summaries_by_id(ids) -> dict:
        ids = [i for i in set(ids) if i is not None]
        if not ids:
            return {}
        docs = mongo.db.users.find({"_id": {"$in": ids}}, {"password": 0})
        return {d["_id"]: UserService.summary(d) for d in docs}

    @staticmethod
    def _profile_fields(role: str, data: dict) -> dict:
        allowed = COMMON_PROFILE_FIELDS | ROLE_PROFILE_FIELDS.get(role, set())
        fields = {k: v for k, v in (data or {}).items() if k in allowed}

        if role == "Worker":
            checked = WorkerProfileModel(**fields).model_dump(exclude_none=True)
            fields.update(checked)
        if role == "Factory" and isinstance(fields.get("contactInfo"), dict):
            fields["contactInfo"] = ContactInfoModel(**fields["contactInfo"]).model_dump()
        return fields

    # =========================
    # AUTH
    # =========================
    @staticmethod
    def register(payload: dict) -> dict:
        model = RegisterModel(**(payload or {}))
        role = normalize_role(model.role)
        if not role:
            raise ServiceError(f"Role must be one of: {', '.join(ROLES)}", 400)

        users = mongo.db.users
        for field in ("username", "email", "phone"):
            if users.find_one({field: getattr(model, field)}, {"_id": 1}):
                raise ServiceError(f"User with this {field} already exists", 409)

        now = utcnow()
        doc = {
            "name": model.name,
            "username": model.username,
            "email": model.email,
            "phone": model.phone,
            "role": role,
            "password": hash_password(model.password),
            "isActive": True,
            "createdAt": now,
            "updatedAt": now,
        }
        if role == "Worker":
            doc.update({"skills": [], "availability": "Available"})
        elif role == "HHM":
            doc["associatedFactories"] = []
        elif role == "Factory":
            doc["associatedHHMs"] = []
        profile = UserService._profile_fields(role, payload)
        profile.pop("name", None)
        profile.pop("phone", None)
        doc.update(profile)

        try:
            doc["_id"] = users.insert_one(doc).inserted_id
        except DuplicateKeyError:
            raise ServiceError("User with these details already exists", 409)

        current_app.logger.info("registered %s user %s", role, model.username)
        return doc

    @staticmethod
    def authenticate(payload: dict) -> dict:
        model = LoginModel(**(payload or {}))
        ident = model.identifier.strip()
        user = mongo.db.users.find_one({
            "$or": [
                {"username": ident.lower()},
                {"email": ident.lower()},
                {"phone": ident},
            ],
            "isActive": True,
        })
        if not user or not check_password(user.get("password"), model.password):
            raise ServiceError("Invalid credentials", 401)

        mongo.db.users.update_one({"_id": user["_id"]}, {"$set": {"lastLoginAt": utcnow()}})
        return user

    # =========================
    # PROFILE
    # =========================
    @staticmethod
    def get_user(user_id, role: str = None) -> dict:
        oid = to_object_id(user_id, "user ID")
        query = {"_id": oid}
        if role:
            query["role"] = role
        user = mongo.db.users.find_one(query, {"password": 0})
        if not user:
            raise ServiceError(f"{role or 'User'} not found", 404)
        return user

    @staticmethod
    def update_profile(user: dict, payload: dict) -> dict:
        """Role-aware partial update; password, role, _id and createdAt are ignored."""
        updates = UserService._profile_fields(user["role"], payload)
        if not updates:
            raise ServiceError("No updatable profile fields provided", 400)

        phone = updates.get("phone")
        if phone is not None and not re.match(PHONE_PATTERN, str(phone)):
            raise ServiceError("Please provide a valid phone number", 400)
        if phone and phone != user.get("phone"):
            if mongo.db.users.find_one({"phone": phone, "_id": {"$ne": user["_id"]}}, {"_id": 1}):
                raise ServiceError("User with this phone already exists", 409)

        updates["updatedAt"] = utcnow()
        mongo.db.users.update_one({"_id": user["_id"]}, {"$set": updates})
        return mongo.db.users.find_one({"_id": user["_id"]}, {"password": 0})

    @staticmethod
    def set_worker_availability(worker_id, availability: str) -> dict:
        worker = UserService.get_user(worker_id, role="Worker")
        mongo.db.users.update_one(
            {"_id": worker["_id"]},
            {"$set": {"availability": availability, "updatedAt": utcnow()}},
        )
        worker["availability"] = availability
        return worker

    # =========================
    # DIRECTORIES
    # =========================
    @staticmethod
    def directory(role: str, args, page: int, limit: int, total_key: str = "totalUsers"):
        """Active users of one role with name/location/skills/availability filters."""
        query = {"role": role, "isActive": True}
        clauses = []

        name = (args.get("name") or args.get("search") or "").strip()
        if name:
            clauses.append({"$or": [
                {"name": icontains(name)},
                {"username": icontains(name)},
                {"factoryName": icontains(name)},
            ]})

        location = (args.get("location") or "").strip()
        if location:
            clauses.append({"$or": [
                {"location": icontains(location)},
                {"factoryLocation": icontains(location)},
            ]})

        skills = [s.strip() for s in (args.get("skills") or "").split(",") if s.strip()]
        if skills:
            clauses.append({"$or": [{"skills": icontains(s)} for s in skills]})

        availability = (args.get("availability") or "").strip()
        if availability:
            query["availability"] = availability

        if clauses:
            query["$and"] = clauses

        docs, pagination = paginate(
            mongo.db.users, query, page, limit,
            sort=[("createdAt", -1)], total_key=total_key,
        )
        return [UserService.public_user(d) for d in docs], pagination

    @staticmethod
    def search(args, page: int, limit: int):
        query = {}
        role = normalize_role(args.get("role"))
        if role:
            query["role"] = role

        clauses = []
        name = (args.get("name") or "").strip()
        if name:
            clauses.append({"$or": [
                {"name": icontains(name)},
                {"username": icontains(name)},
                {"factoryName": icontains(name)},
            ]})
        location = (args.get("location") or "").strip()
        if location:
            clauses.append({"$or": [
                {"location": icontains(location)},
                {"factoryLocation": icontains(location)},
            ]})
        if clauses:
            query["$and"] = clauses

        order = -1 if (args.get("order") or "desc") == "desc" else 1
        sort_field = args.get("sort") if args.get("sort") in ("createdAt", "name") else "createdAt"

        docs, pagination = paginate(
            mongo.db.users, query, page, limit,
            sort=[(sort_field, order)], total_key="totalUsers",
        )
        users = [
            {
                "_id": str(d["_id"]),
                "name": d.get("name"),
                "username": d.get("username"),
                "role": d.get("role"),
                "location": d.get("location") or d.get("factoryLocation"),
                "displayName": d.get("factoryName") or d.get("name"),
                "isActive": d.get("isActive", True),
                "joinedAt": to_json(d.get("createdAt")),
            }
            for d in docs
        ]
        return users, pagination

    @staticmethod
    def public_profile(user_id) -> dict:
        """Any user's public profile with role-specific fields."""
        user = UserService.get_user(user_id)
        role = user.get("role")
        out = {
            "_id": str(user["_id"]),
            "name": user.get("name"),
            "username": user.get("username"),
            "email": user.get("email"),
            "phone": user.get("phone"),
            "role": role,
            "location": user.get("location"),
            "isActive": user.get("isActive", True),
            "joinedAt": to_json(user.get("createdAt")),
        }
        for field in ROLE_PROFILE_FIELDS.get(role, ()):
            out[field] = to_json(user.get(field))

        if role == "Factory":
            out["factoryName"] = user.get("factoryName") or f"{user.get('name')} Factory"
            out["contactInfo"] = {
                **(user.get("contactInfo") or {}),
                "email": user.get("email"),
                "phone": user.get("phone"),
            }
            out["hhmCount"] = len(user.get("associatedHHMs") or [])
        elif role == "HHM":
            out["factoryCount"] = len(user.get("associatedFactories") or [])
        elif role == "Worker":
            out["availability"] = user.get("availability") or "Available"

        out["profileType"] = {"Factory": "factory", "Farmer": "farmer",
                              "HHM": "hhm", "Worker": "worker"}.get(role, "basic")
        return out
