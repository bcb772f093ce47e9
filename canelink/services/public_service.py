# canelink/services/public_service.py

from flask import current_app

from canelink.errors import ServiceError
from canelink.models.factory_models import ROLE_FEATURE_NAMES, RoleFeatureModel
from canelink.mongo import mongo
from canelink.utils.helpers import icontains, paginate, to_json, to_object_id, utcnow

FACTORY_SORTS = ("createdAt", "name", "factoryName", "capacity")

DEFAULT_ROLE_FEATURES = [
    {
        "roleName": "FARMER",
        "features": [
            {"title": "Crop Listings", "description": "List cane for sale with quantity, price and harvest date",
             "priority": 10, "icon": "sprout"},
            {"title": "Order Management", "description": "Receive, accept and track orders from other farmers",
             "priority": 9, "icon": "cart"},
            {"title": "HHM Contracts", "description": "Request harvesting contracts from managers",
             "priority": 8, "icon": "handshake"},
            {"title": "Factory Analytics", "description": "Compare factories by price, payment delay and fulfilment",
             "priority": 7, "icon": "chart"},
        ],
    },
    {
        "roleName": "HHM",
        "features": [
            {"title": "Harvest Schedules", "description": "Plan harvests and staff them with workers",
             "priority": 10, "icon": "calendar"},
            {"title": "Worker Invitations", "description": "Invite workers directly onto schedules",
             "priority": 9, "icon": "mail"},
            {"title": "Factory Partnerships", "description": "Invite factories and negotiate contracts",
             "priority": 8, "icon": "factory"},
        ],
    },
    {
        "roleName": "LABOUR",
        "features": [
            {"title": "Job Feed", "description": "Browse open harvesting and maintenance jobs",
             "priority": 10, "icon": "briefcase"},
            {"title": "Applications", "description": "Apply for jobs and track their status",
             "priority": 9, "icon": "clipboard"},
            {"title": "Invitations", "description": "Accept or reject invitations from managers",
             "priority": 8, "icon": "mail"},
        ],
    },
    {
        "roleName": "FACTORY",
        "features": [
            {"title": "Farmer Bills", "description": "Issue bills for cane received from farmers",
             "priority": 10, "icon": "receipt"},
            {"title": "HHM Partnerships", "description": "Invite harvest managers and manage contracts",
             "priority": 9, "icon": "handshake"},
            {"title": "Maintenance Jobs", "description": "Post maintenance work for workers",
             "priority": 8, "icon": "wrench"},
        ],
    },
    {
        "roleName": "ADMIN",
        "isActive": False,
        "features": [
            {"title": "Index Maintenance", "description": "Create and repair collection indexes",
             "priority": 5, "icon": "database", "isEnabled": False},
        ],
    },
]


class PublicService:

    # =========================
    # FACTORIES
    # =========================
    @staticmethod
    def _factory_card(doc: dict, hhms: dict) -> dict:
        associated = doc.get("associatedHHMs") or []
        return {
            "id": str(doc["_id"]),
            "name": doc.get("factoryName") or doc.get("name"),
            "location": doc.get("factoryLocation") or doc.get("location"),
            "description": doc.get("factoryDescription"),
            "capacity": doc.get("capacity"),
            "specialization": doc.get("specialization"),
            "contactInfo": to_json(doc.get("contactInfo")),
            "operatingHours": to_json(doc.get("operatingHours")),
            "associatedHHMs": [hhms[h] for h in associated if h in hhms],
            "hhmCount": len(associated),
            "isActive": doc.get("isActive", True),
            "createdAt": to_json(doc.get("createdAt")),
            "updatedAt": to_json(doc.get("updatedAt")),
        }

    @staticmethod
    def _hhm_lookup(docs: list) -> dict:
        ids = {h for d in docs for h in (d.get("associatedHHMs") or [])}
        if not ids:
            return {}
        return {
            h["_id"]: {"_id": str(h["_id"]), "name": h.get("name"), "username": h.get("username"),
                       "email": h.get("email"), "phone": h.get("phone")}
            for h in mongo.db.users.find({"_id": {"$in": list(ids)}, "role": "HHM"})
        }

    @staticmethod
    def factories(args, page: int, limit: int):
        query = {"role": "Factory"}
        active = args.get("isActive", "true")
        if active != "all":
            query["isActive"] = active == "true"
        location = (args.get("location") or "").strip()
        if location:
            query["$or"] = [{"factoryLocation": icontains(location)}, {"location": icontains(location)}]

        field = args.get("sort") if args.get("sort") in FACTORY_SORTS else "createdAt"
        order = -1 if (args.get("order") or "desc") == "desc" else 1
        docs, pagination = paginate(
            mongo.db.users, query, page, limit,
            sort=[(field, order)], total_key="totalFactories",
        )
        hhms = PublicService._hhm_lookup(docs)
        return [PublicService._factory_card(d, hhms) for d in docs], pagination

    @staticmethod
    def factory(factory_id) -> dict:
        oid = to_object_id(factory_id, "factory ID")
        doc = mongo.db.users.find_one({"_id": oid, "role": "Factory"}, {"password": 0})
        if not doc:
            raise ServiceError("Factory not found", 404)
        return PublicService._factory_card(doc, PublicService._hhm_lookup([doc]))

    # =========================
    # ROLE FEATURES
    # =========================
    @staticmethod
    def _format_role(doc: dict, include_disabled: bool) -> dict:
        all_features = doc.get("features") or []
        features = all_features if include_disabled else [f for f in all_features if f.get("isEnabled", True)]
        features = sorted(features, key=lambda f: f.get("priority") or 1, reverse=True)
        return {
            "id": str(doc["_id"]),
            "roleName": doc.get("roleName"),
            "features": [
                {
                    "title": f.get("title"),
                    "description": f.get("description"),
                    "isEnabled": f.get("isEnabled", True),
                    "priority": f.get("priority") or 1,
                    "icon": f.get("icon"),
                }
                for f in features
            ],
            "totalFeatures": len(all_features),
            "enabledFeatures": len(features),
            "isActive": doc.get("isActive", True),
            "version": doc.get("version", 1),
            "createdAt": to_json(doc.get("createdAt")),
            "updatedAt": to_json(doc.get("updatedAt")),
        }

    @staticmethod
    def role_features(args) -> dict:
        query = {}
        active = args.get("isActive", "true")
        if active != "all":
            query["isActive"] = active == "true"
        if args.get("roleName"):
            query["roleName"] = args["roleName"].upper()

        include_disabled = args.get("includeDisabledFeatures", "false") == "true"
        order = -1 if args.get("order") == "desc" else 1
        docs = mongo.db.role_features.find(query).sort("roleName", order)
        roles = [PublicService._format_role(d, include_disabled) for d in docs]
        return {
            "roleFeatures": roles,
            "statistics": {
                "totalRoles": len(roles),
                "activeRoles": sum(1 for r in roles if r["isActive"]),
                "totalFeatures": sum(r["totalFeatures"] for r in roles),
                "totalEnabledFeatures": sum(r["enabledFeatures"] for r in roles),
            },
        }

    @staticmethod
    def role_feature(role_name: str, args) -> dict:
        name = (role_name or "").upper()
        if name not in ROLE_FEATURE_NAMES:
            raise ServiceError(f"Invalid role name. Must be one of: {', '.join(ROLE_FEATURE_NAMES)}", 400)
        doc = mongo.db.role_features.find_one({"roleName": name, "isActive": True})
        if not doc:
            raise ServiceError(f"Role features not found for role: {name}", 404)
        include_disabled = args.get("includeDisabledFeatures", "false") == "true"
        return PublicService._format_role(doc, include_disabled)

    @staticmethod
    def seed_role_features(entries=None) -> int:
        """Upsert the feature catalogue; returns how many roles were written."""
        written = 0
        now = utcnow()
        for entry in entries or DEFAULT_ROLE_FEATURES:
            model = RoleFeatureModel(**entry)
            body = model.model_dump()
            mongo.db.role_features.update_one(
                {"roleName": model.roleName},
                {"$set": {**body, "updatedAt": now}, "$setOnInsert": {"createdAt": now}},
                upsert=True,
            )
            written += 1
        current_app.logger.info("seeded %d role feature entries", written)
        return written
