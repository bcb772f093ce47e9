# canelink/services/announcement_service.py

from flask import current_app

from canelink.errors import ServiceError
from canelink.models.announcement_models import PRIORITY_RANK, ROLE_AUDIENCE, AnnouncementModel
from canelink.mongo import mongo
from canelink.utils.helpers import to_json, utcnow

PREVIEW_CHARS = 100


class AnnouncementService:

    @staticmethod
    def time_ago(created, now) -> str:
        seconds = abs((now - created).total_seconds())
        for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
            n = int(seconds // size)
            if n > 0:
                return f"{n} {unit}{'s' if n > 1 else ''} ago"
        return "Just now"

    @staticmethod
    def row(doc: dict, now) -> dict:
        row = to_json(doc)
        content = doc.get("content") or ""
        row["contentPreview"] = (
            content[:PREVIEW_CHARS] + "..." if len(content) > PREVIEW_CHARS else content
        )
        row["isExpired"] = bool(doc.get("expiresAt") and doc["expiresAt"] < now)
        row["timeAgo"] = AnnouncementService.time_ago(doc["createdAt"], now) if doc.get("createdAt") else None
        return row

    @staticmethod
    def for_role(role: str) -> list:
        """Active, unexpired announcements for a role's audience or 'all'; most urgent first, then newest."""
        audience = ROLE_AUDIENCE.get(role)
        if not audience:
            raise ServiceError("No announcements for this role", 404)

        now = utcnow()
        docs = list(mongo.db.announcements.find({
            "targetAudience": {"$in": [audience, "all"]},
            "isActive": True,
            "$or": [{"expiresAt": None}, {"expiresAt": {"$gt": now}}],
        }))
        docs.sort(key=lambda d: d.get("createdAt") or now, reverse=True)
        docs.sort(key=lambda d: PRIORITY_RANK.get(d.get("priority"), 0), reverse=True)
        return [AnnouncementService.row(d, now) for d in docs]

    @staticmethod
    def create(payload: dict) -> dict:
        model = AnnouncementModel(**(payload or {}))
        now = utcnow()
        if model.expiresAt and model.expiresAt <= now:
            raise ServiceError("Expiry date must be in the future", 400)

        doc = model.model_dump()
        doc.update({"isActive": True, "createdAt": now, "updatedAt": now})
        doc["_id"] = mongo.db.announcements.insert_one(doc).inserted_id
        current_app.logger.info("announcement %s posted to %s", doc["_id"], doc["targetAudience"])
        return doc
