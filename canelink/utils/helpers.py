# canelink/utils/helpers.py
from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from bson import ObjectId

from canelink.errors import ServiceError


# =========================
# TIME
# =========================
def utcnow() -> datetime:
    """Naive UTC now; Mongo hands datetimes back naive, so we store them that way."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def days_from_now(days: float) -> datetime:
    return utcnow() + timedelta(days=days)


def parse_datetime(value: Any) -> Any:
    """Accepts datetime, date or ISO strings ('2026-11-01', '...T10:00:00Z')."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return as_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            return value  # let pydantic report it
    return value


# =========================
# IDS
# =========================
def to_object_id(value: Any, label: str = "ID") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise ServiceError(f"Invalid {label} format", 400)
    return ObjectId(str(value))


def optional_object_id(value: Any, label: str = "ID") -> Optional[ObjectId]:
    if value in (None, ""):
        return None
    return to_object_id(value, label)


# =========================
# QUERY HELPERS
# =========================
def icontains(text: str) -> dict:
    """Case-insensitive substring match, with user input escaped."""
    return {"$regex": re.escape(text.strip()), "$options": "i"}


def int_arg(args, name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    try:
        value = int(args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def float_arg(args, name: str) -> Optional[float]:
    raw = args.get(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ServiceError(f"{name} must be a number", 400)


def csv_arg(args, name: str) -> list:
    raw = args.get(name) or ""
    return [s.strip() for s in raw.split(",") if s.strip()]


def paginate(collection, query: dict, page: int, limit: int, sort=None, total_key: str = "total"):
    """
    Runs a paged find. Returns (docs, pagination) where pagination is
    {currentPage, totalPages, <total_key>, hasNextPage, hasPrevPage, limit}.
    """
    cursor = collection.find(query)
    if sort:
        cursor = cursor.sort(sort)
    docs = list(cursor.skip((page - 1) * limit).limit(limit))
    total = collection.count_documents(query)
    total_pages = math.ceil(total / limit) if limit else 0
    return docs, {
        "currentPage": page,
        "totalPages": total_pages,
        total_key: total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
        "limit": limit,
    }


# =========================
# SERIALIZATION
# =========================
def to_json(value: Any) -> Any:
    """ObjectId -> str, datetime -> ISO-8601 (UTC, 'Z'), recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return as_naive_utc(value).isoformat() + "Z"
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value
