# canelink/models/announcement_models.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from canelink.utils.helpers import parse_datetime

AUDIENCES = ("farmer", "hhm", "labour", "factory", "all")
PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3}

# user role -> audience tag
ROLE_AUDIENCE = {"Farmer": "farmer", "HHM": "hhm", "Worker": "labour", "Factory": "factory"}


class AnnouncementModel(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    author: str = "Platform Admin"
    targetAudience: List[Literal["farmer", "hhm", "labour", "factory", "all"]] = Field(
        default_factory=lambda: ["all"]
    )
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    expiresAt: Optional[datetime] = None

    @field_validator("title", "content", "author")
    @classmethod
    def strip_text(cls, v):
        return v.strip()

    @field_validator("targetAudience")
    @classmethod
    def dedupe_audience(cls, v):
        return list(dict.fromkeys(v)) or ["all"]

    @field_validator("expiresAt", mode="before")
    @classmethod
    def parse_expiry(cls, v):
        return parse_datetime(v)
