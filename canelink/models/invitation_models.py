# canelink/models/invitation_models.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from canelink.utils.helpers import parse_datetime

INVITATION_TYPES = ("hhm-to-worker", "factory-to-hhm", "hhm-to-factory")
INVITATION_STATUSES = ("pending", "accepted", "rejected", "expired")
PRIORITIES = ("low", "medium", "high", "urgent")

# refs that must be ObjectIds for each type; the rest are stored as null
REQUIRED_REFS = {
    "hhm-to-worker": ("hhmId", "workerId", "scheduleId"),
    "factory-to-hhm": ("factoryId", "hhmId"),
    "hhm-to-factory": ("hhmId", "factoryId"),
}

MAX_REMINDERS = 3
DEFAULT_EXPIRY_DAYS = 7


class _InvitationBody(BaseModel):
    personalMessage: Optional[str] = Field(default=None, max_length=500)
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    invitationReason: Optional[str] = Field(default=None, max_length=200)
    expiresAt: Optional[datetime] = None

    @field_validator("expiresAt", mode="before")
    @classmethod
    def parse_expiry(cls, v):
        return parse_datetime(v)


class WorkerInvitationModel(_InvitationBody):
    workerId: str
    scheduleId: str
    offeredWage: Optional[float] = Field(default=None, ge=0)


class FactoryInvitationModel(_InvitationBody):
    """HHM -> Factory."""
    factoryId: str


class MultiFactoryInvitationModel(_InvitationBody):
    factoryIds: List[str] = Field(min_length=1, max_length=50)


class HHMInvitationModel(_InvitationBody):
    """Factory -> HHM."""
    hhmId: str
    offeredWage: Optional[float] = Field(default=None, ge=0)


class InvitationResponseModel(BaseModel):
    status: Literal["accepted", "rejected"]
    responseMessage: Optional[str] = Field(default=None, max_length=300)

    @field_validator("status", mode="before")
    @classmethod
    def legacy_declined(cls, v):
        return "rejected" if v == "declined" else v


class ExtendInvitationModel(BaseModel):
    days: int = Field(default=3, ge=1, le=30)
