# canelink/models/schedule_models.py

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from canelink.utils.helpers import parse_datetime


def _skill_list(v):
    if isinstance(v, str):
        return [s.strip() for s in v.split(",") if s.strip()]
    return v


class CreateScheduleModel(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=200)
    requiredSkills: List[str] = Field(min_length=1)
    workerCount: int = Field(ge=1, le=1000)
    wageOffered: float = Field(ge=0)
    startDate: datetime
    endDate: Optional[datetime] = None

    @field_validator("requiredSkills", mode="before")
    @classmethod
    def split_skills(cls, v):
        return _skill_list(v)

    @field_validator("startDate", "endDate", mode="before")
    @classmethod
    def parse_dates(cls, v):
        return parse_datetime(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.endDate and self.endDate <= self.startDate:
            raise ValueError("End date must be after start date")
        return self


class UpdateScheduleModel(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=200)
    requiredSkills: Optional[List[str]] = Field(default=None, min_length=1)
    workerCount: Optional[int] = Field(default=None, ge=1, le=1000)
    wageOffered: Optional[float] = Field(default=None, ge=0)
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    status: Optional[Literal["open", "closed"]] = None

    @field_validator("requiredSkills", mode="before")
    @classmethod
    def split_skills(cls, v):
        return _skill_list(v)

    @field_validator("startDate", "endDate", mode="before")
    @classmethod
    def parse_dates(cls, v):
        return parse_datetime(v)


class ApplyModel(BaseModel):
    scheduleId: str
    applicationMessage: Optional[str] = Field(default=None, max_length=500)
    workerSkills: Optional[List[str]] = None
    experience: Optional[str] = Field(default=None, max_length=200)
    expectedWage: Optional[float] = Field(default=None, ge=0)
    availability: Literal["full-time", "part-time", "flexible"] = "flexible"

    @field_validator("workerSkills", mode="before")
    @classmethod
    def split_skills(cls, v):
        return _skill_list(v)


class ReviewApplicationModel(BaseModel):
    status: Literal["approved", "rejected"]
    reviewNotes: Optional[str] = Field(default=None, max_length=300)


class JobFilterModel(BaseModel):
    """Query-string filters for the worker job feed."""
    skills: Optional[Union[List[str], str]] = None
    location: Optional[str] = None
    minWage: Optional[float] = None
    maxWage: Optional[float] = None
    startDate: Optional[datetime] = None

    @field_validator("skills", mode="before")
    @classmethod
    def split_skills(cls, v):
        return _skill_list(v)

    @field_validator("startDate", mode="before")
    @classmethod
    def parse_dates(cls, v):
        return parse_datetime(v)
