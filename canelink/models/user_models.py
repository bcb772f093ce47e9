# canelink/models/user_models.py

from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
PHONE_PATTERN = r"^\+?[\d\s\-\(\)]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterModel(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    phone: str = Field(min_length=5, max_length=20, pattern=PHONE_PATTERN)
    email: str = Field(pattern=EMAIL_PATTERN)
    role: str
    password: str = Field(min_length=6)

    @field_validator("name", "username", "phone", "email", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("username", "email")
    @classmethod
    def lowercase(cls, v: str) -> str:
        return v.lower()


class LoginModel(BaseModel):
    identifier: str = Field(min_length=1)
    password: str = Field(min_length=1)


# Role profile fields accepted on registration and profile update.
# Anything outside these sets (password, role, _id, createdAt ...) is ignored.
COMMON_PROFILE_FIELDS = {"name", "phone", "location"}

ROLE_PROFILE_FIELDS = {
    "Farmer": {
        "farmSize", "farmingExperience", "farmingMethods", "equipment",
        "certifications", "cropTypes", "irrigationType",
    },
    "Factory": {
        "factoryName", "factoryLocation", "factoryDescription", "capacity",
        "experience", "specialization", "contactInfo", "operatingHours",
    },
    "HHM": {
        "managementExperience", "teamSize", "managementOperations",
        "servicesOffered",
    },
    "Worker": {
        "skills", "workPreferences", "wageRate", "availability",
        "workExperience",
    },
}


class ContactInfoModel(BaseModel):
    website: Optional[str] = None
    fax: Optional[str] = None
    tollfree: Optional[str] = None
    landline: Optional[str] = None


class WorkerProfileModel(BaseModel):
    """Extra checks for the few Worker fields with a fixed shape."""
    skills: Optional[Union[List[str], str]] = None
    availability: Optional[str] = Field(default=None, pattern=r"^(Available|Unavailable)$")
    wageRate: Optional[Union[float, str]] = None

    @field_validator("skills")
    @classmethod
    def split_skills(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v


class AvailabilityModel(BaseModel):
    availability: str = Field(pattern=r"^(Available|Unavailable)$")
