# canelink/models/listing_models.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from canelink.utils.helpers import parse_datetime

LISTING_STATUSES = ("active", "sold", "expired", "inactive")
ORDER_STATUSES = ("pending", "accepted", "rejected", "completed", "cancelled")
URGENCY_LEVELS = ("normal", "medium", "high", "urgent")


class CreateListingModel(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    crop_variety: str = Field(min_length=1, max_length=100)
    quantity_in_tons: float = Field(gt=0)
    expected_price_per_ton: float = Field(gt=0)
    harvest_availability_date: datetime
    location: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    images: List[str] = Field(default_factory=list)

    @field_validator("harvest_availability_date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_datetime(v)


class UpdateListingModel(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    crop_variety: Optional[str] = Field(default=None, min_length=1, max_length=100)
    quantity_in_tons: Optional[float] = Field(default=None, gt=0)
    expected_price_per_ton: Optional[float] = Field(default=None, gt=0)
    harvest_availability_date: Optional[datetime] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    images: Optional[List[str]] = None
    status: Optional[Literal["active", "sold", "expired", "inactive"]] = None

    @field_validator("harvest_availability_date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_datetime(v)


class ListingStatusModel(BaseModel):
    status: Literal["active", "sold", "expired", "inactive"]


class CreateOrderModel(BaseModel):
    listingId: str
    quantityWanted: float = Field(gt=0)
    proposedPrice: float = Field(gt=0)
    deliveryLocation: Optional[str] = Field(default=None, max_length=200)
    message: Optional[str] = Field(default=None, max_length=500)
    urgency: Literal["normal", "medium", "high", "urgent"] = "normal"
    totalAmount: Optional[float] = Field(default=None, gt=0)
    # accepted for compatibility, must match the listing owner when given
    farmerId: Optional[str] = None


class OrderStatusModel(BaseModel):
    status: Literal["accepted", "rejected", "completed", "cancelled"]
    responseMessage: Optional[str] = Field(default=None, max_length=500)
