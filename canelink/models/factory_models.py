# canelink/models/factory_models.py

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ROLE_FEATURE_NAMES = ("FARMER", "HHM", "LABOUR", "FACTORY", "ADMIN")


class BillModel(BaseModel):
    farmerId: str
    cropQuantity: float = Field(gt=0)
    totalAmount: float = Field(gt=0)


class FeatureModel(BaseModel):
    title: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=5, max_length=500)
    isEnabled: bool = True
    priority: int = Field(default=1, ge=1, le=10)
    icon: Optional[str] = Field(default=None, max_length=50)


class RoleFeatureModel(BaseModel):
    roleName: Literal["FARMER", "HHM", "LABOUR", "FACTORY", "ADMIN"]
    features: List[FeatureModel] = Field(default_factory=list)
    isActive: bool = True
    version: int = Field(default=1, ge=1)
