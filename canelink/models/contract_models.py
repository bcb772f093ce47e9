# canelink/models/contract_models.py

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

# HHM <-> Factory
CONTRACT_STATUSES = (
    "factory_invite", "hhm_pending", "factory_offer", "factory_rejected",
    "hhm_accepted", "hhm_rejected", "expired", "cancelled", "completed",
)
ACTIVE_CONTRACT_STATUSES = ("hhm_pending", "factory_offer")
OPEN_CONTRACT_STATUSES = ("factory_invite", "hhm_pending", "factory_offer")
FINAL_CONTRACT_STATUSES = (
    "hhm_accepted", "hhm_rejected", "factory_rejected", "expired",
    "cancelled", "completed",
)

# Farmer -> HHM
FARMER_CONTRACT_STATUSES = (
    "farmer_pending", "hhm_accepted", "hhm_rejected", "auto_cancelled", "completed",
)


class _ContractTerms(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    initial_message: Optional[str] = Field(default=None, max_length=500)
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    contract_value: Optional[float] = Field(default=None, ge=0)
    duration_days: Optional[int] = Field(default=None, ge=1)


class ContractRequestModel(_ContractTerms):
    factory_id: str
    hhm_request_details: Dict[str, Any]


class FactoryInviteModel(_ContractTerms):
    hhm_id: str
    factory_requirements: Optional[Dict[str, Any]] = None


class InviteResponseModel(BaseModel):
    response_message: Optional[str] = Field(default=None, max_length=500)


class FactoryDecisionModel(BaseModel):
    decision: Literal["offer", "reject"]
    factory_allowance_list: Optional[Dict[str, Any]] = None
    response_message: Optional[str] = Field(default=None, max_length=500)
    contract_value: Optional[float] = Field(default=None, ge=0)
    duration_days: Optional[int] = Field(default=None, ge=1)


class FinalizeModel(BaseModel):
    decision: Literal["accept", "reject"]
    response_message: Optional[str] = Field(default=None, max_length=500)


class ExtendContractModel(BaseModel):
    days: int = Field(default=7, ge=1, le=30, strict=True)


class CancelContractModel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class FarmerContractRequestModel(BaseModel):
    hhm_id: str
    contract_details: Dict[str, Any]
    duration_days: int = Field(ge=1, le=365)
    grace_period_days: int = Field(default=2, ge=1, le=30)


class FarmerContractDecisionModel(BaseModel):
    decision: Literal["accept", "reject"]
