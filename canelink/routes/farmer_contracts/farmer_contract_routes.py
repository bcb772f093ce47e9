# canelink/routes/farmer_contracts/farmer_contract_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import login_required, role_required
from canelink.services.farmer_contract_service import FarmerContractService
from canelink.utils.responses import body, ok, page_args

farmer_contract_bp = Blueprint("farmer_contracts", __name__, url_prefix="/api/farmer-contracts")

party_only = role_required("Farmer", "HHM")


@farmer_contract_bp.post("/request")
@role_required("Farmer")
def request_contract():
    doc = FarmerContractService.request(current_user, body())
    return ok({"contract": FarmerContractService.rows([doc])[0]}, "Contract request sent successfully", 201)


@farmer_contract_bp.get("/my-contracts")
@login_required
def my_contracts():
    page, limit = page_args(default_limit=10)
    data = FarmerContractService.my_contracts(current_user, request.args, page, limit)
    return ok(data, "Contracts retrieved successfully")


# -----------------------------------------
# HHM DECISION (farmer exclusivity on accept)
# PUT /api/farmer-contracts/respond/<contract_id>
# -----------------------------------------
@farmer_contract_bp.put("/respond/<contract_id>")
@role_required("HHM")
def respond(contract_id):
    result = FarmerContractService.respond(current_user, contract_id, body())
    return ok(result, f"Contract {result['action']} successfully")


# -----------------------------------------
# DELIVERY / PAYMENT / COMPLETION
# -----------------------------------------
@farmer_contract_bp.put("/<contract_id>/mark-delivered")
@party_only
def mark_delivered(contract_id):
    doc = FarmerContractService.mark(current_user, contract_id, "delivered")
    return ok(doc, "Contract marked as delivered successfully")


@farmer_contract_bp.put("/<contract_id>/mark-paid")
@party_only
def mark_paid(contract_id):
    doc = FarmerContractService.mark(current_user, contract_id, "paid")
    return ok(doc, "Contract marked as paid successfully")


@farmer_contract_bp.put("/<contract_id>/mark-completed")
@party_only
def mark_completed(contract_id):
    doc = FarmerContractService.mark(current_user, contract_id, "completed")
    return ok(doc, "Contract marked as completed successfully")
