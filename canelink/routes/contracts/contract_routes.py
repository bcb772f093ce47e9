# canelink/routes/contracts/contract_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import role_required
from canelink.services.contract_service import ContractService
from canelink.utils.responses import body, ok, page_args

contract_bp = Blueprint("contracts", __name__, url_prefix="/api/contracts")

party_only = role_required("HHM", "Factory")


# -----------------------------------------
# CREATE
# -----------------------------------------
@contract_bp.post("/request")
@role_required("HHM")
def request_contract():
    doc = ContractService.request(current_user, body())
    return ok(ContractService.row(doc), "Contract request created successfully", 201)


@contract_bp.post("/invite")
@role_required("Factory")
def invite_hhm():
    doc = ContractService.invite(current_user, body())
    return ok(ContractService.row(doc), "Factory invitation sent successfully", 201)


# -----------------------------------------
# OVERVIEWS (static paths before /<contract_id>)
# -----------------------------------------
@contract_bp.get("/my-contracts")
@party_only
def my_contracts():
    page, limit = page_args(default_limit=10)
    rows, pagination = ContractService.my_contracts(current_user, request.args, page, limit)
    return ok(rows, "Contracts retrieved successfully", pagination=pagination)


@contract_bp.get("/stats")
@party_only
def contract_stats():
    return ok(ContractService.stats(current_user), "Contract statistics retrieved successfully")


@contract_bp.get("/dashboard")
@party_only
def contract_dashboard():
    return ok(ContractService.dashboard(current_user), "Contract dashboard data retrieved successfully")


@contract_bp.get("/partner/<partner_id>")
@party_only
def partner_contracts(partner_id):
    rows = ContractService.with_partner(current_user, partner_id)
    return ok(rows, count=len(rows))


# -----------------------------------------
# NEGOTIATION
# -----------------------------------------
@contract_bp.put("/respond/<contract_id>")
@role_required("Factory")
def respond(contract_id):
    doc = ContractService.respond(current_user, contract_id, body())
    verb = "rejected" if doc["status"] == "factory_rejected" else "counter-offer sent"
    return ok(ContractService.row(doc), f"Contract {verb} successfully")


@contract_bp.put("/finalize/<contract_id>")
@role_required("HHM")
def finalize(contract_id):
    doc = ContractService.finalize(current_user, contract_id, body())
    verb = "accepted" if doc["status"] == "hhm_accepted" else "rejected"
    return ok(ContractService.row(doc), f"Contract {verb} successfully")


@contract_bp.put("/<contract_id>/accept-invite")
@role_required("HHM")
def accept_invite(contract_id):
    doc = ContractService.answer_invite(current_user, contract_id, body(), accept=True)
    return ok(ContractService.row(doc), "Factory invitation accepted successfully")


@contract_bp.put("/<contract_id>/reject-invite")
@role_required("HHM")
def reject_invite(contract_id):
    doc = ContractService.answer_invite(current_user, contract_id, body(), accept=False)
    return ok(ContractService.row(doc), "Factory invitation rejected")


# -----------------------------------------
# SINGLE CONTRACT
# -----------------------------------------
@contract_bp.get("/<contract_id>")
@party_only
def get_contract(contract_id):
    doc = ContractService.get_for_party(current_user, contract_id)
    return ok(ContractService.row(doc), "Contract retrieved successfully")


@contract_bp.put("/<contract_id>/extend")
@party_only
def extend(contract_id):
    doc = ContractService.extend(current_user, contract_id, body())
    return ok(ContractService.row(doc), "Contract deadline extended")


@contract_bp.put("/<contract_id>/cancel")
@party_only
def cancel(contract_id):
    doc = ContractService.cancel(current_user, contract_id, body())
    return ok(ContractService.row(doc), "Contract cancelled successfully")


@contract_bp.put("/<contract_id>/mark-delivered")
@party_only
def mark_delivered(contract_id):
    doc = ContractService.mark(current_user, contract_id, "delivered")
    return ok(ContractService.row(doc), "Contract marked as delivered successfully")


@contract_bp.put("/<contract_id>/mark-paid")
@party_only
def mark_paid(contract_id):
    doc = ContractService.mark(current_user, contract_id, "paid")
    return ok(ContractService.row(doc), "Contract marked as paid successfully")


@contract_bp.put("/<contract_id>/mark-completed")
@party_only
def mark_completed(contract_id):
    doc = ContractService.mark(current_user, contract_id, "completed")
    return ok(ContractService.row(doc), "Contract marked as completed successfully")
