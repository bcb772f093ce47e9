# canelink/services/contract_service.py
"""
HHM <-> Factory contracts.

Two ways in:
    HHM request     hhm_pending  -> factory_offer | factory_rejected
                    factory_offer -> hhm_accepted | hhm_rejected
    Factory invite  factory_invite -> hhm_accepted | hhm_rejected

Any open contract can be cancelled, extended or expire. Accepted contracts
then move through delivery, payment and completion.
"""
import math
from datetime import timedelta

from flask import current_app
from pymongo.errors import DuplicateKeyError

from canelink.errors import ServiceError
from canelink.models.contract_models import (
    ACTIVE_CONTRACT_STATUSES,
    FINAL_CONTRACT_STATUSES,
    OPEN_CONTRACT_STATUSES,
    CancelContractModel,
    ContractRequestModel,
    ExtendContractModel,
    FactoryDecisionModel,
    FactoryInviteModel,
    FinalizeModel,
    InviteResponseModel,
)
from canelink.mongo import mongo
from canelink.services.user_service import UserService
from canelink.utils.helpers import days_from_now, paginate, to_json, to_object_id, utcnow

REQUEST_EXPIRY_DAYS = 30
INVITE_EXPIRY_DAYS = 7

SORT_FIELDS = ("createdAt", "updatedAt", "expires_at", "contract_value", "priority", "status")


class ContractService:

    # =========================
    # SHAPES
    # =========================
    @staticmethod
    def derived(doc: dict, now=None) -> dict:
        now = now or utcnow()
        expires = doc.get("expires_at")
        days_left = None
        if expires:
            days_left = math.ceil((expires - now).total_seconds() / 86400)
        response_hours = None
        if doc.get("responded_at") and doc.get("createdAt"):
            response_hours = round((doc["responded_at"] - doc["createdAt"]).total_seconds() / 3600)
        return {
            "isExpired": bool(expires and expires < now),
            "isActive": doc.get("status") in ACTIVE_CONTRACT_STATUSES,
            "isFinalized": doc.get("status") in FINAL_CONTRACT_STATUSES,
            "daysUntilExpiration": days_left,
            "responseTimeHours": response_hours,
        }

    @staticmethod
    def rows(docs: list) -> list:
        users = UserService.summaries_by_id(
            [d.get("hhm_id") for d in docs] + [d.get("factory_id") for d in docs]
        )
        now = utcnow()
        out = []
        for d in docs:
            row = to_json(d)
            row.update(ContractService.derived(d, now))
            row["hhm"] = users.get(d.get("hhm_id"), {})
            row["factory"] = users.get(d.get("factory_id"), {})
            out.append(row)
        return out

    @staticmethod
    def row(doc: dict) -> dict:
        return ContractService.rows([doc])[0]

    # =========================
    # LOOKUPS
    # =========================
    @staticmethod
    def party_query(user: dict) -> dict:
        if user.get("role") == "HHM":
            return {"hhm_id": user["_id"]}
        if user.get("role") == "Factory":
            return {"factory_id": user["_id"]}
        raise ServiceError("Only HHM and Factory users can access contracts", 403)

    @staticmethod
    def get_contract(contract_id) -> dict:
        oid = to_object_id(contract_id, "contract ID")
        doc = mongo.db.contracts.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Contract not found", 404)
        return doc

    @staticmethod
    def get_for_party(user: dict, contract_id, action: str = "view") -> dict:
        doc = ContractService.get_contract(contract_id)
        field = "hhm_id" if user.get("role") == "HHM" else "factory_id"
        if doc.get(field) != user["_id"]:
            raise ServiceError(f"You are not authorized to {action} this contract", 403)
        return doc

    @staticmethod
    def _expire_if_due(doc: dict, message: str):
        if doc.get("expires_at") and doc["expires_at"] < utcnow():
            mongo.db.contracts.update_one(
                {"_id": doc["_id"], "status": doc["status"]},
                {"$set": {"status": "expired", "finalized_at": utcnow(), "updatedAt": utcnow()}},
            )
            raise ServiceError(message, 400)

    @staticmethod
    def _transition(doc: dict, from_status: str, updates: dict) -> dict:
        """Guarded status move; fails if someone else moved the contract first."""
        updates["updatedAt"] = utcnow()
        res = mongo.db.contracts.update_one(
            {"_id": doc["_id"], "status": from_status}, {"$set": updates}
        )
        if res.matched_count == 0:
            raise ServiceError("Contract was modified concurrently, please retry", 409)
        doc.update(updates)
        current_app.logger.info("contract %s -> %s", doc["_id"], doc.get("status"))
        return doc

    @staticmethod
    def _expire_pair(hhm_id, factory_id) -> int:
        """Overdue open contracts between the two parties no longer hold the pair."""
        now = utcnow()
        res = mongo.db.contracts.update_many(
            {"hhm_id": hhm_id, "factory_id": factory_id,
             "status": {"$in": list(OPEN_CONTRACT_STATUSES)}, "expires_at": {"$lt": now}},
            {"$set": {"status": "expired", "finalized_at": now, "updatedAt": now}},
        )
        return res.modified_count

    # =========================
    # CREATE
    # =========================
    @staticmethod
    def request(hhm: dict, payload: dict) -> dict:
        model = ContractRequestModel(**(payload or {}))
        factory = UserService.get_user(model.factory_id, role="Factory")

        ContractService._expire_pair(hhm["_id"], factory["_id"])
        existing = mongo.db.contracts.find_one({
            "hhm_id": hhm["_id"],
            "factory_id": factory["_id"],
            "status": {"$in": list(ACTIVE_CONTRACT_STATUSES)},
        }, {"_id": 1})
        if existing:
            raise ServiceError(
                "An active contract already exists between you and this factory", 409,
                details={"data": {"existingContractId": str(existing["_id"])}},
            )

        now = utcnow()
        doc = {
            "hhm_id": hhm["_id"],
            "factory_id": factory["_id"],
            "status": "hhm_pending",
            "initiated_by": "hhm",
            "hhm_request_details": model.hhm_request_details,
            "factory_allowance_list": None,
            "factory_requirements": None,
            "title": model.title,
            "initial_message": model.initial_message,
            "priority": model.priority,
            "contract_value": model.contract_value,
            "duration_days": model.duration_days,
            "revision_count": 0,
            "last_modified_by": "hhm",
            "expires_at": days_from_now(REQUEST_EXPIRY_DAYS),
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            doc["_id"] = mongo.db.contracts.insert_one(doc).inserted_id
        except DuplicateKeyError:
            raise ServiceError("An active contract already exists between you and this factory", 409)
        return doc

    @staticmethod
    def invite(factory: dict, payload: dict) -> dict:
        model = FactoryInviteModel(**(payload or {}))
        hhm = UserService.get_user(model.hhm_id, role="HHM")

        ContractService._expire_pair(hhm["_id"], factory["_id"])
        if mongo.db.contracts.find_one({
            "hhm_id": hhm["_id"],
            "factory_id": factory["_id"],
            "status": {"$in": list(OPEN_CONTRACT_STATUSES)},
        }, {"_id": 1}):
            raise ServiceError("An active contract or invite already exists with this HHM", 409)

        now = utcnow()
        doc = {
            "hhm_id": hhm["_id"],
            "factory_id": factory["_id"],
            "status": "factory_invite",
            "initiated_by": "factory",
            "hhm_request_details": None,
            "factory_allowance_list": None,
            "factory_requirements": model.factory_requirements,
            "title": model.title or "Partnership Invitation",
            "initial_message": model.initial_message,
            "priority": model.priority,
            "contract_value": model.contract_value,
            "duration_days": model.duration_days,
            "revision_count": 0,
            "last_modified_by": "factory",
            "expires_at": days_from_now(INVITE_EXPIRY_DAYS),
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = mongo.db.contracts.insert_one(doc).inserted_id
        return doc

    # =========================
    # NEGOTIATION
    # =========================
    @staticmethod
    def answer_invite(hhm: dict, contract_id, payload: dict, accept: bool) -> dict:
        model = InviteResponseModel(**(payload or {}))
        doc = ContractService.get_contract(contract_id)
        if doc.get("hhm_id") != hhm["_id"]:
            raise ServiceError("You are not authorized to respond to this invitation", 403)
        if doc.get("status") != "factory_invite":
            raise ServiceError("This invitation is no longer available for response", 400)
        if accept:
            ContractService._expire_if_due(doc, "This invitation has expired")

        now = utcnow()
        return ContractService._transition(doc, "factory_invite", {
            "status": "hhm_accepted" if accept else "hhm_rejected",
            "response_message": model.response_message,
            "responded_at": now,
            "finalized_at": now,
            "last_modified_by": "hhm",
        })

    @staticmethod
    def respond(factory: dict, contract_id, payload: dict) -> dict:
        model = FactoryDecisionModel(**(payload or {}))
        if model.decision == "offer" and not model.factory_allowance_list:
            raise ServiceError(
                "Factory allowance list is required when making an offer and must be an object", 400
            )

        doc = ContractService.get_contract(contract_id)
        if doc.get("factory_id") != factory["_id"]:
            raise ServiceError(
                "Contract not found or you are not authorized to respond to this contract", 404
            )
        if doc.get("status") != "hhm_pending":
            raise ServiceError(
                f"Cannot respond to contract in status: {doc.get('status')}. Expected: hhm_pending", 400
            )
        ContractService._expire_if_due(doc, "Cannot respond to an expired contract")

        now = utcnow()
        updates = {"responded_at": now, "last_modified_by": "factory"}
        if model.response_message:
            updates["response_message"] = model.response_message

        if model.decision == "reject":
            updates.update({"status": "factory_rejected", "finalized_at": now})
        else:
            updates.update({
                "status": "factory_offer",
                "factory_allowance_list": model.factory_allowance_list,
                "revision_count": doc.get("revision_count", 0) + 1,
            })
            if model.contract_value is not None:
                updates["contract_value"] = model.contract_value
            if model.duration_days is not None:
                updates["duration_days"] = model.duration_days
        return ContractService._transition(doc, "hhm_pending", updates)

    @staticmethod
    def finalize(hhm: dict, contract_id, payload: dict) -> dict:
        model = FinalizeModel(**(payload or {}))
        doc = ContractService.get_contract(contract_id)
        if doc.get("hhm_id") != hhm["_id"]:
            raise ServiceError(
                "Contract not found or you are not authorized to finalize this contract", 404
            )
        if doc.get("status") != "factory_offer":
            raise ServiceError(
                f"Cannot finalize contract in status: {doc.get('status')}. Expected: factory_offer", 400
            )
        ContractService._expire_if_due(doc, "Cannot finalize an expired contract")

        updates = {
            "status": "hhm_accepted" if model.decision == "accept" else "hhm_rejected",
            "finalized_at": utcnow(),
            "last_modified_by": "hhm",
        }
        if model.response_message:
            updates["response_message"] = model.response_message
        return ContractService._transition(doc, "factory_offer", updates)

    # =========================
    # READ
    # =========================
    @staticmethod
    def my_contracts(user: dict, args, page: int, limit: int):
        query = ContractService.party_query(user)
        for key in ("status", "priority", "initiated_by"):
            if args.get(key):
                query[key] = args[key]

        raw = args.get("sort") or "-createdAt"
        field = raw.lstrip("-")
        if field not in SORT_FIELDS:
            field = "createdAt"
        direction = -1 if raw.startswith("-") else 1

        docs, pagination = paginate(
            mongo.db.contracts, query, page, limit,
            sort=[(field, direction)], total_key="totalContracts",
        )
        return ContractService.rows(docs), pagination

    @staticmethod
    def stats(user: dict) -> dict:
        query = ContractService.party_query(user)
        contracts = mongo.db.contracts
        own = user["role"].lower()

        def count(**extra):
            return contracts.count_documents({**query, **extra})

        active = count(status={"$in": list(ACTIVE_CONTRACT_STATUSES)})
        accepted = count(status="hhm_accepted")
        rejected = count(status={"$in": ["hhm_rejected", "factory_rejected"]})
        expired = count(status="expired")
        cancelled = count(status="cancelled")
        completed = count(status="completed")

        return {
            "overview": {
                "total": count(),
                "active": active,
                "invites": count(status="factory_invite"),
                "accepted": accepted,
                "rejected": rejected,
                "expired": expired,
                "cancelled": cancelled,
                "completed": completed,
            },
            "byInitiator": {
                "initiated": count(initiated_by=own),
                "received": count(initiated_by={"$ne": own}),
            },
            "breakdown": {
                "pending": active,
                "closed": accepted + rejected + expired + cancelled + completed,
            },
        }

    @staticmethod
    def dashboard(user: dict) -> dict:
        query = ContractService.party_query(user)
        now = utcnow()
        contracts = mongo.db.contracts

        recent = list(
            contracts.find({**query, "createdAt": {"$gte": now - timedelta(days=30)}})
            .sort("createdAt", -1).limit(5)
        )
        expiring = list(
            contracts.find({
                **query,
                "status": {"$in": list(OPEN_CONTRACT_STATUSES)},
                "expires_at": {"$gt": now, "$lte": now + timedelta(days=7)},
            }).sort("expires_at", 1)
        )
        return {
            "summary": {
                "total": contracts.count_documents(query),
                "activeNegotiations": contracts.count_documents(
                    {**query, "status": {"$in": list(ACTIVE_CONTRACT_STATUSES)}}
                ),
                "recentActivity": len(recent),
                "expiringSoon": len(expiring),
            },
            "recentContracts": ContractService.rows(recent),
            "expiringContracts": ContractService.rows(expiring),
            "userRole": user.get("role"),
        }

    @staticmethod
    def with_partner(user: dict, partner_id) -> list:
        query = ContractService.party_query(user)
        partner = to_object_id(partner_id, "partner ID")
        query["factory_id" if user["role"] == "HHM" else "hhm_id"] = partner
        docs = list(mongo.db.contracts.find(query).sort("createdAt", -1))
        return ContractService.rows(docs)

    # =========================
    # UPKEEP
    # =========================
    @staticmethod
    def extend(user: dict, contract_id, payload: dict) -> dict:
        try:
            days = ExtendContractModel(**(payload or {})).days
        except ValueError:
            raise ServiceError("Extension days must be an integer between 1 and 30", 400)

        doc = ContractService.get_for_party(user, contract_id, "extend")
        if doc.get("status") in FINAL_CONTRACT_STATUSES:
            raise ServiceError("Cannot extend expiration for finalized contracts", 400)

        new_expiry = (doc.get("expires_at") or utcnow()) + timedelta(days=days)
        return ContractService._transition(doc, doc["status"], {"expires_at": new_expiry})

    @staticmethod
    def cancel(user: dict, contract_id, payload: dict) -> dict:
        reason = CancelContractModel(**(payload or {})).reason
        doc = ContractService.get_for_party(user, contract_id, "cancel")
        if doc.get("status") in FINAL_CONTRACT_STATUSES:
            raise ServiceError("Cannot cancel a finalized contract", 400)

        updates = {
            "status": "cancelled",
            "finalized_at": utcnow(),
            "last_modified_by": user["role"].lower(),
        }
        if reason:
            updates["response_message"] = reason
        return ContractService._transition(doc, doc["status"], updates)

    @staticmethod
    def mark(user: dict, contract_id, step: str) -> dict:
        """step is delivered | paid | completed."""
        doc = ContractService.get_for_party(user, contract_id, "update")
        now = utcnow()

        if step == "completed":
            if not doc.get("delivery_date"):
                raise ServiceError("Contract must be delivered before it can be marked as completed", 400)
            return ContractService._transition(doc, doc["status"], {"status": "completed"})

        if doc.get("status") != "hhm_accepted":
            raise ServiceError(f"Contract must be in accepted state to mark as {step}", 400)
        if step == "delivered":
            updates = {"delivery_date": now}
        else:
            updates = {"payment_date": now, "payment_status": "paid"}
        return ContractService._transition(doc, "hhm_accepted", updates)

    @staticmethod
    def expire_overdue() -> int:
        res = mongo.db.contracts.update_many(
            {"status": {"$in": list(OPEN_CONTRACT_STATUSES)}, "expires_at": {"$lt": utcnow()}},
            {"$set": {"status": "expired", "finalized_at": utcnow(), "updatedAt": utcnow()}},
        )
        return res.modified_count
