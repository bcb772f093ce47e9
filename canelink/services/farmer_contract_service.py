# canelink/services/farmer_contract_service.py

from datetime import timedelta

from flask import current_app

from canelink.errors import ServiceError
from canelink.models.contract_models import (
    FARMER_CONTRACT_STATUSES,
    FarmerContractDecisionModel,
    FarmerContractRequestModel,
)
from canelink.mongo import mongo
from canelink.services.user_service import UserService
from canelink.utils.helpers import paginate, to_json, to_object_id, utcnow

SORT_FIELDS = ("createdAt", "updatedAt", "duration_days", "status")


class FarmerContractService:

    @staticmethod
    def grace_deadline(doc: dict):
        return doc["createdAt"] + timedelta(days=doc.get("grace_period_days", 2))

    @staticmethod
    def rows(docs: list) -> list:
        users = UserService.summaries_by_id(
            [d.get("farmer_id") for d in docs] + [d.get("hhm_id") for d in docs]
        )
        out = []
        for d in docs:
            row = to_json(d)
            row["farmer"] = users.get(d.get("farmer_id"), {})
            row["hhm"] = users.get(d.get("hhm_id"), {})
            if d.get("status") == "farmer_pending" and d.get("createdAt"):
                row["graceDeadline"] = to_json(FarmerContractService.grace_deadline(d))
            out.append(row)
        return out

    @staticmethod
    def get_contract(contract_id) -> dict:
        oid = to_object_id(contract_id, "contract ID")
        doc = mongo.db.farmer_contracts.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Contract not found", 404)
        return doc

    @staticmethod
    def request(farmer: dict, payload: dict) -> dict:
        model = FarmerContractRequestModel(**(payload or {}))
        hhm_id = to_object_id(model.hhm_id, "HHM ID")
        if hhm_id == farmer["_id"]:
            raise ServiceError("Cannot create contract with yourself", 400)

        hhm = UserService.get_user(hhm_id, role="HHM")
        if not hhm.get("isActive", True):
            raise ServiceError("HHM account is not active", 400)

        existing = mongo.db.farmer_contracts.find_one(
            {"farmer_id": farmer["_id"], "hhm_id": hhm["_id"], "status": "farmer_pending"},
            {"_id": 1},
        )
        if existing:
            raise ServiceError(
                "A pending contract already exists between you and this HHM", 409,
                details={"existing_contract_id": str(existing["_id"])},
            )

        now = utcnow()
        doc = {
            "farmer_id": farmer["_id"],
            "hhm_id": hhm["_id"],
            "contract_details": model.contract_details,
            "duration_days": model.duration_days,
            "grace_period_days": model.grace_period_days,
            "status": "farmer_pending",
            "delivery_date": None,
            "payment_date": None,
            "payment_status": "pending",
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = mongo.db.farmer_contracts.insert_one(doc).inserted_id
        return doc

    @staticmethod
    def my_contracts(user: dict, args, page: int, limit: int) -> dict:
        query = {"$or": [{"farmer_id": user["_id"]}, {"hhm_id": user["_id"]}]}
        status = args.get("status")
        if status:
            if status not in FARMER_CONTRACT_STATUSES:
                raise ServiceError(
                    "Invalid status. Valid options: " + ", ".join(FARMER_CONTRACT_STATUSES), 400
                )
            query["status"] = status

        raw = args.get("sort") or "-createdAt"
        field = raw.lstrip("-") if raw.lstrip("-") in SORT_FIELDS else "createdAt"
        docs, pagination = paginate(
            mongo.db.farmer_contracts, query, page, limit,
            sort=[(field, -1 if raw.startswith("-") else 1)], total_key="totalContracts",
        )

        rows = FarmerContractService.rows(docs)
        as_farmer = [r for r, d in zip(rows, docs) if d.get("farmer_id") == user["_id"]]
        as_hhm = [r for r, d in zip(rows, docs) if d.get("hhm_id") == user["_id"]]
        by_status = {s: 0 for s in FARMER_CONTRACT_STATUSES}
        for d in docs:
            by_status[d.get("status")] = by_status.get(d.get("status"), 0) + 1

        return {
            "contracts": rows,
            "contractsAsFarmer": as_farmer,
            "contractsAsHHM": as_hhm,
            "pagination": pagination,
            "filters": {"status": status or "all", "sort": raw},
            "summary": {
                "total": len(rows),
                "asFarmer": len(as_farmer),
                "asHHM": len(as_hhm),
                "byStatus": by_status,
            },
        }

    @staticmethod
    def respond(hhm: dict, contract_id, payload: dict) -> dict:
        """
        Reject, or accept with farmer exclusivity: every other pending
        contract from the same farmer is auto-cancelled.
        """
        decision = FarmerContractDecisionModel(**(payload or {})).decision
        doc = FarmerContractService.get_contract(contract_id)
        if doc.get("hhm_id") != hhm["_id"]:
            raise ServiceError("You are not authorized to respond to this contract", 403)
        if doc.get("status") != "farmer_pending":
            raise ServiceError(
                f"Contract is already {doc.get('status')}. Only pending contracts can be responded to.", 400
            )

        contracts = mongo.db.farmer_contracts
        now = utcnow()
        if FarmerContractService.grace_deadline(doc) < now:
            contracts.update_one(
                {"_id": doc["_id"], "status": "farmer_pending"},
                {"$set": {"status": "auto_cancelled", "updatedAt": now}},
            )
            raise ServiceError("Contract grace period has passed; it was auto-cancelled", 400)

        new_status = "hhm_accepted" if decision == "accept" else "hhm_rejected"
        res = contracts.update_one(
            {"_id": doc["_id"], "status": "farmer_pending"},
            {"$set": {"status": new_status, "respondedAt": now, "updatedAt": now}},
        )
        if res.matched_count == 0:
            raise ServiceError("Contract was modified concurrently, please retry", 409)
        doc.update({"status": new_status, "respondedAt": now, "updatedAt": now})

        if decision == "reject":
            return {"action": "rejected", "contract": doc}

        cancelled = contracts.update_many(
            {"farmer_id": doc["farmer_id"], "status": "farmer_pending", "_id": {"$ne": doc["_id"]}},
            {"$set": {"status": "auto_cancelled", "updatedAt": now}},
        ).modified_count
        current_app.logger.info(
            "farmer contract %s accepted; %d other pending contracts auto-cancelled",
            doc["_id"], cancelled,
        )
        return {
            "action": "accepted",
            "contract": doc,
            "farmerExclusivity": {
                "autoCancelledContracts": cancelled,
                "message": (
                    f"{cancelled} other pending contracts from this farmer were automatically cancelled"
                    if cancelled else "No other pending contracts from this farmer to cancel"
                ),
            },
        }

    @staticmethod
    def mark(user: dict, contract_id, step: str) -> dict:
        doc = FarmerContractService.get_contract(contract_id)
        if user["_id"] not in (doc.get("farmer_id"), doc.get("hhm_id")):
            raise ServiceError("Access denied. You are not a party to this contract", 403)

        now = utcnow()
        if step == "completed":
            if not doc.get("delivery_date"):
                raise ServiceError("Contract must be delivered before it can be marked as completed", 400)
            updates = {"status": "completed"}
        elif doc.get("status") != "hhm_accepted":
            raise ServiceError(f"Contract must be in accepted state to mark as {step}", 400)
        elif step == "delivered":
            updates = {"delivery_date": now}
        else:
            updates = {"payment_date": now, "payment_status": "paid"}

        updates["updatedAt"] = now
        mongo.db.farmer_contracts.update_one({"_id": doc["_id"]}, {"$set": updates})
        doc.update(updates)
        return doc

    @staticmethod
    def cancel_stale(now=None) -> int:
        """Auto-cancel pending contracts whose grace period has run out."""
        now = now or utcnow()
        stale = [
            d["_id"]
            for d in mongo.db.farmer_contracts.find(
                {"status": "farmer_pending"}, {"createdAt": 1, "grace_period_days": 1}
            )
            if d.get("createdAt") and FarmerContractService.grace_deadline(d) < now
        ]
        if not stale:
            return 0
        res = mongo.db.farmer_contracts.update_many(
            {"_id": {"$in": stale}, "status": "farmer_pending"},
            {"$set": {"status": "auto_cancelled", "updatedAt": now}},
        )
        current_app.logger.info("auto-cancelled %d stale farmer contracts", res.modified_count)
        return res.modified_count
