# canelink/services/invitation_service.py
"""
Invitations between role-typed parties.

    hhm-to-worker    HHM invites a Worker onto one of its schedules
    factory-to-hhm   Factory asks an HHM to partner
    hhm-to-factory   HHM asks a Factory to partner

Only the refs a type needs are set; the others stay null. At most one
pending invitation may exist per (worker, schedule) or (factory, hhm) pair
and type; the service checks first and the partial unique indexes in
canelink.indexes back it up.
"""
import math

from flask import current_app
from pymongo.errors import DuplicateKeyError

from canelink.errors import ServiceError
from canelink.models.invitation_models import (
    DEFAULT_EXPIRY_DAYS,
    MAX_REMINDERS,
    ExtendInvitationModel,
    FactoryInvitationModel,
    HHMInvitationModel,
    InvitationResponseModel,
    MultiFactoryInvitationModel,
    WorkerInvitationModel,
)
from canelink.mongo import mongo
from canelink.services.schedule_service import ScheduleService
from canelink.services.user_service import UserService
from canelink.utils.helpers import days_from_now, paginate, to_json, to_object_id, utcnow

# invitationType -> (sender field, recipient field)
PARTIES = {
    "hhm-to-worker": ("hhmId", "workerId"),
    "factory-to-hhm": ("factoryId", "hhmId"),
    "hhm-to-factory": ("hhmId", "factoryId"),
}


class InvitationService:

    # =========================
    # DERIVED VALUES
    # =========================
    @staticmethod
    def is_expired(doc: dict, now=None) -> bool:
        now = now or utcnow()
        if doc.get("status") == "expired":
            return True
        expires = doc.get("expiresAt")
        return bool(expires and expires < now)

    @staticmethod
    def derived(doc: dict, now=None) -> dict:
        now = now or utcnow()
        expires = doc.get("expiresAt")
        days_left = 0
        if expires and expires > now:
            days_left = math.ceil((expires - now).total_seconds() / 86400)

        response_hours = None
        if doc.get("respondedAt") and doc.get("sentAt"):
            response_hours = round((doc["respondedAt"] - doc["sentAt"]).total_seconds() / 3600, 2)

        return {
            "isExpired": InvitationService.is_expired(doc, now),
            "isResponded": doc.get("status") in ("accepted", "rejected"),
            "daysUntilExpiration": days_left,
            "responseTimeHours": response_hours,
        }

    @staticmethod
    def rows(docs: list) -> list:
        ids = []
        for d in docs:
            ids.extend([d.get("hhmId"), d.get("workerId"), d.get("factoryId")])
        users = UserService.summaries_by_id(ids)

        schedule_ids = [d["scheduleId"] for d in docs if d.get("scheduleId")]
        schedules = {
            s["_id"]: s
            for s in mongo.db.schedules.find(
                {"_id": {"$in": schedule_ids}},
                {"title": 1, "location": 1, "startDate": 1, "endDate": 1,
                 "wageOffered": 1, "status": 1, "workerCount": 1, "acceptedWorkersCount": 1},
            )
        } if schedule_ids else {}

        now = utcnow()
        rows = []
        for d in docs:
            row = to_json(d)
            row.update(InvitationService.derived(d, now))
            for ref, key in (("hhmId", "hhm"), ("workerId", "worker"), ("factoryId", "factory")):
                if d.get(ref):
                    row[key] = users.get(d[ref], {})
            if d.get("scheduleId"):
                row["schedule"] = to_json(schedules.get(d["scheduleId"]))
            rows.append(row)
        return rows

    @staticmethod
    def get_invitation(invitation_id) -> dict:
        oid = to_object_id(invitation_id, "invitation ID")
        doc = mongo.db.invitations.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Invitation not found", 404)
        return doc

    # =========================
    # CREATE
    # =========================
    @staticmethod
    def _base_doc(invitation_type: str, model, refs: dict) -> dict:
        now = utcnow()
        doc = {
            "invitationType": invitation_type,
            "hhmId": None,
            "workerId": None,
            "factoryId": None,
            "scheduleId": None,
            "status": "pending",
            "personalMessage": model.personalMessage,
            "offeredWage": getattr(model, "offeredWage", None),
            "priority": model.priority,
            "invitationReason": model.invitationReason,
            "expiresAt": model.expiresAt or days_from_now(DEFAULT_EXPIRY_DAYS),
            "remindersSent": 0,
            "sentAt": now,
            "createdAt": now,
            "updatedAt": now,
        }
        doc.update(refs)
        if doc["expiresAt"] <= now:
            raise ServiceError("Expiry date must be in the future", 400)
        return doc

    @staticmethod
    def _insert(doc: dict, duplicate_message: str) -> dict:
        sender, recipient = PARTIES[doc["invitationType"]]
        pending = {
            "invitationType": doc["invitationType"],
            recipient: doc[recipient],
            "status": "pending",
        }
        if doc["invitationType"] == "hhm-to-worker":
            pending["scheduleId"] = doc["scheduleId"]
        else:
            pending[sender] = doc[sender]

        # an overdue pending invitation no longer holds the pair
        now = utcnow()
        mongo.db.invitations.update_many(
            {**pending, "expiresAt": {"$lt": now}},
            {"$set": {"status": "expired", "updatedAt": now}},
        )
        if mongo.db.invitations.find_one(pending, {"_id": 1}):
            raise ServiceError(duplicate_message, 409)
        try:
            doc["_id"] = mongo.db.invitations.insert_one(doc).inserted_id
        except DuplicateKeyError:
            raise ServiceError(duplicate_message, 409)

        current_app.logger.info("%s invitation %s created", doc["invitationType"], doc["_id"])
        return doc

    @staticmethod
    def invite_worker(hhm: dict, payload: dict) -> dict:
        model = WorkerInvitationModel(**(payload or {}))
        schedule = ScheduleService.get_owned(hhm, model.scheduleId)
        if not ScheduleService.can_worker_apply(schedule):
            raise ServiceError("This schedule is not accepting workers", 400)

        worker = UserService.get_user(model.workerId, role="Worker")
        if not worker.get("isActive", True):
            raise ServiceError("Worker account is not active", 400)
        if mongo.db.applications.find_one(
            {"workerId": worker["_id"], "scheduleId": schedule["_id"]}, {"_id": 1}
        ):
            raise ServiceError("This worker has already applied for this schedule", 409)

        doc = InvitationService._base_doc("hhm-to-worker", model, {
            "hhmId": hhm["_id"],
            "workerId": worker["_id"],
            "scheduleId": schedule["_id"],
        })
        if doc["offeredWage"] is None:
            doc["offeredWage"] = schedule.get("wageOffered")
        return InvitationService._insert(
            doc, "A pending invitation already exists for this worker and schedule"
        )

    @staticmethod
    def invite_hhm(factory: dict, payload: dict) -> dict:
        model = HHMInvitationModel(**(payload or {}))
        hhm = UserService.get_user(model.hhmId, role="HHM")
        if factory["_id"] in (hhm.get("associatedFactories") or []):
            raise ServiceError("This HHM is already associated with your factory", 409)

        doc = InvitationService._base_doc("factory-to-hhm", model, {
            "factoryId": factory["_id"],
            "hhmId": hhm["_id"],
        })
        return InvitationService._insert(
            doc, "A pending invitation already exists for this HHM"
        )

    @staticmethod
    def invite_factory(hhm: dict, payload: dict) -> dict:
        model = FactoryInvitationModel(**(payload or {}))
        return InvitationService._invite_factory(hhm, model.factoryId, model)

    @staticmethod
    def _invite_factory(hhm: dict, factory_id, model) -> dict:
        factory = UserService.get_user(factory_id, role="Factory")
        if factory["_id"] in (hhm.get("associatedFactories") or []):
            raise ServiceError("You are already associated with this factory", 409)

        doc = InvitationService._base_doc("hhm-to-factory", model, {
            "hhmId": hhm["_id"],
            "factoryId": factory["_id"],
        })
        return InvitationService._insert(
            doc, "A pending invitation already exists for this factory"
        )

    @staticmethod
    def invite_factories(hhm: dict, payload: dict) -> dict:
        """Fan out hhm-to-factory invitations; one failure does not stop the rest."""
        model = MultiFactoryInvitationModel(**(payload or {}))
        sent, failed = [], []
        for factory_id in dict.fromkeys(model.factoryIds):
            try:
                sent.append(InvitationService._invite_factory(hhm, factory_id, model))
            except ServiceError as e:
                failed.append({"factoryId": factory_id, "reason": e.message})
        return {"sent": sent, "failed": failed}

    # =========================
    # READ
    # =========================
    @staticmethod
    def expire_overdue() -> int:
        """Mark pending invitations past their expiry as expired."""
        res = mongo.db.invitations.update_many(
            {"status": "pending", "expiresAt": {"$lt": utcnow()}},
            {"$set": {"status": "expired", "updatedAt": utcnow()}},
        )
        if res.modified_count:
            current_app.logger.info("expired %d invitations", res.modified_count)
        return res.modified_count

    @staticmethod
    def list_for(field: str, user: dict, invitation_type: str, args, page: int, limit: int):
        InvitationService.expire_overdue()
        query = {"invitationType": invitation_type, field: user["_id"]}
        if args.get("status"):
            query["status"] = args["status"]
        if args.get("priority"):
            query["priority"] = args["priority"]
        docs, pagination = paginate(
            mongo.db.invitations, query, page, limit,
            sort=[("createdAt", -1)], total_key="totalInvitations",
        )
        return InvitationService.rows(docs), pagination

    @staticmethod
    def mark_invited(hhm: dict, workers: list) -> list:
        """Flag directory rows for workers this HHM has a live invitation with."""
        ids = [to_object_id(w["_id"], "worker ID") for w in workers]
        latest = {}
        for inv in mongo.db.invitations.find(
            {"invitationType": "hhm-to-worker", "hhmId": hhm["_id"], "workerId": {"$in": ids}},
            {"workerId": 1, "status": 1},
        ).sort("createdAt", 1):
            latest[str(inv["workerId"])] = inv.get("status")
        for w in workers:
            status = latest.get(w["_id"])
            w["invitationStatus"] = status
            w["isInvited"] = status in ("pending", "accepted")
        return workers

    # =========================
    # RESPOND
    # =========================
    @staticmethod
    def _pending_for_recipient(user: dict, invitation_id, allowed_types) -> dict:
        doc = InvitationService.get_invitation(invitation_id)
        if doc.get("invitationType") not in allowed_types:
            raise ServiceError("Invitation not found", 404)
        _sender, recipient = PARTIES[doc["invitationType"]]
        if doc.get(recipient) != user["_id"]:
            raise ServiceError("You are not authorized to respond to this invitation", 403)
        if doc.get("status") != "pending":
            raise ServiceError(f"Invitation has already been {doc.get('status')}", 400)
        if InvitationService.is_expired(doc):
            mongo.db.invitations.update_one(
                {"_id": doc["_id"], "status": "pending"},
                {"$set": {"status": "expired", "updatedAt": utcnow()}},
            )
            raise ServiceError("This invitation has expired", 400)
        return doc

    @staticmethod
    def _close(doc: dict, status: str, message) -> dict:
        now = utcnow()
        updates = {
            "status": status,
            "responseMessage": message,
            "respondedAt": now,
            "updatedAt": now,
        }
        res = mongo.db.invitations.update_one(
            {"_id": doc["_id"], "status": "pending"}, {"$set": updates}
        )
        if res.matched_count == 0:
            raise ServiceError("Invitation was already answered", 409)
        doc.update(updates)
        return doc

    @staticmethod
    def respond_as_worker(worker: dict, invitation_id, payload: dict) -> dict:
        """
        Accepting fills a spot on the schedule and records an approved
        application (new, or the worker's existing one approved).
        """
        model = InvitationResponseModel(**(payload or {}))
        doc = InvitationService._pending_for_recipient(worker, invitation_id, ("hhm-to-worker",))

        schedule = existing = None
        if model.status == "accepted":
            schedule = ScheduleService.get_schedule(doc["scheduleId"])
            if not ScheduleService.can_worker_apply(schedule):
                raise ServiceError("This job is no longer available", 400)

            existing = mongo.db.applications.find_one(
                {"workerId": worker["_id"], "scheduleId": schedule["_id"]}
            )
            if existing and existing.get("status") == "approved":
                raise ServiceError("You are already approved for this job", 409)

        InvitationService._close(doc, model.status, model.responseMessage)
        if model.status != "accepted":
            return {"invitation": doc, "application": None}

        try:
            ScheduleService.increment_accepted(schedule)
        except ServiceError:
            InvitationService._reopen(doc)
            raise

        now = utcnow()
        if existing:
            mongo.db.applications.update_one(
                {"_id": existing["_id"]},
                {"$set": {"status": "approved", "reviewedAt": now, "updatedAt": now,
                          "reviewNotes": "Accepted via invitation"}},
            )
            application = {**existing, "status": "approved", "reviewedAt": now}
        else:
            application = {
                "workerId": worker["_id"],
                "scheduleId": schedule["_id"],
                "hhmId": schedule["hhmId"],
                "status": "approved",
                "applicationMessage": doc.get("personalMessage"),
                "workerSkills": worker.get("skills") or schedule.get("requiredSkills") or [],
                "expectedWage": doc.get("offeredWage"),
                "availability": "flexible",
                "source": "invitation",
                "invitationId": doc["_id"],
                "reviewedAt": now,
                "createdAt": now,
                "updatedAt": now,
            }
            application["_id"] = mongo.db.applications.insert_one(application).inserted_id
            mongo.db.schedules.update_one(
                {"_id": schedule["_id"]}, {"$inc": {"applicationsCount": 1}}
            )
        return {"invitation": doc, "application": application}

    @staticmethod
    def _reopen(doc: dict):
        mongo.db.invitations.update_one(
            {"_id": doc["_id"], "status": doc["status"]},
            {"$set": {"status": "pending", "updatedAt": utcnow()},
             "$unset": {"responseMessage": "", "respondedAt": ""}},
        )
        doc["status"] = "pending"
        doc.pop("responseMessage", None)
        doc.pop("respondedAt", None)

    @staticmethod
    def respond_partnership(user: dict, invitation_id, payload: dict) -> dict:
        """Factory <-> HHM. Accepting links both users."""
        model = InvitationResponseModel(**(payload or {}))
        allowed = ("factory-to-hhm",) if user.get("role") == "HHM" else ("hhm-to-factory",)
        doc = InvitationService._pending_for_recipient(user, invitation_id, allowed)

        InvitationService._close(doc, model.status, model.responseMessage)
        if model.status == "accepted":
            InvitationService.link_partners(doc["factoryId"], doc["hhmId"])
        return doc

    @staticmethod
    def link_partners(factory_id, hhm_id):
        now = utcnow()
        mongo.db.users.update_one(
            {"_id": factory_id},
            {"$addToSet": {"associatedHHMs": hhm_id}, "$set": {"updatedAt": now}},
        )
        mongo.db.users.update_one(
            {"_id": hhm_id},
            {"$addToSet": {"associatedFactories": factory_id}, "$set": {"updatedAt": now}},
        )

    # =========================
    # SENDER UPKEEP
    # =========================
    @staticmethod
    def _pending_for_sender(user: dict, invitation_id) -> dict:
        doc = InvitationService.get_invitation(invitation_id)
        parties = PARTIES.get(doc.get("invitationType"))
        if not parties:
            raise ServiceError("Invitation not found", 404)
        if doc.get(parties[0]) != user["_id"]:
            raise ServiceError("You can only manage invitations you sent", 403)
        if doc.get("status") != "pending":
            raise ServiceError("Only pending invitations can be changed", 400)
        return doc

    @staticmethod
    def extend(user: dict, invitation_id, payload: dict) -> dict:
        days = ExtendInvitationModel(**(payload or {})).days
        doc = InvitationService._pending_for_sender(user, invitation_id)
        base = max(doc.get("expiresAt") or utcnow(), utcnow())
        new_expiry = base + (days_from_now(days) - utcnow())
        mongo.db.invitations.update_one(
            {"_id": doc["_id"]}, {"$set": {"expiresAt": new_expiry, "updatedAt": utcnow()}}
        )
        doc["expiresAt"] = new_expiry
        return doc

    @staticmethod
    def remind(user: dict, invitation_id) -> dict:
        doc = InvitationService._pending_for_sender(user, invitation_id)
        if InvitationService.is_expired(doc):
            raise ServiceError("Cannot send a reminder for an expired invitation", 400)
        if doc.get("remindersSent", 0) >= MAX_REMINDERS:
            raise ServiceError(f"Maximum of {MAX_REMINDERS} reminders already sent", 400)

        now = utcnow()
        res = mongo.db.invitations.update_one(
            {"_id": doc["_id"], "remindersSent": {"$lt": MAX_REMINDERS}},
            {"$inc": {"remindersSent": 1}, "$set": {"lastReminderAt": now, "updatedAt": now}},
        )
        if res.matched_count == 0:
            raise ServiceError(f"Maximum of {MAX_REMINDERS} reminders already sent", 400)
        doc["remindersSent"] = doc.get("remindersSent", 0) + 1
        doc["lastReminderAt"] = now
        return doc
