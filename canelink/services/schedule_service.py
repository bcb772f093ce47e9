# canelink/services/schedule_service.py

import math

from flask import current_app

from canelink.errors import ServiceError
from canelink.models.schedule_models import (
    CreateScheduleModel,
    JobFilterModel,
    UpdateScheduleModel,
)
from canelink.mongo import mongo
from canelink.services.user_service import UserService
from canelink.utils.helpers import icontains, paginate, to_json, to_object_id, utcnow


class ScheduleService:

    # =========================
    # RULES
    # =========================
    @staticmethod
    def can_worker_apply(schedule: dict, now=None) -> bool:
        now = now or utcnow()
        start = schedule.get("startDate")
        return (
            schedule.get("status") == "open"
            and start is not None
            and start >= now
            and schedule.get("acceptedWorkersCount", 0) < schedule.get("workerCount", 0)
        )

    @staticmethod
    def spots_remaining(schedule: dict) -> int:
        return max(schedule.get("workerCount", 0) - schedule.get("acceptedWorkersCount", 0), 0)

    @staticmethod
    def increment_accepted(schedule: dict) -> dict:
        """
        Bump acceptedWorkersCount by one; closes the schedule when it fills.
        The filter pins the current count so two approvals cannot both take
        the last spot.
        """
        accepted = schedule.get("acceptedWorkersCount", 0)
        if accepted >= schedule.get("workerCount", 0):
            raise ServiceError("This schedule is already full", 400)

        updates = {"updatedAt": utcnow()}
        if accepted + 1 >= schedule["workerCount"]:
            updates["status"] = "closed"

        res = mongo.db.schedules.update_one(
            {"_id": schedule["_id"], "acceptedWorkersCount": accepted},
            {"$inc": {"acceptedWorkersCount": 1}, "$set": updates},
        )
        if res.matched_count == 0:
            raise ServiceError("Schedule was updated concurrently, please retry", 409)

        schedule.update(updates)
        schedule["acceptedWorkersCount"] = accepted + 1
        if updates.get("status") == "closed":
            current_app.logger.info("schedule %s is full and now closed", schedule["_id"])
        return schedule

    # =========================
    # LOOKUPS
    # =========================
    @staticmethod
    def get_schedule(schedule_id) -> dict:
        oid = to_object_id(schedule_id, "schedule ID")
        doc = mongo.db.schedules.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Schedule not found", 404)
        return doc

    @staticmethod
    def get_owned(owner: dict, schedule_id, job_type: str = None) -> dict:
        doc = ScheduleService.get_schedule(schedule_id)
        if doc.get("hhmId") != owner["_id"]:
            raise ServiceError("You can only manage your own schedules", 403)
        if job_type and doc.get("jobType") != job_type:
            raise ServiceError(f"This schedule is not a {job_type} job", 400)
        return doc

    # =========================
    # OWNER CRUD
    # =========================
    @staticmethod
    def create(owner: dict, payload: dict, job_type: str = "harvesting") -> dict:
        model = CreateScheduleModel(**(payload or {}))
        if model.startDate <= utcnow():
            raise ServiceError("Start date must be in the future", 400)

        now = utcnow()
        doc = {
            **model.model_dump(),
            "hhmId": owner["_id"],
            "jobType": job_type,
            "status": "open",
            "applicationsCount": 0,
            "acceptedWorkersCount": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = mongo.db.schedules.insert_one(doc).inserted_id
        return doc

    @staticmethod
    def list_for_owner(owner: dict, args, page: int, limit: int):
        query = {"hhmId": owner["_id"]}
        if args.get("status"):
            query["status"] = args["status"]
        if args.get("jobType"):
            query["jobType"] = args["jobType"]
        docs, pagination = paginate(
            mongo.db.schedules, query, page, limit,
            sort=[("startDate", 1)], total_key="totalSchedules",
        )
        return [to_json(d) for d in docs], pagination

    @staticmethod
    def detail(owner: dict, schedule_id) -> dict:
        doc = ScheduleService.get_owned(owner, schedule_id)
        apps = list(mongo.db.applications.find({"scheduleId": doc["_id"]}).sort("createdAt", -1))
        workers = UserService.summaries_by_id(a.get("workerId") for a in apps)

        out = to_json(doc)
        out["spotsRemaining"] = ScheduleService.spots_remaining(doc)
        out["applications"] = [
            {**to_json(a), "worker": workers.get(a.get("workerId"), {})} for a in apps
        ]
        return out

    @staticmethod
    def update(owner: dict, schedule_id, payload: dict) -> dict:
        doc = ScheduleService.get_owned(owner, schedule_id)
        updates = UpdateScheduleModel(**(payload or {})).model_dump(exclude_none=True)
        if not updates:
            raise ServiceError("No valid fields to update", 400)

        if doc.get("status") == "closed" and set(updates) - {"status"}:
            raise ServiceError("Closed schedules can only be reopened", 400)

        start = updates.get("startDate", doc.get("startDate"))
        end = updates.get("endDate", doc.get("endDate"))
        if "startDate" in updates and start <= utcnow():
            raise ServiceError("Start date must be in the future", 400)
        if end and start and end <= start:
            raise ServiceError("End date must be after start date", 400)

        count = updates.get("workerCount", doc.get("workerCount"))
        if count < doc.get("acceptedWorkersCount", 0):
            raise ServiceError("Worker count cannot be lower than accepted workers", 400)
        if updates.get("status") == "open" and doc.get("acceptedWorkersCount", 0) >= count:
            raise ServiceError("Cannot reopen a full schedule; raise workerCount first", 400)

        updates["updatedAt"] = utcnow()
        mongo.db.schedules.update_one({"_id": doc["_id"]}, {"$set": updates})
        return mongo.db.schedules.find_one({"_id": doc["_id"]})

    @staticmethod
    def delete(owner: dict, schedule_id) -> dict:
        doc = ScheduleService.get_owned(owner, schedule_id)
        approved = mongo.db.applications.count_documents(
            {"scheduleId": doc["_id"], "status": "approved"}
        )
        if approved:
            raise ServiceError(
                "Cannot delete a schedule with approved applications. Close it instead.", 400
            )

        apps = mongo.db.applications.delete_many({"scheduleId": doc["_id"]}).deleted_count
        invites = mongo.db.invitations.delete_many({"scheduleId": doc["_id"]}).deleted_count
        mongo.db.schedules.delete_one({"_id": doc["_id"]})
        current_app.logger.info(
            "schedule %s deleted with %d applications and %d invitations",
            doc["_id"], apps, invites,
        )
        return {"deletedApplications": apps, "deletedInvitations": invites}

    # =========================
    # WORKER FEED
    # =========================
    @staticmethod
    def job_feed(worker: dict, args, page: int, limit: int):
        filters = JobFilterModel(**{k: v for k, v in args.items() if v not in (None, "")})
        now = utcnow()
        query = {
            "status": "open",
            "startDate": {"$gte": max(filters.startDate or now, now)},
        }
        if filters.location:
            query["location"] = icontains(filters.location)
        wage = {}
        if filters.minWage is not None:
            wage["$gte"] = filters.minWage
        if filters.maxWage is not None:
            wage["$lte"] = filters.maxWage
        if wage:
            query["wageOffered"] = wage
        if filters.skills:
            query["$or"] = [{"requiredSkills": icontains(s)} for s in filters.skills]

        docs, pagination = paginate(
            mongo.db.schedules, query, page, limit,
            sort=[("startDate", 1)], total_key="totalJobs",
        )
        return ScheduleService._annotate_for_worker(worker, docs), pagination

    @staticmethod
    def job_detail(worker: dict, schedule_id) -> dict:
        doc = ScheduleService.get_schedule(schedule_id)
        return ScheduleService._annotate_for_worker(worker, [doc])[0]

    @staticmethod
    def matching_skills(required: list, skills: list) -> list:
        """Required skills that overlap a worker skill as a case-insensitive substring either way."""
        wanted = [s.lower() for s in skills]
        return [
            r for r in required
            if any(w in r.lower() or r.lower() in w for w in wanted)
        ]

    @staticmethod
    def recommendations(worker: dict, limit: int = 10) -> list:
        skills = [s for s in (worker.get("skills") or []) if s and s.strip()]
        if not skills:
            raise ServiceError(
                "Please update your profile with skills to get personalized recommendations", 400
            )

        docs = list(
            mongo.db.schedules.find({
                "status": "open",
                "startDate": {"$gte": utcnow()},
                "$or": [{"requiredSkills": icontains(s)} for s in skills],
            }).sort([("wageOffered", -1), ("createdAt", -1)]).limit(limit)
        )
        rows = ScheduleService._annotate_for_worker(worker, docs)
        for row, d in zip(rows, docs):
            required = d.get("requiredSkills") or []
            matching = ScheduleService.matching_skills(required, skills)
            row["matchingSkills"] = matching
            row["skillMatchScore"] = round(len(matching) / len(required), 2) if required else 0
        return rows

    @staticmethod
    def _annotate_for_worker(worker: dict, docs: list) -> list:
        ids = [d["_id"] for d in docs]
        applications = {
            a["scheduleId"]: a.get("status")
            for a in mongo.db.applications.find(
                {"workerId": worker["_id"], "scheduleId": {"$in": ids}}, {"scheduleId": 1, "status": 1}
            )
        } if ids else {}
        invitations = {
            i["scheduleId"]: i.get("status")
            for i in mongo.db.invitations.find(
                {"invitationType": "hhm-to-worker", "workerId": worker["_id"],
                 "scheduleId": {"$in": ids}},
                {"scheduleId": 1, "status": 1},
            ).sort("createdAt", 1)
        } if ids else {}
        owners = UserService.summaries_by_id(d.get("hhmId") for d in docs)

        now = utcnow()
        rows = []
        for d in docs:
            row = to_json(d)
            app_status = applications.get(d["_id"])
            row.update({
                "postedBy": owners.get(d.get("hhmId"), {}),
                "applicationStatus": app_status,
                "invitationStatus": invitations.get(d["_id"]),
                "hasApplied": app_status is not None,
                "canApply": app_status is None and ScheduleService.can_worker_apply(d, now),
                "spotsRemaining": ScheduleService.spots_remaining(d),
                "daysUntilStart": max(math.ceil((d["startDate"] - now).total_seconds() / 86400), 0)
                if d.get("startDate") else None,
            })
            rows.append(row)
        return rows
