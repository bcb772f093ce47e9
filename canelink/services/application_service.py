# canelink/services/application_service.py

from flask import current_app
from pymongo.errors import DuplicateKeyError

from canelink.errors import ServiceError
from canelink.models.schedule_models import ApplyModel, ReviewApplicationModel
from canelink.mongo import mongo
from canelink.services.schedule_service import ScheduleService
from canelink.services.user_service import UserService
from canelink.utils.helpers import optional_object_id, paginate, to_json, to_object_id, utcnow


class ApplicationService:

    @staticmethod
    def rows(docs: list, with_schedule: bool = True) -> list:
        users = UserService.summaries_by_id(
            [d.get("workerId") for d in docs] + [d.get("hhmId") for d in docs]
        )
        schedules = {}
        if with_schedule and docs:
            schedules = {
                s["_id"]: s
                for s in mongo.db.schedules.find(
                    {"_id": {"$in": [d.get("scheduleId") for d in docs]}},
                    {"title": 1, "location": 1, "startDate": 1, "endDate": 1,
                     "wageOffered": 1, "status": 1, "jobType": 1, "requiredSkills": 1},
                )
            }
        rows = []
        for d in docs:
            row = to_json(d)
            row["worker"] = users.get(d.get("workerId"), {})
            row["hhm"] = users.get(d.get("hhmId"), {})
            if with_schedule:
                row["schedule"] = to_json(schedules.get(d.get("scheduleId")))
            rows.append(row)
        return rows

    @staticmethod
    def get_application(application_id) -> dict:
        oid = to_object_id(application_id, "application ID")
        doc = mongo.db.applications.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Application not found", 404)
        return doc

    # =========================
    # WORKER
    # =========================
    @staticmethod
    def apply(worker: dict, payload: dict) -> dict:
        model = ApplyModel(**(payload or {}))
        schedule = ScheduleService.get_schedule(model.scheduleId)

        if not ScheduleService.can_worker_apply(schedule):
            raise ServiceError("This job is no longer accepting applications", 400)
        if mongo.db.applications.find_one(
            {"workerId": worker["_id"], "scheduleId": schedule["_id"]}, {"_id": 1}
        ):
            raise ServiceError("You have already applied for this job", 409)
        if worker.get("availability", "Available") != "Available":
            raise ServiceError("Set your availability to Available before applying", 400)

        skills = model.workerSkills or worker.get("skills") or []
        if not skills:
            raise ServiceError("At least one skill is required to apply", 400)

        now = utcnow()
        doc = {
            "workerId": worker["_id"],
            "scheduleId": schedule["_id"],
            "hhmId": schedule["hhmId"],
            "status": "pending",
            "applicationMessage": model.applicationMessage,
            "workerSkills": skills,
            "experience": model.experience or worker.get("workExperience"),
            "expectedWage": model.expectedWage,
            "availability": model.availability,
            "source": "application",
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            doc["_id"] = mongo.db.applications.insert_one(doc).inserted_id
        except DuplicateKeyError:
            raise ServiceError("You have already applied for this job", 409)

        mongo.db.schedules.update_one({"_id": schedule["_id"]}, {"$inc": {"applicationsCount": 1}})
        return doc

    @staticmethod
    def for_worker(worker: dict, args, page: int, limit: int):
        query = {"workerId": worker["_id"]}
        if args.get("status"):
            query["status"] = args["status"]
        docs, pagination = paginate(
            mongo.db.applications, query, page, limit,
            sort=[("createdAt", -1)], total_key="totalApplications",
        )
        return ApplicationService.rows(docs), pagination

    @staticmethod
    def withdraw(worker: dict, application_id) -> dict:
        doc = ApplicationService.get_application(application_id)
        if doc.get("workerId") != worker["_id"]:
            raise ServiceError("You can only withdraw your own applications", 403)
        if doc.get("status") != "pending":
            raise ServiceError(f"Cannot withdraw an application that is {doc.get('status')}", 400)

        res = mongo.db.applications.delete_one({"_id": doc["_id"], "status": "pending"})
        if res.deleted_count == 0:
            raise ServiceError("Application was already reviewed", 409)
        mongo.db.schedules.update_one(
            {"_id": doc["scheduleId"], "applicationsCount": {"$gt": 0}},
            {"$inc": {"applicationsCount": -1}},
        )
        return doc

    # =========================
    # OWNER (HHM / Factory)
    # =========================
    @staticmethod
    def for_owner(owner: dict, args, page: int, limit: int, job_type: str = None):
        query = {"hhmId": owner["_id"]}
        if args.get("status"):
            query["status"] = args["status"]
        schedule_ids = None
        if job_type:
            schedule_ids = [s["_id"] for s in mongo.db.schedules.find(
                {"hhmId": owner["_id"], "jobType": job_type}, {"_id": 1}
            )]
        schedule_id = optional_object_id(args.get("scheduleId"), "schedule ID")
        if schedule_id:
            schedule_ids = [schedule_id] if schedule_ids is None or schedule_id in schedule_ids else []
        if schedule_ids is not None:
            query["scheduleId"] = {"$in": schedule_ids}

        docs, pagination = paginate(
            mongo.db.applications, query, page, limit,
            sort=[("createdAt", -1)], total_key="totalApplications",
        )
        return ApplicationService.rows(docs), pagination

    @staticmethod
    def for_schedule(owner: dict, schedule_id) -> dict:
        schedule = ScheduleService.get_owned(owner, schedule_id)
        docs = list(mongo.db.applications.find({"scheduleId": schedule["_id"]}).sort("createdAt", -1))
        rows = ApplicationService.rows(docs, with_schedule=False)
        by_status = {"pending": 0, "approved": 0, "rejected": 0}
        for d in docs:
            by_status[d.get("status")] = by_status.get(d.get("status"), 0) + 1
        return {"schedule": to_json(schedule), "applications": rows, "summary": by_status}

    @staticmethod
    def review(owner: dict, application_id, payload: dict, job_type: str = None) -> dict:
        model = ReviewApplicationModel(**(payload or {}))
        doc = ApplicationService.get_application(application_id)
        schedule = mongo.db.schedules.find_one({"_id": doc.get("scheduleId")})

        if not schedule or schedule.get("hhmId") != owner["_id"]:
            raise ServiceError("You can only review applications for your own schedules", 403)
        if job_type and schedule.get("jobType") != job_type:
            raise ServiceError(f"You can only review applications for your own {job_type} jobs", 403)
        if doc.get("status") != "pending":
            raise ServiceError(f"Application has already been {doc.get('status')}", 400)

        if model.status == "approved" and schedule.get("status") != "open":
            raise ServiceError("Cannot approve applications for a closed schedule", 400)

        updates = {
            "status": model.status,
            "reviewNotes": model.reviewNotes,
            "reviewedAt": utcnow(),
            "updatedAt": utcnow(),
        }
        res = mongo.db.applications.update_one(
            {"_id": doc["_id"], "status": "pending"}, {"$set": updates}
        )
        if res.matched_count == 0:
            raise ServiceError("Application was already reviewed", 409)

        if model.status == "approved":
            try:
                ScheduleService.increment_accepted(schedule)
            except ServiceError:
                mongo.db.applications.update_one(
                    {"_id": doc["_id"], "status": "approved"},
                    {"$set": {"status": "pending", "updatedAt": utcnow()},
                     "$unset": {"reviewNotes": "", "reviewedAt": ""}},
                )
                raise

        doc.update(updates)
        current_app.logger.info("application %s %s", doc["_id"], model.status)
        return {"application": doc, "schedule": schedule}
