# canelink/services/dashboard_service.py

from collections import defaultdict

from canelink.mongo import mongo
from canelink.services.application_service import ApplicationService
from canelink.services.invitation_service import InvitationService
from canelink.utils.helpers import to_json, utcnow


def _by_status(collection, query: dict) -> dict:
    counts = defaultdict(int)
    for doc in collection.find(query, {"status": 1}):
        counts[doc.get("status")] += 1
    return dict(counts)


class DashboardService:

    @staticmethod
    def hhm(hhm: dict) -> dict:
        db = mongo.db
        hid = hhm["_id"]
        InvitationService.expire_overdue()

        schedules = _by_status(db.schedules, {"hhmId": hid})
        applications = _by_status(db.applications, {"hhmId": hid})
        invitations = _by_status(db.invitations, {"hhmId": hid, "invitationType": "hhm-to-worker"})

        upcoming = list(
            db.schedules.find({"hhmId": hid, "status": "open", "startDate": {"$gte": utcnow()}})
            .sort("startDate", 1).limit(5)
        )
        recent_apps = list(
            db.applications.find({"hhmId": hid}).sort("createdAt", -1).limit(5)
        )
        return {
            "stats": {
                "totalSchedules": sum(schedules.values()),
                "openSchedules": schedules.get("open", 0),
                "closedSchedules": schedules.get("closed", 0),
                "totalApplications": sum(applications.values()),
                "pendingApplications": applications.get("pending", 0),
                "approvedApplications": applications.get("approved", 0),
                "invitationsSent": sum(invitations.values()),
                "pendingInvitations": invitations.get("pending", 0),
                "acceptedInvitations": invitations.get("accepted", 0),
                "associatedFactories": len(hhm.get("associatedFactories") or []),
                "factoryContracts": db.contracts.count_documents({"hhm_id": hid}),
                "farmerContractsPending": db.farmer_contracts.count_documents(
                    {"hhm_id": hid, "status": "farmer_pending"}
                ),
            },
            "upcomingSchedules": [to_json(s) for s in upcoming],
            "recentApplications": ApplicationService.rows(recent_apps),
        }

    @staticmethod
    def worker(worker: dict) -> dict:
        db = mongo.db
        wid = worker["_id"]
        InvitationService.expire_overdue()

        applications = _by_status(db.applications, {"workerId": wid})
        invitations = _by_status(db.invitations, {"workerId": wid, "invitationType": "hhm-to-worker"})

        approved_ids = [
            a["scheduleId"]
            for a in db.applications.find({"workerId": wid, "status": "approved"}, {"scheduleId": 1})
        ]
        upcoming = list(
            db.schedules.find({"_id": {"$in": approved_ids}, "startDate": {"$gte": utcnow()}})
            .sort("startDate", 1).limit(5)
        ) if approved_ids else []
        recent_apps = list(db.applications.find({"workerId": wid}).sort("createdAt", -1).limit(5))

        return {
            "stats": {
                "totalApplications": sum(applications.values()),
                "pendingApplications": applications.get("pending", 0),
                "approvedApplications": applications.get("approved", 0),
                "rejectedApplications": applications.get("rejected", 0),
                "totalInvitations": sum(invitations.values()),
                "pendingInvitations": invitations.get("pending", 0),
                "availability": worker.get("availability", "Available"),
                "openJobs": db.schedules.count_documents(
                    {"status": "open", "startDate": {"$gte": utcnow()}}
                ),
            },
            "upcomingJobs": [to_json(s) for s in upcoming],
            "recentApplications": ApplicationService.rows(recent_apps),
        }
