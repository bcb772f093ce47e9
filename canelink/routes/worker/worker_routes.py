# canelink/routes/worker/worker_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import role_required
from canelink.services.application_service import ApplicationService
from canelink.services.dashboard_service import DashboardService
from canelink.services.invitation_service import InvitationService
from canelink.services.schedule_service import ScheduleService
from canelink.services.user_service import UserService
from canelink.utils.helpers import int_arg
from canelink.utils.responses import body, ok, page_args

worker_bp = Blueprint("worker", __name__, url_prefix="/api/worker")

worker_only = role_required("Worker")


# -----------------------------------------
# PROFILE
# -----------------------------------------
@worker_bp.get("/profile")
@worker_only
def get_profile():
    return ok(UserService.public_user(current_user))


@worker_bp.put("/profile")
@worker_only
def update_profile():
    user = UserService.update_profile(current_user, body())
    return ok(UserService.public_user(user), "Profile updated successfully")


@worker_bp.get("/dashboard")
@worker_only
def dashboard():
    return ok(DashboardService.worker(current_user))


# -----------------------------------------
# JOB FEED
# -----------------------------------------
@worker_bp.get("/jobs")
@worker_only
def job_feed():
    page, limit = page_args()
    jobs, pagination = ScheduleService.job_feed(current_user, request.args, page, limit)
    return ok(jobs, pagination=pagination)


@worker_bp.get("/jobs/recommendations")
@worker_only
def job_recommendations():
    limit = int_arg(request.args, "limit", 10, maximum=50)
    rows = ScheduleService.recommendations(current_user, limit)
    return ok(
        rows,
        f"Found {len(rows)} job recommendations based on your skills",
        workerSkills=current_user.get("skills") or [],
    )


@worker_bp.get("/jobs/<schedule_id>")
@worker_only
def job_detail(schedule_id):
    return ok(ScheduleService.job_detail(current_user, schedule_id))


# -----------------------------------------
# APPLICATIONS
# -----------------------------------------
@worker_bp.post("/applications")
@worker_only
def apply():
    doc = ApplicationService.apply(current_user, body())
    return ok(doc, "Application submitted successfully", 201)


@worker_bp.get("/applications")
@worker_only
def my_applications():
    page, limit = page_args()
    rows, pagination = ApplicationService.for_worker(current_user, request.args, page, limit)
    return ok(rows, pagination=pagination)


@worker_bp.delete("/applications/<application_id>")
@worker_only
def withdraw_application(application_id):
    ApplicationService.withdraw(current_user, application_id)
    return ok(message="Application withdrawn successfully")


# -----------------------------------------
# INVITATIONS
# -----------------------------------------
@worker_bp.get("/invitations")
@worker_only
def my_invitations():
    page, limit = page_args()
    rows, pagination = InvitationService.list_for(
        "workerId", current_user, "hhm-to-worker", request.args, page, limit
    )
    return ok(rows, pagination=pagination)


@worker_bp.put("/invitations/<invitation_id>")
@worker_only
def respond_invitation(invitation_id):
    result = InvitationService.respond_as_worker(current_user, invitation_id, body())
    status = result["invitation"]["status"]
    return ok(result, f"Invitation {status} successfully")
