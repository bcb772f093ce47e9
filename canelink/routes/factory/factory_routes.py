# canelink/routes/factory/factory_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import role_required
from canelink.services.application_service import ApplicationService
from canelink.services.factory_service import FactoryService
from canelink.services.invitation_service import InvitationService
from canelink.services.schedule_service import ScheduleService
from canelink.services.user_service import UserService
from canelink.utils.responses import body, ok, page_args

factory_bp = Blueprint("factory", __name__, url_prefix="/api/factory")

factory_only = role_required("Factory")


# -----------------------------------------
# PROFILE
# -----------------------------------------
@factory_bp.get("/profile")
@factory_only
def get_profile():
    return ok(UserService.public_user(current_user))


@factory_bp.put("/profile")
@factory_only
def update_profile():
    user = UserService.update_profile(current_user, body())
    return ok(UserService.public_user(user), "Profile updated successfully")


# -----------------------------------------
# BILLS
# -----------------------------------------
@factory_bp.post("/bills")
@factory_only
def create_bill():
    doc = FactoryService.create_bill(current_user, body())
    return ok(doc, "Bill created successfully", 201)


@factory_bp.get("/bills")
@factory_only
def list_bills():
    page, limit = page_args()
    bills, pagination, totals = FactoryService.factory_bills(current_user, request.args, page, limit)
    return ok(bills, pagination=pagination, totals=totals)


# -----------------------------------------
# MAINTENANCE JOBS
# -----------------------------------------
@factory_bp.post("/maintenance-jobs")
@factory_only
def create_maintenance_job():
    doc = ScheduleService.create(current_user, body(), job_type="maintenance")
    return ok(doc, "Maintenance job created successfully", 201)


@factory_bp.get("/maintenance-jobs")
@factory_only
def list_maintenance_jobs():
    page, limit = page_args()
    args = request.args.to_dict()
    args["jobType"] = "maintenance"
    jobs, pagination = ScheduleService.list_for_owner(current_user, args, page, limit)
    return ok(jobs, pagination=pagination)


@factory_bp.get("/maintenance-applications")
@factory_only
def maintenance_applications():
    page, limit = page_args()
    rows, pagination = ApplicationService.for_owner(
        current_user, request.args, page, limit, job_type="maintenance"
    )
    return ok(rows, pagination=pagination)


@factory_bp.put("/maintenance-applications/<application_id>")
@factory_only
def review_maintenance_application(application_id):
    result = ApplicationService.review(current_user, application_id, body(), job_type="maintenance")
    return ok(result, f"Application {result['application']['status']} successfully")


# -----------------------------------------
# HHM DIRECTORY + INVITATIONS
# -----------------------------------------
@factory_bp.get("/hhms")
@factory_only
def list_hhms():
    page, limit = page_args()
    hhms, pagination = UserService.directory("HHM", request.args, page, limit, total_key="totalHHMs")
    associated = {str(h) for h in current_user.get("associatedHHMs") or []}
    for h in hhms:
        h["isAssociated"] = h["_id"] in associated
    return ok(hhms, pagination=pagination)


@factory_bp.post("/invite-hhm")
@factory_only
def invite_hhm():
    doc = InvitationService.invite_hhm(current_user, body())
    return ok(InvitationService.rows([doc])[0], "Invitation sent to HHM", 201)


@factory_bp.get("/invitations")
@factory_only
def sent_invitations():
    page, limit = page_args()
    rows, pagination = InvitationService.list_for(
        "factoryId", current_user, "factory-to-hhm", request.args, page, limit
    )
    return ok(rows, pagination=pagination)


@factory_bp.get("/received-invitations")
@factory_only
def received_invitations():
    page, limit = page_args()
    rows, pagination = InvitationService.list_for(
        "factoryId", current_user, "hhm-to-factory", request.args, page, limit
    )
    return ok(rows, pagination=pagination)


@factory_bp.put("/invitations/<invitation_id>")
@factory_only
def respond_invitation(invitation_id):
    doc = InvitationService.respond_partnership(current_user, invitation_id, body())
    return ok(doc, f"Invitation {doc['status']} successfully")


@factory_bp.put("/invitations/<invitation_id>/extend")
@factory_only
def extend_invitation(invitation_id):
    doc = InvitationService.extend(current_user, invitation_id, body())
    return ok(doc, "Invitation expiry extended")


@factory_bp.post("/invitations/<invitation_id>/remind")
@factory_only
def remind_invitation(invitation_id):
    doc = InvitationService.remind(current_user, invitation_id)
    return ok(doc, "Reminder sent")


@factory_bp.get("/associated-hhms")
@factory_only
def associated_hhms():
    return ok(FactoryService.associated(current_user, "associatedHHMs"))
