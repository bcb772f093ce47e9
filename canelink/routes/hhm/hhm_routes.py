# canelink/routes/hhm/hhm_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.models.user_models import AvailabilityModel
from canelink.security import role_required
from canelink.services.application_service import ApplicationService
from canelink.services.dashboard_service import DashboardService
from canelink.services.factory_service import FactoryService
from canelink.services.invitation_service import InvitationService
from canelink.services.schedule_service import ScheduleService
from canelink.services.user_service import UserService
from canelink.utils.responses import body, ok, page_args

hhm_bp = Blueprint("hhm", __name__, url_prefix="/api/hhm")

hhm_only = role_required("HHM")


# -----------------------------------------
# PROFILE
# -----------------------------------------
@hhm_bp.get("/profile")
@hhm_only
def get_profile():
    return ok(UserService.public_user(current_user))


@hhm_bp.put("/profile")
@hhm_only
def update_profile():
    user = UserService.update_profile(current_user, body())
    return ok(UserService.public_user(user), "Profile updated successfully")


@hhm_bp.get("/dashboard")
@hhm_only
def dashboard():
    return ok(DashboardService.hhm(current_user))


# -----------------------------------------
# SCHEDULES
# -----------------------------------------
@hhm_bp.post("/schedules")
@hhm_only
def create_schedule():
    doc = ScheduleService.create(current_user, body())
    return ok(doc, "Schedule created successfully", 201)


@hhm_bp.get("/schedules")
@hhm_only
def list_schedules():
    page, limit = page_args()
    schedules, pagination = ScheduleService.list_for_owner(current_user, request.args, page, limit)
    return ok(schedules, pagination=pagination)


@hhm_bp.get("/schedules/<schedule_id>")
@hhm_only
def get_schedule(schedule_id):
    return ok(ScheduleService.detail(current_user, schedule_id))


@hhm_bp.put("/schedules/<schedule_id>")
@hhm_only
def update_schedule(schedule_id):
    doc = ScheduleService.update(current_user, schedule_id, body())
    return ok(doc, "Schedule updated successfully")


@hhm_bp.delete("/schedules/<schedule_id>")
@hhm_only
def delete_schedule(schedule_id):
    result = ScheduleService.delete(current_user, schedule_id)
    return ok(result, "Schedule deleted successfully")


@hhm_bp.get("/schedules/<schedule_id>/applications")
@hhm_only
def schedule_applications(schedule_id):
    return ok(ApplicationService.for_schedule(current_user, schedule_id))


# -----------------------------------------
# WORKERS
# -----------------------------------------
@hhm_bp.get("/workers")
@hhm_only
def list_workers():
    page, limit = page_args()
    workers, pagination = UserService.directory(
        "Worker", request.args, page, limit, total_key="totalWorkers"
    )
    return ok(InvitationService.mark_invited(current_user, workers), pagination=pagination)


@hhm_bp.put("/workers/<worker_id>/availability")
@hhm_only
def set_worker_availability(worker_id):
    availability = AvailabilityModel(**body()).availability
    worker = UserService.set_worker_availability(worker_id, availability)
    return ok(UserService.public_user(worker), f"Worker marked as {availability}")


# -----------------------------------------
# WORKER INVITATIONS
# -----------------------------------------
@hhm_bp.post("/invitations")
@hhm_only
def invite_worker():
    doc = InvitationService.invite_worker(current_user, body())
    return ok(InvitationService.rows([doc])[0], "Invitation sent successfully", 201)


@hhm_bp.get("/invitations")
@hhm_only
def list_worker_invitations():
    page, limit = page_args()
    rows, pagination = InvitationService.list_for(
        "hhmId", current_user, "hhm-to-worker", request.args, page, limit
    )
    return ok(rows, pagination=pagination)


@hhm_bp.put("/invitations/<invitation_id>/extend")
@hhm_only
def extend_invitation(invitation_id):
    doc = InvitationService.extend(current_user, invitation_id, body())
    return ok(doc, "Invitation expiry extended")


@hhm_bp.post("/invitations/<invitation_id>/remind")
@hhm_only
def remind_invitation(invitation_id):
    doc = InvitationService.remind(current_user, invitation_id)
    return ok(doc, "Reminder sent")


# -----------------------------------------
# APPLICATIONS
# -----------------------------------------
@hhm_bp.get("/applications")
@hhm_only
def list_applications():
    page, limit = page_args()
    rows, pagination = ApplicationService.for_owner(current_user, request.args, page, limit)
    return ok(rows, pagination=pagination)


@hhm_bp.put("/applications/<application_id>")
@hhm_only
def review_application(application_id):
    result = ApplicationService.review(current_user, application_id, body())
    return ok(result, f"Application {result['application']['status']} successfully")


# -----------------------------------------
# FACTORY RELATIONSHIPS
# -----------------------------------------
@hhm_bp.post("/invite-factory")
@hhm_only
def invite_factory():
    doc = InvitationService.invite_factory(current_user, body())
    return ok(InvitationService.rows([doc])[0], "Invitation sent to factory", 201)


@hhm_bp.post("/invite-multiple-factories")
@hhm_only
def invite_multiple_factories():
    result = InvitationService.invite_factories(current_user, body())
    sent, failed = result["sent"], result["failed"]
    return ok(
        {"sent": InvitationService.rows(sent), "failed": failed},
        f"Sent {len(sent)} invitations, {len(failed)} failed",
        201 if sent else 200,
    )


@hhm_bp.get("/my-factory-invitations")
@hhm_only
def sent_factory_invitations():
    page, limit = page_args()
    rows, pagination = InvitationService.list_for(
        "hhmId", current_user, "hhm-to-factory", request.args, page, limit
    )
    return ok(rows, pagination=pagination)


@hhm_bp.get("/factory-invitations")
@hhm_only
def received_factory_invitations():
    page, limit = page_args()
    rows, pagination = InvitationService.list_for(
        "hhmId", current_user, "factory-to-hhm", request.args, page, limit
    )
    return ok(rows, pagination=pagination)


@hhm_bp.put("/factory-invitations/<invitation_id>")
@hhm_only
def respond_factory_invitation(invitation_id):
    doc = InvitationService.respond_partnership(current_user, invitation_id, body())
    return ok(doc, f"Invitation {doc['status']} successfully")


@hhm_bp.get("/associated-factories")
@hhm_only
def associated_factories():
    return ok(FactoryService.associated(current_user, "associatedFactories"))
