from datetime import timedelta

from bson import ObjectId

from canelink.services.invitation_service import InvitationService
from canelink.services.schedule_service import ScheduleService
from canelink.utils.helpers import utcnow
from conftest import future


def make_schedule(client, hhm, workers=2):
    res = client.post("/api/hhm/schedules", headers=hhm.headers, json={
        "title": "Ratoon harvest", "requiredSkills": ["cutting"], "workerCount": workers,
        "wageOffered": 700, "startDate": future(4),
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


def invite(client, hhm, worker, schedule, **extra):
    payload = {"workerId": worker.id, "scheduleId": schedule["_id"], "personalMessage": "Join us"}
    payload.update(extra)
    return client.post("/api/hhm/invitations", headers=hhm.headers, json=payload)


# ----------------------------------------
# hhm -> worker
# ----------------------------------------
def test_invite_worker_defaults(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    res = invite(client, hhm, worker, schedule)
    data = res.get_json()["data"]

    assert res.status_code == 201
    assert data["invitationType"] == "hhm-to-worker"
    assert data["factoryId"] is None
    assert data["offeredWage"] == 700
    assert data["daysUntilExpiration"] == 7
    assert data["worker"]["username"] == "sunil"


def test_duplicate_pending_invitation(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    assert invite(client, hhm, worker, schedule).status_code == 201
    res = invite(client, hhm, worker, schedule)
    assert res.status_code == 409


def test_invite_after_rejection_is_allowed(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "rejected"})
    assert res.status_code == 200
    assert invite(client, hhm, worker, schedule).status_code == 201


def test_invite_rejects_past_expiry(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    res = invite(client, hhm, worker, schedule, expiresAt="2020-01-01T00:00:00Z")
    assert res.status_code == 400


def test_cannot_invite_worker_who_applied(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    client.post("/api/worker/applications", headers=worker.headers,
                json={"scheduleId": schedule["_id"]})
    assert invite(client, hhm, worker, schedule).status_code == 409


def test_worker_accept_creates_approved_application(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]

    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "accepted", "responseMessage": "See you there"})
    body = res.get_json()
    assert res.status_code == 200
    assert body["data"]["invitation"]["status"] == "accepted"
    assert body["data"]["application"]["status"] == "approved"
    assert body["data"]["application"]["source"] == "invitation"

    sched = db.schedules.find_one({"_id": ObjectId(schedule["_id"])})
    assert sched["acceptedWorkersCount"] == 1
    assert sched["applicationsCount"] == 1


def test_worker_accept_approves_existing_application(client, db, hhm, register):
    worker = register("Worker", "anil", skills=["cutting"])
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    # applied after being invited
    client.post("/api/worker/applications", headers=worker.headers,
                json={"scheduleId": schedule["_id"]})

    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "accepted"})
    assert res.status_code == 200
    assert db.applications.count_documents({"workerId": ObjectId(worker.id)}) == 1
    assert db.applications.find_one({"workerId": ObjectId(worker.id)})["status"] == "approved"


def test_declined_is_stored_as_rejected(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "declined"})
    assert res.status_code == 200
    assert db.invitations.find_one({"_id": ObjectId(inv["_id"])})["status"] == "rejected"


def test_expired_invitation_cannot_be_answered(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    db.invitations.update_one({"_id": ObjectId(inv["_id"])},
                              {"$set": {"expiresAt": utcnow() - timedelta(hours=1)}})

    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "accepted"})
    assert res.status_code == 400
    assert res.get_json()["message"] == "This invitation has expired"
    assert db.invitations.find_one({"_id": ObjectId(inv["_id"])})["status"] == "expired"


def test_only_recipient_can_answer(client, hhm, worker, register):
    other = register("Worker", "anil")
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=other.headers,
                     json={"status": "accepted"})
    assert res.status_code == 403


def test_answered_invitation_is_final(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    url = f"/api/worker/invitations/{inv['_id']}"
    assert client.put(url, headers=worker.headers, json={"status": "rejected"}).status_code == 200
    assert client.put(url, headers=worker.headers, json={"status": "accepted"}).status_code == 400


def test_worker_directory_flags_invited(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    invite(client, hhm, worker, schedule)
    rows = client.get("/api/hhm/workers", headers=hhm.headers).get_json()["data"]
    assert rows[0]["isInvited"] is True
    assert rows[0]["invitationStatus"] == "pending"


def test_expire_overdue_marks_listing(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    db.invitations.update_one({"_id": ObjectId(inv["_id"])},
                              {"$set": {"expiresAt": utcnow() - timedelta(days=1)}})

    rows = client.get("/api/worker/invitations", headers=worker.headers).get_json()["data"]
    assert rows[0]["status"] == "expired"
    assert rows[0]["isExpired"] is True


# ----------------------------------------
# sender upkeep
# ----------------------------------------
def test_remind_max_three(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    url = f"/api/hhm/invitations/{inv['_id']}/remind"

    for n in (1, 2, 3):
        res = client.post(url, headers=hhm.headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["remindersSent"] == n
    res = client.post(url, headers=hhm.headers)
    assert res.status_code == 400
    assert db.invitations.find_one({"_id": ObjectId(inv["_id"])})["remindersSent"] == 3


def test_extend_moves_expiry(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    before = db.invitations.find_one({"_id": ObjectId(inv["_id"])})["expiresAt"]

    res = client.put(f"/api/hhm/invitations/{inv['_id']}/extend", headers=hhm.headers,
                     json={"days": 5})
    assert res.status_code == 200
    after = db.invitations.find_one({"_id": ObjectId(inv["_id"])})["expiresAt"]
    assert abs((after - before) - timedelta(days=5)) < timedelta(seconds=5)


def test_only_sender_can_extend(client, hhm, worker):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    res = client.put(f"/api/hhm/invitations/{inv['_id']}/extend", headers=worker.headers)
    assert res.status_code == 403  # role gate


# ----------------------------------------
# factory <-> hhm
# ----------------------------------------
def test_factory_invites_hhm_and_accept_links(client, db, hhm, factory):
    res = client.post("/api/factory/invite-hhm", headers=factory.headers,
                      json={"hhmId": hhm.id, "personalMessage": "Partner with us"})
    assert res.status_code == 201
    inv = res.get_json()["data"]
    assert inv["workerId"] is None and inv["scheduleId"] is None

    received = client.get("/api/hhm/factory-invitations", headers=hhm.headers).get_json()
    assert received["pagination"]["totalInvitations"] == 1

    res = client.put(f"/api/hhm/factory-invitations/{inv['_id']}", headers=hhm.headers,
                     json={"status": "accepted"})
    assert res.status_code == 200

    assert ObjectId(hhm.id) in db.users.find_one({"_id": ObjectId(factory.id)})["associatedHHMs"]
    assert ObjectId(factory.id) in db.users.find_one({"_id": ObjectId(hhm.id)})["associatedFactories"]

    assoc = client.get("/api/hhm/associated-factories", headers=hhm.headers).get_json()["data"]
    assert [f["_id"] for f in assoc] == [factory.id]

    # already partners
    res = client.post("/api/factory/invite-hhm", headers=factory.headers, json={"hhmId": hhm.id})
    assert res.status_code == 409


def test_partnership_types_do_not_collide(client, hhm, factory):
    assert client.post("/api/factory/invite-hhm", headers=factory.headers,
                       json={"hhmId": hhm.id}).status_code == 201
    assert client.post("/api/hhm/invite-factory", headers=hhm.headers,
                       json={"factoryId": factory.id}).status_code == 201


def test_factory_answers_hhm_invitation(client, hhm, factory):
    inv = client.post("/api/hhm/invite-factory", headers=hhm.headers,
                      json={"factoryId": factory.id}).get_json()["data"]

    rows = client.get("/api/factory/received-invitations", headers=factory.headers).get_json()["data"]
    assert rows[0]["hhm"]["username"] == "harvestco"

    res = client.put(f"/api/factory/invitations/{inv['_id']}", headers=factory.headers,
                     json={"status": "rejected", "responseMessage": "Capacity full"})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "rejected"


def test_invite_multiple_factories(client, hhm, factory, register):
    second = register("Factory", "mill2", factoryName="Krishna Sugars")
    client.post("/api/hhm/invite-factory", headers=hhm.headers, json={"factoryId": factory.id})

    res = client.post("/api/hhm/invite-multiple-factories", headers=hhm.headers,
                      json={"factoryIds": [factory.id, second.id, "bad-id"]})
    body = res.get_json()
    assert res.status_code == 201
    assert len(body["data"]["sent"]) == 1
    assert {f["factoryId"] for f in body["data"]["failed"]} == {factory.id, "bad-id"}


def test_invite_multiple_all_failed(client, hhm):
    res = client.post("/api/hhm/invite-multiple-factories", headers=hhm.headers,
                      json={"factoryIds": ["bad-id"]})
    assert res.status_code == 200
    assert res.get_json()["data"]["sent"] == []


def test_expire_overdue_service(app, db):
    db.invitations.insert_many([
        {"invitationType": "factory-to-hhm", "status": "pending",
         "expiresAt": utcnow() - timedelta(minutes=1)},
        {"invitationType": "factory-to-hhm", "status": "pending",
         "expiresAt": utcnow() + timedelta(days=1)},
    ])
    assert InvitationService.expire_overdue() == 1
    assert db.invitations.count_documents({"status": "expired"}) == 1


def test_overdue_invitation_frees_the_pair(client, db, hhm, worker):
    schedule = make_schedule(client, hhm)
    old = invite(client, hhm, worker, schedule).get_json()["data"]
    db.invitations.update_one({"_id": ObjectId(old["_id"])},
                              {"$set": {"expiresAt": utcnow() - timedelta(hours=1)}})

    res = invite(client, hhm, worker, schedule)
    assert res.status_code == 201
    assert db.invitations.find_one({"_id": ObjectId(old["_id"])})["status"] == "expired"
    assert db.invitations.count_documents({"status": "pending"}) == 1


def test_accept_losing_race_leaves_schedule(client, db, hhm, worker, monkeypatch):
    schedule = make_schedule(client, hhm)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    real_get = InvitationService.get_invitation

    def answered_meanwhile(invitation_id):
        doc = real_get(invitation_id)
        db.invitations.update_one({"_id": doc["_id"]}, {"$set": {"status": "rejected"}})
        return doc

    monkeypatch.setattr(InvitationService, "get_invitation", staticmethod(answered_meanwhile))
    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "accepted"})
    assert res.status_code == 409
    sched = db.schedules.find_one({"_id": ObjectId(schedule["_id"])})
    assert sched["acceptedWorkersCount"] == 0
    assert db.applications.count_documents({}) == 0


def test_accept_on_filled_schedule_reopens_invitation(client, db, hhm, worker, monkeypatch):
    schedule = make_schedule(client, hhm, workers=1)
    inv = invite(client, hhm, worker, schedule).get_json()["data"]
    real_increment = ScheduleService.increment_accepted

    def filled_meanwhile(sched):
        db.schedules.update_one({"_id": sched["_id"]}, {"$inc": {"acceptedWorkersCount": 1}})
        return real_increment(sched)

    monkeypatch.setattr(ScheduleService, "increment_accepted", staticmethod(filled_meanwhile))
    res = client.put(f"/api/worker/invitations/{inv['_id']}", headers=worker.headers,
                     json={"status": "accepted"})

    assert res.status_code == 409
    doc = db.invitations.find_one({"_id": ObjectId(inv["_id"])})
    assert doc["status"] == "pending"
    assert "respondedAt" not in doc
    assert db.applications.count_documents({}) == 0


def test_unknown_invitation_type_is_not_found(client, db, hhm):
    oid = db.invitations.insert_one({
        "invitationType": "worker-to-hhm", "hhmId": ObjectId(hhm.id), "status": "pending",
    }).inserted_id
    res = client.post(f"/api/hhm/invitations/{oid}/remind", headers=hhm.headers)
    assert res.status_code == 404
