from bson import ObjectId

from canelink.services.application_service import ApplicationService
from conftest import future


def create_schedule(client, owner, **overrides):
    payload = {
        "title": "Block 7 harvest",
        "location": "Kolhapur",
        "requiredSkills": "cutting, loading",
        "workerCount": 2,
        "wageOffered": 650,
        "startDate": future(3),
        "endDate": future(6),
    }
    payload.update(overrides)
    res = client.post("/api/hhm/schedules", headers=owner.headers, json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


def apply(client, worker, schedule):
    return client.post("/api/worker/applications", headers=worker.headers,
                       json={"scheduleId": schedule["_id"], "applicationMessage": "Ready"})


def test_schedule_requires_future_start(client, hhm):
    res = client.post("/api/hhm/schedules", headers=hhm.headers, json={
        "requiredSkills": ["cutting"], "workerCount": 1, "wageOffered": 500,
        "startDate": "2020-01-01",
    })
    assert res.status_code == 400


def test_schedule_end_before_start(client, hhm):
    res = client.post("/api/hhm/schedules", headers=hhm.headers, json={
        "requiredSkills": ["cutting"], "workerCount": 1, "wageOffered": 500,
        "startDate": future(5), "endDate": future(2),
    })
    assert res.status_code == 400


def test_create_splits_skills(client, hhm):
    schedule = create_schedule(client, hhm)
    assert schedule["requiredSkills"] == ["cutting", "loading"]
    assert schedule["status"] == "open"
    assert schedule["acceptedWorkersCount"] == 0


def test_job_feed_marks_applied(client, hhm, worker):
    schedule = create_schedule(client, hhm)
    assert apply(client, worker, schedule).status_code == 201

    feed = client.get("/api/worker/jobs", headers=worker.headers).get_json()
    job = feed["data"][0]
    assert job["hasApplied"] is True
    assert job["canApply"] is False
    assert job["applicationStatus"] == "pending"
    assert job["postedBy"]["username"] == "harvestco"
    assert feed["pagination"]["totalJobs"] == 1


def test_duplicate_application(client, hhm, worker):
    schedule = create_schedule(client, hhm)
    assert apply(client, worker, schedule).status_code == 201
    assert apply(client, worker, schedule).status_code == 409


def test_unavailable_worker_cannot_apply(client, hhm, worker):
    schedule = create_schedule(client, hhm)
    res = client.put(f"/api/hhm/workers/{worker.id}/availability", headers=hhm.headers,
                     json={"availability": "Unavailable"})
    assert res.status_code == 200
    assert apply(client, worker, schedule).status_code == 400


def test_approvals_fill_and_close_schedule(client, db, hhm, register):
    schedule = create_schedule(client, hhm, workerCount=1)
    w1 = register("Worker", "sunil", skills=["cutting"])
    w2 = register("Worker", "anil", skills=["cutting"])
    a1 = apply(client, w1, schedule).get_json()["data"]
    a2 = apply(client, w2, schedule).get_json()["data"]

    res = client.put(f"/api/hhm/applications/{a1['_id']}", headers=hhm.headers,
                     json={"status": "approved"})
    assert res.status_code == 200
    assert res.get_json()["message"] == "Application approved successfully"

    doc = db.schedules.find_one({"_id": ObjectId(schedule["_id"])})
    assert doc["acceptedWorkersCount"] == 1
    assert doc["status"] == "closed"

    res = client.put(f"/api/hhm/applications/{a2['_id']}", headers=hhm.headers,
                     json={"status": "approved"})
    assert res.status_code == 400


def test_review_twice(client, hhm, worker):
    schedule = create_schedule(client, hhm)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    url = f"/api/hhm/applications/{app_id}"
    assert client.put(url, headers=hhm.headers, json={"status": "rejected"}).status_code == 200
    assert client.put(url, headers=hhm.headers, json={"status": "approved"}).status_code == 400


def test_other_hhm_cannot_review(client, hhm, worker, register):
    other = register("HHM", "otherhhm")
    schedule = create_schedule(client, hhm)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    res = client.put(f"/api/hhm/applications/{app_id}", headers=other.headers,
                     json={"status": "approved"})
    assert res.status_code == 403


def test_withdraw_pending_application(client, db, hhm, worker):
    schedule = create_schedule(client, hhm)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]

    res = client.delete(f"/api/worker/applications/{app_id}", headers=worker.headers)
    assert res.status_code == 200
    assert db.applications.count_documents({}) == 0
    assert db.schedules.find_one({"_id": ObjectId(schedule["_id"])})["applicationsCount"] == 0


def test_cannot_delete_schedule_with_approved(client, hhm, worker):
    schedule = create_schedule(client, hhm)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    client.put(f"/api/hhm/applications/{app_id}", headers=hhm.headers, json={"status": "approved"})

    res = client.delete(f"/api/hhm/schedules/{schedule['_id']}", headers=hhm.headers)
    assert res.status_code == 400


def test_schedule_update_guards(client, hhm, worker):
    schedule = create_schedule(client, hhm, workerCount=2)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    client.put(f"/api/hhm/applications/{app_id}", headers=hhm.headers, json={"status": "approved"})
    url = f"/api/hhm/schedules/{schedule['_id']}"

    res = client.put(url, headers=hhm.headers, json={"workerCount": 1, "status": "closed"})
    assert res.status_code == 200

    # full schedule cannot reopen until workerCount grows
    res = client.put(url, headers=hhm.headers, json={"status": "open"})
    assert res.status_code == 400


def test_schedule_detail_and_applications(client, hhm, worker):
    schedule = create_schedule(client, hhm)
    apply(client, worker, schedule)

    detail = client.get(f"/api/hhm/schedules/{schedule['_id']}", headers=hhm.headers).get_json()
    assert detail["data"]["spotsRemaining"] == 2
    assert detail["data"]["applications"][0]["worker"]["username"] == "sunil"

    res = client.get(f"/api/hhm/schedules/{schedule['_id']}/applications", headers=hhm.headers)
    assert res.get_json()["data"]["summary"]["pending"] == 1


def test_factory_maintenance_jobs(client, factory, worker):
    res = client.post("/api/factory/maintenance-jobs", headers=factory.headers, json={
        "title": "Boiler cleaning", "requiredSkills": ["welding"], "workerCount": 1,
        "wageOffered": 900, "startDate": future(2),
    })
    assert res.status_code == 201
    job = res.get_json()["data"]
    assert job["jobType"] == "maintenance"

    app_id = apply(client, worker, job).get_json()["data"]["_id"]
    rows = client.get("/api/factory/maintenance-applications", headers=factory.headers).get_json()
    assert [r["_id"] for r in rows["data"]] == [app_id]

    res = client.put(f"/api/factory/maintenance-applications/{app_id}", headers=factory.headers,
                     json={"status": "approved"})
    assert res.status_code == 200

    listed = client.get("/api/factory/maintenance-jobs", headers=factory.headers).get_json()
    assert listed["data"][0]["status"] == "closed"


def test_review_losing_race_leaves_counter(client, db, hhm, worker, monkeypatch):
    schedule = create_schedule(client, hhm)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    real_get = ApplicationService.get_application

    def approved_meanwhile(application_id):
        doc = real_get(application_id)
        db.applications.update_one({"_id": doc["_id"]}, {"$set": {"status": "approved"}})
        return doc

    monkeypatch.setattr(ApplicationService, "get_application", staticmethod(approved_meanwhile))
    res = client.put(f"/api/hhm/applications/{app_id}", headers=hhm.headers,
                     json={"status": "approved"})
    assert res.status_code == 409
    assert db.schedules.find_one({"_id": ObjectId(schedule["_id"])})["acceptedWorkersCount"] == 0


def test_approval_on_full_schedule_stays_pending(client, db, hhm, worker):
    schedule = create_schedule(client, hhm, workerCount=1)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    # counter already at capacity but the schedule was never closed
    db.schedules.update_one({"_id": ObjectId(schedule["_id"])}, {"$set": {"acceptedWorkersCount": 1}})

    res = client.put(f"/api/hhm/applications/{app_id}", headers=hhm.headers,
                     json={"status": "approved", "reviewNotes": "Welcome"})
    assert res.status_code == 400
    doc = db.applications.find_one({"_id": ObjectId(app_id)})
    assert doc["status"] == "pending"
    assert "reviewNotes" not in doc


def test_withdraw_losing_race_keeps_count(client, db, hhm, worker, monkeypatch):
    schedule = create_schedule(client, hhm)
    app_id = apply(client, worker, schedule).get_json()["data"]["_id"]
    real_get = ApplicationService.get_application

    def withdrawn_meanwhile(application_id):
        doc = real_get(application_id)
        db.applications.delete_one({"_id": doc["_id"]})
        return doc

    monkeypatch.setattr(ApplicationService, "get_application", staticmethod(withdrawn_meanwhile))
    res = client.delete(f"/api/worker/applications/{app_id}", headers=worker.headers)
    assert res.status_code == 409
    assert db.schedules.find_one({"_id": ObjectId(schedule["_id"])})["applicationsCount"] == 1


# ----------------------------------------
# recommendations
# ----------------------------------------
def test_recommendations_match_skills_by_wage(client, hhm, worker):
    create_schedule(client, hhm, title="Cut and weld", requiredSkills=["cutting", "welding"],
                    wageOffered=700)
    create_schedule(client, hhm, title="Truck loading", requiredSkills=["Loading"], wageOffered=900)
    create_schedule(client, hhm, title="Boiler", requiredSkills=["welding"], wageOffered=1000)

    res = client.get("/api/worker/jobs/recommendations", headers=worker.headers)
    body = res.get_json()
    assert res.status_code == 200
    assert body["workerSkills"] == ["cutting", "loading"]
    assert [j["title"] for j in body["data"]] == ["Truck loading", "Cut and weld"]
    assert body["data"][0]["matchingSkills"] == ["Loading"]
    assert body["data"][0]["skillMatchScore"] == 1
    assert body["data"][1]["matchingSkills"] == ["cutting"]
    assert body["data"][1]["skillMatchScore"] == 0.5
    assert body["data"][1]["canApply"] is True


def test_recommendations_need_skills(client, register):
    novice = register("Worker", "anil")
    res = client.get("/api/worker/jobs/recommendations", headers=novice.headers)
    assert res.status_code == 400
    assert "skills" in res.get_json()["message"]


def test_recommendations_limit(client, hhm, worker):
    for wage in (500, 600, 700):
        create_schedule(client, hhm, wageOffered=wage)
    rows = client.get("/api/worker/jobs/recommendations?limit=2", headers=worker.headers).get_json()["data"]
    assert [j["wageOffered"] for j in rows] == [700, 600]
