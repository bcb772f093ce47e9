from datetime import timedelta

from bson import ObjectId

from canelink.services.contract_service import ContractService
from canelink.utils.helpers import utcnow

DETAILS = {"cane_tons": 500, "season": "2026-27"}
ALLOWANCE = {"price_per_ton": 3150, "transport": "factory"}


def request_contract(client, hhm, factory, **extra):
    payload = {"factory_id": factory.id, "hhm_request_details": DETAILS,
               "title": "Season supply", "contract_value": 1500000}
    payload.update(extra)
    return client.post("/api/contracts/request", headers=hhm.headers, json=payload)


def test_request_offer_accept_flow(client, hhm, factory):
    res = request_contract(client, hhm, factory)
    assert res.status_code == 201
    contract = res.get_json()["data"]
    assert contract["status"] == "hhm_pending"
    assert contract["initiated_by"] == "hhm"
    assert contract["daysUntilExpiration"] == 30
    cid = contract["_id"]

    res = client.put(f"/api/contracts/respond/{cid}", headers=factory.headers, json={
        "decision": "offer", "factory_allowance_list": ALLOWANCE,
    })
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "factory_offer"
    assert res.get_json()["data"]["revision_count"] == 1

    res = client.put(f"/api/contracts/finalize/{cid}", headers=hhm.headers, json={"decision": "accept"})
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "hhm_accepted"
    assert data["isFinalized"] is True


def test_duplicate_active_request(client, hhm, factory):
    first = request_contract(client, hhm, factory).get_json()["data"]
    res = request_contract(client, hhm, factory)
    assert res.status_code == 409
    assert res.get_json()["data"]["existingContractId"] == first["_id"]


def test_offer_requires_allowance_list(client, hhm, factory):
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    res = client.put(f"/api/contracts/respond/{cid}", headers=factory.headers, json={"decision": "offer"})
    assert res.status_code == 400


def test_factory_reject(client, hhm, factory):
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    res = client.put(f"/api/contracts/respond/{cid}", headers=factory.headers, json={"decision": "reject"})
    assert res.get_json()["data"]["status"] == "factory_rejected"

    # finalize only from factory_offer
    res = client.put(f"/api/contracts/finalize/{cid}", headers=hhm.headers, json={"decision": "accept"})
    assert res.status_code == 400


def test_other_factory_cannot_respond(client, hhm, factory, register):
    other = register("Factory", "mill2")
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    res = client.put(f"/api/contracts/respond/{cid}", headers=other.headers, json={"decision": "reject"})
    assert res.status_code == 404


def test_respond_to_expired_contract(client, db, hhm, factory):
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    db.contracts.update_one({"_id": ObjectId(cid)}, {"$set": {"expires_at": utcnow() - timedelta(days=1)}})

    res = client.put(f"/api/contracts/respond/{cid}", headers=factory.headers, json={"decision": "reject"})
    assert res.status_code == 400
    assert db.contracts.find_one({"_id": ObjectId(cid)})["status"] == "expired"


def test_factory_invite_accept_and_reject(client, hhm, factory):
    res = client.post("/api/contracts/invite", headers=factory.headers, json={"hhm_id": hhm.id})
    assert res.status_code == 201
    invite = res.get_json()["data"]
    assert invite["status"] == "factory_invite"
    assert invite["title"] == "Partnership Invitation"

    res = client.post("/api/contracts/invite", headers=factory.headers, json={"hhm_id": hhm.id})
    assert res.status_code == 409

    res = client.put(f"/api/contracts/{invite['_id']}/accept-invite", headers=hhm.headers, json={})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "hhm_accepted"

    res = client.put(f"/api/contracts/{invite['_id']}/reject-invite", headers=hhm.headers, json={})
    assert res.status_code == 400


def test_extend_validation(client, db, hhm, factory):
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    before = db.contracts.find_one({"_id": ObjectId(cid)})["expires_at"]

    for bad in (0, 31, "5"):
        res = client.put(f"/api/contracts/{cid}/extend", headers=hhm.headers, json={"days": bad})
        assert res.status_code == 400
        assert res.get_json()["message"] == "Extension days must be an integer between 1 and 30"

    res = client.put(f"/api/contracts/{cid}/extend", headers=factory.headers, json={"days": 10})
    assert res.status_code == 200
    after = db.contracts.find_one({"_id": ObjectId(cid)})["expires_at"]
    assert after - before == timedelta(days=10)


def test_cancel_then_finalized_guards(client, hhm, factory):
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    res = client.put(f"/api/contracts/{cid}/cancel", headers=hhm.headers, json={"reason": "Changed plans"})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "cancelled"

    assert client.put(f"/api/contracts/{cid}/cancel", headers=hhm.headers, json={}).status_code == 400
    assert client.put(f"/api/contracts/{cid}/extend", headers=hhm.headers, json={"days": 3}).status_code == 400

    # cancelled contracts free the pair for a new request
    assert request_contract(client, hhm, factory).status_code == 201


def test_delivery_payment_completion(client, hhm, factory):
    cid = client.post("/api/contracts/invite", headers=factory.headers,
                      json={"hhm_id": hhm.id}).get_json()["data"]["_id"]

    res = client.put(f"/api/contracts/{cid}/mark-delivered", headers=factory.headers)
    assert res.status_code == 400

    client.put(f"/api/contracts/{cid}/accept-invite", headers=hhm.headers, json={})
    assert client.put(f"/api/contracts/{cid}/mark-completed", headers=hhm.headers).status_code == 400
    assert client.put(f"/api/contracts/{cid}/mark-delivered", headers=hhm.headers).status_code == 200
    res = client.put(f"/api/contracts/{cid}/mark-paid", headers=factory.headers)
    assert res.get_json()["data"]["payment_status"] == "paid"
    res = client.put(f"/api/contracts/{cid}/mark-completed", headers=factory.headers)
    assert res.get_json()["data"]["status"] == "completed"


def test_party_access(client, hhm, factory, register):
    outsider = register("HHM", "otherhhm")
    farmer = register("Farmer", "ravi")
    cid = request_contract(client, hhm, factory).get_json()["data"]["_id"]

    assert client.get(f"/api/contracts/{cid}", headers=hhm.headers).status_code == 200
    assert client.get(f"/api/contracts/{cid}", headers=outsider.headers).status_code == 403
    assert client.get(f"/api/contracts/{cid}", headers=farmer.headers).status_code == 403


def test_my_contracts_stats_and_dashboard(client, hhm, factory, register):
    mill2 = register("Factory", "mill2")
    request_contract(client, hhm, factory, priority="high")
    request_contract(client, hhm, mill2)
    client.post("/api/contracts/invite", headers=factory.headers, json={"hhm_id": register("HHM", "hhm2").id})

    res = client.get("/api/contracts/my-contracts?priority=high", headers=hhm.headers).get_json()
    assert res["pagination"]["totalContracts"] == 1
    assert res["data"][0]["factory"]["username"] == "sugarmill"

    stats = client.get("/api/contracts/stats", headers=factory.headers).get_json()["data"]
    assert stats["overview"]["total"] == 2
    assert stats["overview"]["active"] == 1
    assert stats["overview"]["invites"] == 1
    assert stats["byInitiator"] == {"initiated": 1, "received": 1}

    dash = client.get("/api/contracts/dashboard", headers=factory.headers).get_json()["data"]
    assert dash["userRole"] == "Factory"
    assert dash["summary"]["total"] == 2
    assert dash["summary"]["expiringSoon"] == 1  # the 7-day invite

    partner = client.get(f"/api/contracts/partner/{factory.id}", headers=hhm.headers).get_json()
    assert partner["count"] == 1


def test_expire_overdue(app, db):
    now = utcnow()
    db.contracts.insert_many([
        {"status": "hhm_pending", "expires_at": now - timedelta(days=1)},
        {"status": "factory_offer", "expires_at": now + timedelta(days=1)},
        {"status": "hhm_accepted", "expires_at": now - timedelta(days=1)},
    ])
    assert ContractService.expire_overdue() == 1
    assert db.contracts.count_documents({"status": "expired"}) == 1


def test_overdue_request_frees_the_pair(client, db, hhm, factory):
    old = request_contract(client, hhm, factory).get_json()["data"]["_id"]
    db.contracts.update_one({"_id": ObjectId(old)}, {"$set": {"expires_at": utcnow() - timedelta(hours=1)}})

    res = request_contract(client, hhm, factory)
    assert res.status_code == 201
    assert db.contracts.find_one({"_id": ObjectId(old)})["status"] == "expired"


def test_overdue_invite_frees_the_pair(client, db, hhm, factory):
    old = client.post("/api/contracts/invite", headers=factory.headers,
                      json={"hhm_id": hhm.id}).get_json()["data"]["_id"]
    db.contracts.update_one({"_id": ObjectId(old)}, {"$set": {"expires_at": utcnow() - timedelta(days=1)}})

    res = client.post("/api/contracts/invite", headers=factory.headers, json={"hhm_id": hhm.id})
    assert res.status_code == 201
    assert db.contracts.find_one({"_id": ObjectId(old)})["status"] == "expired"
