from canelink.services.public_service import PublicService


def test_bill_lifecycle(client, factory, farmer):
    res = client.post("/api/factory/bills", headers=factory.headers, json={
        "farmerId": farmer.id, "cropQuantity": 40, "totalAmount": 124000,
    })
    assert res.status_code == 201
    assert res.get_json()["data"]["status"] == "pending"

    client.post("/api/factory/bills", headers=factory.headers, json={
        "farmerId": farmer.id, "cropQuantity": 10, "totalAmount": 31000,
    })

    mine = client.get("/api/factory/bills", headers=factory.headers).get_json()
    assert mine["pagination"]["totalBills"] == 2
    assert mine["totals"] == {"totalAmount": 155000.0, "totalQuantity": 50.0}
    assert mine["data"][0]["farmer"]["username"] == "ravi"

    theirs = client.get("/api/farmer/bills", headers=farmer.headers).get_json()
    assert theirs["pagination"]["totalBills"] == 2


def test_bill_only_for_farmers(client, factory, hhm):
    res = client.post("/api/factory/bills", headers=factory.headers, json={
        "farmerId": hhm.id, "cropQuantity": 1, "totalAmount": 1,
    })
    assert res.status_code == 400

    res = client.post("/api/factory/bills", headers=factory.headers, json={
        "farmerId": "64b7f0c2a1b2c3d4e5f60718", "cropQuantity": 1, "totalAmount": 1,
    })
    assert res.status_code == 404


def test_directories(client, farmer, hhm, factory, worker):
    res = client.get("/api/farmer/hhms?location=kolha", headers=farmer.headers).get_json()
    assert [h["username"] for h in res["data"]] == ["harvestco"]
    assert res["pagination"]["totalHHMs"] == 1

    res = client.get("/api/farmer/factories?name=sahyadri", headers=farmer.headers).get_json()
    assert res["pagination"]["totalFactories"] == 1

    res = client.get("/api/factory/hhms", headers=factory.headers).get_json()
    assert res["data"][0]["isAssociated"] is False


def test_public_factories(client, factory, register):
    register("Factory", "mill2", factoryName="Krishna Sugars", factoryLocation="Sangli")

    res = client.get("/api/public/factories?location=karad").get_json()["data"]
    assert [f["name"] for f in res["factories"]] == ["Sahyadri Sugars"]
    assert res["pagination"]["totalFactories"] == 1

    one = client.get(f"/api/public/factories/{factory.id}").get_json()["data"]["factory"]
    assert one["location"] == "Karad"
    assert one["hhmCount"] == 0

    assert client.get("/api/public/factories/64b7f0c2a1b2c3d4e5f60718").status_code == 404


def test_role_features(client, app):
    assert PublicService.seed_role_features() == 5

    res = client.get("/api/public/roles-features").get_json()["data"]
    # ADMIN is seeded inactive
    assert res["statistics"]["totalRoles"] == 4
    names = [r["roleName"] for r in res["roleFeatures"]]
    assert names == sorted(names)

    farmer = client.get("/api/public/roles-features/farmer").get_json()["data"]["roleFeature"]
    priorities = [f["priority"] for f in farmer["features"]]
    assert priorities == sorted(priorities, reverse=True)

    assert client.get("/api/public/roles-features/admin").status_code == 404
    assert client.get("/api/public/roles-features/pilot").status_code == 400


def test_seed_is_idempotent(app, db):
    PublicService.seed_role_features()
    PublicService.seed_role_features()
    assert db.role_features.count_documents({}) == 5


def test_user_search_and_public_profile(client, farmer, factory):
    res = client.get("/api/users/search?role=factory").get_json()
    assert [u["username"] for u in res["data"]] == ["sugarmill"]

    res = client.get(f"/api/users/profile/{farmer.id}")
    assert res.status_code == 200
    assert "password" not in res.get_json()["data"]
