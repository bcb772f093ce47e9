from datetime import datetime

import pytest
from bson import ObjectId

from canelink.services.analytics_service import DEFAULT_PAYMENT_DELAY, AnalyticsService


def contract(status, value=None, delivered=None, paid=None):
    return {"status": status, "contract_value": value, "delivery_date": delivered, "payment_date": paid}


def test_metrics_for_no_contracts():
    m = AnalyticsService.factory_metrics([])
    assert m["totalContracts"] == 0
    assert m["averagePaymentDelay"] == DEFAULT_PAYMENT_DELAY
    assert m["profitabilityScore"] == 0


def test_metrics_formula():
    contracts = [
        contract("completed", 3000, datetime(2026, 1, 1), datetime(2026, 1, 11)),  # 10 days
        contract("completed", 3200, datetime(2026, 2, 1), datetime(2026, 2, 3)),   # 2 days
        contract("hhm_pending"),                                                  # default delay
        contract("cancelled"),                                                    # default delay
    ]
    m = AnalyticsService.factory_metrics(contracts)

    avg_delay = (10 + 2 + DEFAULT_PAYMENT_DELAY * 2) / 4
    assert m["completedContracts"] == 2
    assert m["averagePricePerTon"] == 3100
    assert m["contractFulfillmentRate"] == 0.5
    assert m["averagePaymentDelay"] == pytest.approx(avg_delay)
    assert m["profitabilityScore"] == pytest.approx(3100 * 0.5 / (avg_delay + 1), abs=1e-4)


def test_unpriced_completed_contracts_do_not_move_price():
    m = AnalyticsService.factory_metrics([contract("completed", 0), contract("completed", 2800)])
    assert m["averagePricePerTon"] == 2800
    assert m["contractFulfillmentRate"] == 1


def test_factory_profitability_endpoint(client, db, farmer, factory, hhm, register):
    register("Factory", "mill2")
    db.contracts.insert_one({
        "hhm_id": ObjectId(hhm.id), "factory_id": ObjectId(factory.id), "status": "completed",
        "contract_value": 3000, "delivery_date": datetime(2026, 1, 1),
        "payment_date": datetime(2026, 1, 5), "createdAt": datetime(2025, 12, 1),
    })

    res = client.get("/api/analytics/factory-profitability", headers=farmer.headers)
    body = res.get_json()
    assert res.status_code == 200
    assert body["count"] == 2
    assert body["summary"]["factoriesWithContracts"] == 1
    assert body["summary"]["topPerformer"]["factoryId"] == factory.id
    assert body["data"][0]["profitabilityScore"] == pytest.approx(3000 / 5, abs=1e-4)


def test_factory_details_endpoint(client, db, farmer, factory, hhm):
    db.contracts.insert_one({
        "hhm_id": ObjectId(hhm.id), "factory_id": ObjectId(factory.id), "status": "hhm_pending",
        "createdAt": datetime(2026, 3, 1),
    })
    body = client.get(f"/api/analytics/factory-details/{factory.id}", headers=farmer.headers).get_json()
    assert body["factory"]["name"] == "Sahyadri Sugars"
    assert body["metrics"]["pendingContracts"] == 1
    assert body["contracts"][0]["hhm"]["name"] == "Harvestco"

    res = client.get(f"/api/analytics/factory-details/{hhm.id}", headers=farmer.headers)
    assert res.status_code == 404


def test_analytics_is_farmer_only(client, hhm):
    assert client.get("/api/analytics/market-trends", headers=hhm.headers).status_code == 403


def test_market_trends_and_dashboard(client, db, farmer):
    db.crop_listings.insert_many([
        {"farmer_id": ObjectId(farmer.id), "crop_variety": "Co-86032", "status": "active",
         "expected_price_per_ton": 3000, "quantity_in_tons": 50},
        {"farmer_id": ObjectId(farmer.id), "crop_variety": "Co-86032", "status": "active",
         "expected_price_per_ton": 3200, "quantity_in_tons": 30},
        {"farmer_id": ObjectId(farmer.id), "crop_variety": "CoM-0265", "status": "sold",
         "expected_price_per_ton": 2500, "quantity_in_tons": 10},
    ])
    trends = client.get("/api/analytics/market-trends", headers=farmer.headers).get_json()["data"]
    assert trends["overall"]["activeListings"] == 2
    assert trends["varieties"][0]["averagePricePerTon"] == 3100

    dash = client.get("/api/analytics/farmer-dashboard", headers=farmer.headers).get_json()["data"]
    assert dash["listings"]["total"] == 3
    assert dash["listings"]["activeQuantity"] == 80


def test_hhm_performance(client, db, farmer, hhm):
    db.farmer_contracts.insert_many([
        {"hhm_id": ObjectId(hhm.id), "status": "completed"},
        {"hhm_id": ObjectId(hhm.id), "status": "hhm_rejected"},
    ])
    body = client.get("/api/analytics/hhm-performance", headers=farmer.headers).get_json()
    row = body["data"][0]
    assert body["count"] == 1
    assert row["acceptanceRate"] == 0.5
    assert row["completionRate"] == 1
