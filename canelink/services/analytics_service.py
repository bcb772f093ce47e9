# canelink/services/analytics_service.py
"""
Farmer-facing analytics.

Factory profitability scores each factory from its HHM contracts:

    profitabilityScore = avgPrice * fulfilmentRate / (avgPaymentDelay + 1)

avgPrice is the mean contract_value over completed contracts that carry a
value. Contracts without both delivery and payment dates count as a
DEFAULT_PAYMENT_DELAY day delay.
"""
from collections import defaultdict

from canelink.errors import ServiceError
from canelink.mongo import mongo
from canelink.utils.helpers import to_json, to_object_id, utcnow

DEFAULT_PAYMENT_DELAY = 30
CLOSED_STATUSES = ("cancelled", "expired", "hhm_rejected", "factory_rejected")


def _round(value, digits=2):
    return round(float(value), digits)


class AnalyticsService:

    # =========================
    # FACTORY PROFITABILITY
    # =========================
    @staticmethod
    def payment_delay_days(contract: dict) -> float:
        delivered, paid = contract.get("delivery_date"), contract.get("payment_date")
        if delivered and paid:
            return (paid - delivered).total_seconds() / 86400
        return float(DEFAULT_PAYMENT_DELAY)

    @staticmethod
    def factory_metrics(contracts: list) -> dict:
        total = len(contracts)
        completed = [c for c in contracts if c.get("status") == "completed"]
        priced = [float(c["contract_value"]) for c in completed if (c.get("contract_value") or 0) > 0]

        avg_price = sum(priced) / len(priced) if priced else 0.0
        if total:
            avg_delay = sum(AnalyticsService.payment_delay_days(c) for c in contracts) / total
        else:
            avg_delay = float(DEFAULT_PAYMENT_DELAY)
        rate = len(completed) / total if total else 0.0
        score = avg_price * rate / (avg_delay + 1) if avg_price > 0 and rate > 0 else 0.0

        return {
            "totalContracts": total,
            "completedContracts": len(completed),
            "averagePricePerTon": _round(avg_price),
            "averagePaymentDelay": _round(avg_delay),
            "contractFulfillmentRate": _round(rate, 4),
            "profitabilityScore": _round(score, 4),
        }

    @staticmethod
    def factory_profitability() -> dict:
        factories = list(mongo.db.users.find(
            {"role": "Factory"},
            {"name": 1, "email": 1, "factoryName": 1, "factoryLocation": 1, "capacity": 1},
        ))
        by_factory = defaultdict(list)
        for c in mongo.db.contracts.find(
            {"factory_id": {"$in": [f["_id"] for f in factories]}},
            {"factory_id": 1, "status": 1, "contract_value": 1, "delivery_date": 1, "payment_date": 1},
        ):
            by_factory[c["factory_id"]].append(c)

        rows = []
        for f in factories:
            row = {
                "factoryId": str(f["_id"]),
                "factoryName": f.get("factoryName") or f.get("name"),
                "factoryEmail": f.get("email"),
                "factoryLocation": f.get("factoryLocation"),
                "factoryCapacity": f.get("capacity"),
            }
            row.update(AnalyticsService.factory_metrics(by_factory.get(f["_id"], [])))
            rows.append(row)
        rows.sort(key=lambda r: r["profitabilityScore"], reverse=True)

        with_contracts = sum(1 for r in rows if r["totalContracts"])
        summary = {
            "totalFactoriesAnalyzed": len(rows),
            "factoriesWithContracts": with_contracts,
            "factoriesWithoutContracts": len(rows) - with_contracts,
            "averageScore": _round(sum(r["profitabilityScore"] for r in rows) / len(rows), 4) if rows else 0,
            "topPerformer": rows[0] if rows else None,
            "analysisDate": to_json(utcnow()),
        }
        return {"summary": summary, "data": rows, "count": len(rows)}

    @staticmethod
    def factory_details(factory_id) -> dict:
        oid = to_object_id(factory_id, "factory ID")
        factory = mongo.db.users.find_one({"_id": oid, "role": "Factory"}, {"password": 0})
        if not factory:
            raise ServiceError("Factory not found", 404)

        contracts = list(mongo.db.contracts.find({"factory_id": oid}).sort("createdAt", -1))
        hhms = {
            h["_id"]: {"_id": str(h["_id"]), "name": h.get("name"), "email": h.get("email"),
                       "managementExperience": h.get("managementExperience")}
            for h in mongo.db.users.find({"_id": {"$in": list({c["hhm_id"] for c in contracts})}})
        } if contracts else {}

        metrics = AnalyticsService.factory_metrics(contracts)
        metrics["pendingContracts"] = sum(
            1 for c in contracts if c.get("status") in ("hhm_pending", "factory_offer")
        )
        metrics["cancelledContracts"] = sum(1 for c in contracts if c.get("status") in CLOSED_STATUSES)

        recent = []
        for c in contracts[:20]:
            recent.append({
                "_id": str(c["_id"]),
                "status": c.get("status"),
                "contract_value": c.get("contract_value"),
                "duration_days": c.get("duration_days"),
                "delivery_date": to_json(c.get("delivery_date")),
                "payment_date": to_json(c.get("payment_date")),
                "createdAt": to_json(c.get("createdAt")),
                "hhm": hhms.get(c.get("hhm_id"), {}),
            })

        return {
            "factory": {
                "id": str(factory["_id"]),
                "name": factory.get("factoryName") or factory.get("name"),
                "email": factory.get("email"),
                "location": factory.get("factoryLocation"),
                "capacity": factory.get("capacity"),
            },
            "metrics": metrics,
            "contracts": recent,
            "count": len(contracts),
        }

    # =========================
    # MARKET / HHM
    # =========================
    @staticmethod
    def market_trends() -> dict:
        groups = defaultdict(list)
        for listing in mongo.db.crop_listings.find(
            {"status": "active"},
            {"crop_variety": 1, "expected_price_per_ton": 1, "quantity_in_tons": 1},
        ):
            groups[listing.get("crop_variety") or "Unknown"].append(listing)

        varieties = []
        for variety, items in groups.items():
            prices = [float(i.get("expected_price_per_ton") or 0) for i in items]
            quantities = [float(i.get("quantity_in_tons") or 0) for i in items]
            varieties.append({
                "cropVariety": variety,
                "listings": len(items),
                "averagePricePerTon": _round(sum(prices) / len(prices)),
                "minPricePerTon": _round(min(prices)),
                "maxPricePerTon": _round(max(prices)),
                "averageQuantity": _round(sum(quantities) / len(quantities)),
                "totalQuantity": _round(sum(quantities)),
            })
        varieties.sort(key=lambda v: v["totalQuantity"], reverse=True)

        all_listings = sum(v["listings"] for v in varieties)
        total_qty = sum(v["totalQuantity"] for v in varieties)
        weighted = sum(v["averagePricePerTon"] * v["listings"] for v in varieties)
        return {
            "varieties": varieties,
            "overall": {
                "activeListings": all_listings,
                "totalQuantity": _round(total_qty),
                "averagePricePerTon": _round(weighted / all_listings) if all_listings else 0,
            },
            "analysisDate": to_json(utcnow()),
        }

    @staticmethod
    def hhm_performance() -> list:
        counts = defaultdict(lambda: defaultdict(int))
        for c in mongo.db.farmer_contracts.find({}, {"hhm_id": 1, "status": 1}):
            counts[c["hhm_id"]][c.get("status")] += 1

        hhms = mongo.db.users.find(
            {"role": "HHM", "isActive": True},
            {"name": 1, "email": 1, "location": 1, "managementExperience": 1, "teamSize": 1},
        )
        rows = []
        for h in hhms:
            s = counts.get(h["_id"], {})
            total = sum(s.values())
            accepted = s.get("hhm_accepted", 0) + s.get("completed", 0)
            responded = accepted + s.get("hhm_rejected", 0)
            rows.append({
                "hhmId": str(h["_id"]),
                "name": h.get("name"),
                "email": h.get("email"),
                "location": h.get("location"),
                "managementExperience": h.get("managementExperience"),
                "teamSize": h.get("teamSize"),
                "totalContracts": total,
                "acceptedContracts": accepted,
                "completedContracts": s.get("completed", 0),
                "autoCancelledContracts": s.get("auto_cancelled", 0),
                "acceptanceRate": _round(accepted / responded, 4) if responded else 0.0,
                "completionRate": _round(s.get("completed", 0) / accepted, 4) if accepted else 0.0,
            })
        rows.sort(key=lambda r: (r["completionRate"], r["acceptanceRate"], r["totalContracts"]), reverse=True)
        return rows

    # =========================
    # FARMER DASHBOARD
    # =========================
    @staticmethod
    def farmer_dashboard(farmer: dict) -> dict:
        fid = farmer["_id"]

        listings = defaultdict(int)
        listed_qty = 0.0
        for doc in mongo.db.crop_listings.find({"farmer_id": fid}, {"status": 1, "quantity_in_tons": 1}):
            listings[doc.get("status")] += 1
            if doc.get("status") == "active":
                listed_qty += float(doc.get("quantity_in_tons") or 0)

        received, sent = defaultdict(int), defaultdict(int)
        revenue = 0.0
        for o in mongo.db.orders.find({"sellerId": fid}, {"status": 1, "totalAmount": 1}):
            received[o.get("status")] += 1
            if o.get("status") == "completed":
                revenue += float(o.get("totalAmount") or 0)
        spent = 0.0
        for o in mongo.db.orders.find({"buyerId": fid}, {"status": 1, "totalAmount": 1}):
            sent[o.get("status")] += 1
            if o.get("status") == "completed":
                spent += float(o.get("totalAmount") or 0)

        contracts = defaultdict(int)
        for c in mongo.db.farmer_contracts.find({"farmer_id": fid}, {"status": 1}):
            contracts[c.get("status")] += 1

        billed = {"pending": 0.0, "paid": 0.0}
        for b in mongo.db.bills.find({"farmerId": fid}, {"status": 1, "totalAmount": 1}):
            billed[b.get("status", "pending")] = billed.get(b.get("status", "pending"), 0.0) + float(b.get("totalAmount") or 0)

        return {
            "listings": {"total": sum(listings.values()), "byStatus": dict(listings),
                         "activeQuantity": _round(listed_qty)},
            "orders": {
                "received": {"total": sum(received.values()), "byStatus": dict(received)},
                "sent": {"total": sum(sent.values()), "byStatus": dict(sent)},
            },
            "revenue": {"fromOrders": _round(revenue), "spentOnOrders": _round(spent),
                        "billsPending": _round(billed.get("pending", 0)),
                        "billsPaid": _round(billed.get("paid", 0))},
            "contracts": {"total": sum(contracts.values()), "byStatus": dict(contracts)},
        }
