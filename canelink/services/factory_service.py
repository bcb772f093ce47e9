# canelink/services/factory_service.py

from canelink.errors import ServiceError
from canelink.models.factory_models import BillModel
from canelink.mongo import mongo
from canelink.services.user_service import UserService
from canelink.utils.helpers import paginate, to_json, to_object_id, utcnow


class FactoryService:

    # =========================
    # BILLS
    # =========================
    @staticmethod
    def _bill_rows(docs: list) -> list:
        users = UserService.summaries_by_id(
            [d.get("farmerId") for d in docs] + [d.get("factoryId") for d in docs]
        )
        rows = []
        for d in docs:
            row = to_json(d)
            row["farmer"] = users.get(d.get("farmerId"), {})
            row["factory"] = users.get(d.get("factoryId"), {})
            rows.append(row)
        return rows

    @staticmethod
    def create_bill(factory: dict, payload: dict) -> dict:
        model = BillModel(**(payload or {}))
        farmer_id = to_object_id(model.farmerId, "farmer ID")
        farmer = mongo.db.users.find_one({"_id": farmer_id}, {"role": 1})
        if not farmer:
            raise ServiceError("Farmer not found", 404)
        if farmer.get("role") != "Farmer":
            raise ServiceError("Bills can only be issued to farmers", 400)

        now = utcnow()
        doc = {
            "factoryId": factory["_id"],
            "farmerId": farmer_id,
            "cropQuantity": model.cropQuantity,
            "totalAmount": model.totalAmount,
            "status": "pending",
            "billDate": now,
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = mongo.db.bills.insert_one(doc).inserted_id
        return doc

    @staticmethod
    def _bills(query: dict, args, page: int, limit: int):
        if args.get("status"):
            query["status"] = args["status"]
        docs, pagination = paginate(
            mongo.db.bills, query, page, limit,
            sort=[("billDate", -1)], total_key="totalBills",
        )
        totals = {"totalAmount": 0.0, "totalQuantity": 0.0}
        for b in mongo.db.bills.find(query, {"totalAmount": 1, "cropQuantity": 1}):
            totals["totalAmount"] += float(b.get("totalAmount") or 0)
            totals["totalQuantity"] += float(b.get("cropQuantity") or 0)
        return FactoryService._bill_rows(docs), pagination, totals

    @staticmethod
    def factory_bills(factory: dict, args, page: int, limit: int):
        return FactoryService._bills({"factoryId": factory["_id"]}, args, page, limit)

    @staticmethod
    def farmer_bills(farmer: dict, args, page: int, limit: int):
        return FactoryService._bills({"farmerId": farmer["_id"]}, args, page, limit)

    # =========================
    # PARTNERS
    # =========================
    @staticmethod
    def associated(user: dict, field: str) -> list:
        """associatedHHMs of a factory, or associatedFactories of an HHM."""
        ids = user.get(field) or []
        if not ids:
            return []
        docs = mongo.db.users.find({"_id": {"$in": ids}}, {"password": 0})
        return [UserService.public_user(d) for d in docs]
