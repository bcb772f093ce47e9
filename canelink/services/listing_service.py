# canelink/services/listing_service.py

from canelink.errors import ServiceError
from canelink.models.listing_models import (
    CreateListingModel,
    ListingStatusModel,
    UpdateListingModel,
)
from canelink.mongo import mongo
from canelink.services.user_service import UserService
from canelink.utils.helpers import (
    float_arg,
    icontains,
    paginate,
    to_json,
    to_object_id,
    utcnow,
)

SORTS = {
    "newest": [("createdAt", -1)],
    "oldest": [("createdAt", 1)],
    "price_low": [("expected_price_per_ton", 1)],
    "price_high": [("expected_price_per_ton", -1)],
    "quantity_low": [("quantity_in_tons", 1)],
    "quantity_high": [("quantity_in_tons", -1)],
}


class ListingService:

    @staticmethod
    def _shape(doc: dict, farmers: dict = None) -> dict:
        out = to_json(doc)
        if farmers is not None:
            out["farmer"] = farmers.get(doc.get("farmer_id"), {})
        return out

    @staticmethod
    def get_listing(listing_id) -> dict:
        oid = to_object_id(listing_id, "listing ID")
        doc = mongo.db.crop_listings.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Listing not found", 404)
        return doc

    @staticmethod
    def _owned_listing(farmer: dict, listing_id, action: str = "update") -> dict:
        doc = ListingService.get_listing(listing_id)
        if doc.get("farmer_id") != farmer["_id"]:
            raise ServiceError(f"You can only {action} your own listings", 403)
        return doc

    # =========================
    # MARKETPLACE (public)
    # =========================
    @staticmethod
    def marketplace(args, page: int, limit: int):
        query = {"status": "active"}

        if args.get("crop_variety"):
            query["crop_variety"] = icontains(args["crop_variety"])
        if args.get("location"):
            query["location"] = icontains(args["location"])
        if args.get("farmer_id"):
            query["farmer_id"] = to_object_id(args["farmer_id"], "farmer ID")

        price = {}
        if float_arg(args, "min_price") is not None:
            price["$gte"] = float_arg(args, "min_price")
        if float_arg(args, "max_price") is not None:
            price["$lte"] = float_arg(args, "max_price")
        if price:
            query["expected_price_per_ton"] = price

        qty = {}
        if float_arg(args, "min_quantity") is not None:
            qty["$gte"] = float_arg(args, "min_quantity")
        if float_arg(args, "max_quantity") is not None:
            qty["$lte"] = float_arg(args, "max_quantity")
        if qty:
            query["quantity_in_tons"] = qty

        sort = SORTS.get(args.get("sort") or "newest", SORTS["newest"])
        docs, pagination = paginate(
            mongo.db.crop_listings, query, page, limit, sort=sort, total_key="totalListings"
        )
        farmers = UserService.summaries_by_id(d.get("farmer_id") for d in docs)
        return [ListingService._shape(d, farmers) for d in docs], pagination

    # =========================
    # FARMER CRUD
    # =========================
    @staticmethod
    def create_listing(farmer: dict, payload: dict) -> dict:
        model = CreateListingModel(**(payload or {}))
        if model.harvest_availability_date.date() < utcnow().date():
            raise ServiceError("Harvest availability date cannot be in the past", 400)

        now = utcnow()
        doc = {
            **model.model_dump(),
            "farmer_id": farmer["_id"],
            "status": "active",
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = mongo.db.crop_listings.insert_one(doc).inserted_id
        return doc

    @staticmethod
    def my_listings(farmer: dict, status: str, page: int, limit: int):
        query = {"farmer_id": farmer["_id"]}
        if status:
            query["status"] = status
        docs, pagination = paginate(
            mongo.db.crop_listings, query, page, limit,
            sort=[("createdAt", -1)], total_key="totalListings",
        )

        # pending order count per listing
        counts = {}
        if docs:
            for o in mongo.db.orders.find(
                {"listingId": {"$in": [d["_id"] for d in docs]}, "status": "pending"},
                {"listingId": 1},
            ):
                counts[o["listingId"]] = counts.get(o["listingId"], 0) + 1

        rows = []
        for d in docs:
            row = to_json(d)
            row["pendingOrders"] = counts.get(d["_id"], 0)
            rows.append(row)
        return rows, pagination

    @staticmethod
    def listing_detail(listing_id) -> dict:
        doc = ListingService.get_listing(listing_id)
        farmers = UserService.summaries_by_id([doc.get("farmer_id")])
        return ListingService._shape(doc, farmers)

    @staticmethod
    def update_listing(farmer: dict, listing_id, payload: dict) -> dict:
        doc = ListingService._owned_listing(farmer, listing_id)
        updates = UpdateListingModel(**(payload or {})).model_dump(exclude_none=True)
        if not updates:
            raise ServiceError("No valid fields to update", 400)

        harvest = updates.get("harvest_availability_date")
        if harvest and harvest.date() < utcnow().date():
            raise ServiceError("Harvest availability date cannot be in the past", 400)

        updates["updatedAt"] = utcnow()
        mongo.db.crop_listings.update_one({"_id": doc["_id"]}, {"$set": updates})
        return mongo.db.crop_listings.find_one({"_id": doc["_id"]})

    @staticmethod
    def delete_listing(farmer: dict, listing_id) -> dict:
        doc = ListingService._owned_listing(farmer, listing_id, action="delete")
        mongo.db.crop_listings.delete_one({"_id": doc["_id"]})
        # pending orders on a deleted listing can no longer be fulfilled
        mongo.db.orders.update_many(
            {"listingId": doc["_id"], "status": "pending"},
            {"$set": {"status": "cancelled", "responseMessage": "Listing removed",
                      "updatedAt": utcnow()}},
        )
        return doc

    @staticmethod
    def set_status(farmer: dict, listing_id, payload: dict) -> dict:
        doc = ListingService._owned_listing(farmer, listing_id)
        status = ListingStatusModel(**(payload or {})).status
        mongo.db.crop_listings.update_one(
            {"_id": doc["_id"]}, {"$set": {"status": status, "updatedAt": utcnow()}}
        )
        doc["status"] = status
        return doc

