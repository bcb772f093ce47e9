# canelink/services/order_service.py

from flask import current_app
from pymongo import ReturnDocument

from canelink.errors import ServiceError
from canelink.models.listing_models import CreateOrderModel, OrderStatusModel
from canelink.mongo import mongo
from canelink.services.listing_service import ListingService
from canelink.services.user_service import UserService
from canelink.utils.helpers import paginate, to_json, to_object_id, utcnow


class OrderService:

    # =========================
    # SHAPES
    # =========================
    @staticmethod
    def _rows(docs: list) -> list:
        users = UserService.summaries_by_id(
            [d.get("sellerId") for d in docs] + [d.get("buyerId") for d in docs]
        )
        listing_ids = [d.get("listingId") for d in docs if d.get("listingId")]
        listings = {
            l["_id"]: l
            for l in mongo.db.crop_listings.find(
                {"_id": {"$in": listing_ids}},
                {"title": 1, "crop_variety": 1, "quantity_in_tons": 1,
                 "expected_price_per_ton": 1, "status": 1},
            )
        } if listing_ids else {}

        rows = []
        for d in docs:
            row = to_json(d)
            row["seller"] = users.get(d.get("sellerId"), {})
            row["buyer"] = users.get(d.get("buyerId"), {})
            row["listing"] = to_json(listings.get(d.get("listingId"))) or None
            rows.append(row)
        return rows

    @staticmethod
    def get_order(order_id) -> dict:
        oid = to_object_id(order_id, "order ID")
        doc = mongo.db.orders.find_one({"_id": oid})
        if not doc:
            raise ServiceError("Order not found", 404)
        return doc

    # =========================
    # CREATE
    # =========================
    @staticmethod
    def create_order(buyer: dict, payload: dict) -> dict:
        model = CreateOrderModel(**(payload or {}))
        listing = ListingService.get_listing(model.listingId)
        seller_id = listing.get("farmer_id")

        if model.farmerId and str(seller_id) != model.farmerId:
            raise ServiceError("farmerId does not match the listing owner", 400)
        if seller_id == buyer["_id"]:
            raise ServiceError("You cannot place an order on your own listing", 400)
        if listing.get("status") != "active":
            raise ServiceError("This listing is not available for orders", 400)

        seller = mongo.db.users.find_one({"_id": seller_id}, {"role": 1, "isActive": 1})
        if not seller:
            raise ServiceError("Seller not found", 404)
        if seller.get("role") != "Farmer":
            raise ServiceError("Orders can only be placed with farmers", 400)

        now = utcnow()
        doc = {
            "listingId": listing["_id"],
            "sellerId": seller_id,
            "buyerId": buyer["_id"],
            "buyerDetails": {
                "name": buyer.get("name"),
                "email": buyer.get("email"),
                "phone": buyer.get("phone"),
            },
            "quantityWanted": model.quantityWanted,
            "proposedPrice": model.proposedPrice,
            "totalAmount": model.totalAmount or round(model.quantityWanted * model.proposedPrice, 2),
            "deliveryLocation": model.deliveryLocation,
            "message": model.message,
            "urgency": model.urgency,
            "status": "pending",
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = mongo.db.orders.insert_one(doc).inserted_id
        current_app.logger.info("order %s placed on listing %s", doc["_id"], listing["_id"])
        return doc

    # =========================
    # READ
    # =========================
    @staticmethod
    def _list(field: str, user: dict, args, page: int, limit: int):
        query = {field: user["_id"]}
        if args.get("status"):
            query["status"] = args["status"]
        if args.get("urgency"):
            query["urgency"] = args["urgency"]
        docs, pagination = paginate(
            mongo.db.orders, query, page, limit,
            sort=[("createdAt", -1)], total_key="totalOrders",
        )
        return OrderService._rows(docs), pagination

    @staticmethod
    def received(user: dict, args, page: int, limit: int):
        return OrderService._list("sellerId", user, args, page, limit)

    @staticmethod
    def sent(user: dict, args, page: int, limit: int):
        return OrderService._list("buyerId", user, args, page, limit)

    @staticmethod
    def for_listing(user: dict, listing_id) -> list:
        listing = ListingService.get_listing(listing_id)
        if listing.get("farmer_id") != user["_id"]:
            raise ServiceError("You can only view orders for your own listings", 403)
        docs = list(mongo.db.orders.find({"listingId": listing["_id"]}).sort("createdAt", -1))
        return OrderService._rows(docs)

    # =========================
    # STATUS
    # =========================
    @staticmethod
    def update_status(user: dict, order_id, payload: dict) -> dict:
        model = OrderStatusModel(**(payload or {}))
        order = OrderService.get_order(order_id)
        is_seller = order.get("sellerId") == user["_id"]
        is_buyer = order.get("buyerId") == user["_id"]
        current = order.get("status")

        if model.status in ("accepted", "rejected"):
            if not is_seller:
                raise ServiceError("Only the seller can accept or reject this order", 403)
            if current != "pending":
                raise ServiceError(f"Order is already {current}", 400)
        elif model.status == "completed":
            if not is_seller:
                raise ServiceError("Only the seller can complete this order", 403)
            if current != "accepted":
                raise ServiceError("Only accepted orders can be completed", 400)
        else:  # cancelled
            if not is_buyer:
                raise ServiceError("Only the buyer can cancel this order", 403)
            if current != "pending":
                raise ServiceError("Only pending orders can be cancelled", 400)

        updates = {
            "status": model.status,
            "responseMessage": model.responseMessage,
            "respondedAt": utcnow(),
            "updatedAt": utcnow(),
        }
        res = mongo.db.orders.update_one(
            {"_id": order["_id"], "status": current}, {"$set": updates}
        )
        if res.matched_count == 0:
            raise ServiceError("Order was modified concurrently, please retry", 409)

        fulfillment = None
        if model.status == "accepted":
            try:
                fulfillment = OrderService._take_from_listing(order)
            except ServiceError:
                mongo.db.orders.update_one(
                    {"_id": order["_id"], "status": "accepted"},
                    {"$set": {"status": current, "updatedAt": utcnow()},
                     "$unset": {"responseMessage": "", "respondedAt": ""}},
                )
                raise
            stock = {
                "finalQuantity": fulfillment["fulfilledQuantity"],
                "isPartialFulfillment": fulfillment["isPartial"],
                "totalAmount": fulfillment["totalAmount"],
            }
            if fulfillment["isPartial"]:
                stock["originalQuantityRequested"] = order["quantityWanted"]
            mongo.db.orders.update_one({"_id": order["_id"]}, {"$set": stock})
            updates.update(stock)

        order.update(updates)
        return {"order": order, "partialFulfillment": fulfillment}

    @staticmethod
    def _take_from_listing(order: dict) -> dict:
        """
        Reserve the ordered cane from the listing.
        requested >= available: the order takes what is left and the listing is removed.
        requested <  available: the listing is decremented.
        """
        listings = mongo.db.crop_listings
        listing = listings.find_one({"_id": order.get("listingId")})
        if not listing:
            raise ServiceError("Listing not found. It may have been removed or sold out.", 404)

        available = float(listing.get("quantity_in_tons") or 0)
        if available <= 0:
            raise ServiceError("This listing is out of stock", 400)

        requested = float(order["quantityWanted"])
        price = float(order["proposedPrice"])

        if requested >= available:
            res = listings.delete_one({"_id": listing["_id"], "quantity_in_tons": listing["quantity_in_tons"]})
            if res.deleted_count == 0:
                raise ServiceError("Listing quantity changed, please retry", 409)
            fulfilled, remaining, removed = available, 0.0, True
        else:
            updated = listings.find_one_and_update(
                {"_id": listing["_id"], "quantity_in_tons": {"$gte": requested}},
                {"$inc": {"quantity_in_tons": -requested}, "$set": {"updatedAt": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                raise ServiceError("Listing quantity changed, please retry", 409)
            fulfilled, remaining, removed = requested, float(updated["quantity_in_tons"]), False

        is_partial = requested > fulfilled
        total = round(fulfilled * price, 2) if is_partial else order.get("totalAmount") or round(fulfilled * price, 2)
        current_app.logger.info(
            "listing %s: fulfilled %.2f of %.2f tons (removed=%s)",
            listing["_id"], fulfilled, requested, removed,
        )
        return {
            "isPartial": is_partial,
            "requestedQuantity": requested,
            "fulfilledQuantity": fulfilled,
            "remainingQuantity": remaining,
            "listingRemoved": removed,
            "totalAmount": total,
        }
