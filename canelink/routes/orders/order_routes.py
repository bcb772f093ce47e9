# canelink/routes/orders/order_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import role_required
from canelink.services.order_service import OrderService
from canelink.utils.responses import body, ok, page_args

order_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@order_bp.post("/create")
@role_required("Farmer")
def create_order():
    doc = OrderService.create_order(current_user, body())
    return ok(doc, "Order placed successfully", 201)


@order_bp.get("/received")
@role_required("Farmer")
def received_orders():
    page, limit = page_args()
    orders, pagination = OrderService.received(current_user, request.args, page, limit)
    return ok(orders, pagination=pagination)


@order_bp.get("/sent")
@role_required("Farmer")
def sent_orders():
    page, limit = page_args()
    orders, pagination = OrderService.sent(current_user, request.args, page, limit)
    return ok(orders, pagination=pagination)


@order_bp.get("/listing/<listing_id>")
@role_required("Farmer")
def listing_orders(listing_id):
    return ok(OrderService.for_listing(current_user, listing_id))


# -----------------------------------------
# ACCEPT / REJECT / COMPLETE / CANCEL
# PUT /api/orders/<order_id>/status
# -----------------------------------------
@order_bp.put("/<order_id>/status")
@role_required("Farmer")
def update_order_status(order_id):
    result = OrderService.update_status(current_user, order_id, body())
    order, fulfillment = result["order"], result["partialFulfillment"]

    message = f"Order {order['status']} successfully"
    if fulfillment and fulfillment["isPartial"]:
        message = (
            f"Order accepted with partial fulfillment: {fulfillment['fulfilledQuantity']:g} "
            f"of {fulfillment['requestedQuantity']:g} tons"
        )
    return ok(order, message, partialFulfillment=fulfillment)
