# canelink/routes/listings/listing_routes.py

from flask import Blueprint, request
from flask_jwt_extended import current_user

from canelink.security import login_required, role_required
from canelink.services.listing_service import ListingService
from canelink.utils.responses import body, ok, page_args

listing_bp = Blueprint("listings", __name__, url_prefix="/api/listings")


# -----------------------------------------
# PUBLIC MARKETPLACE
# GET /api/listings/marketplace
# -----------------------------------------
@listing_bp.get("/marketplace")
def marketplace():
    page, limit = page_args()
    listings, pagination = ListingService.marketplace(request.args, page, limit)
    return ok(listings, pagination=pagination)


# -----------------------------------------
# FARMER CRUD
# -----------------------------------------
@listing_bp.post("/create")
@role_required("Farmer")
def create_listing():
    doc = ListingService.create_listing(current_user, body())
    return ok(doc, "Listing created successfully", 201)


@listing_bp.get("/my-listings")
@role_required("Farmer")
def my_listings():
    page, limit = page_args()
    listings, pagination = ListingService.my_listings(
        current_user, request.args.get("status"), page, limit
    )
    return ok(listings, pagination=pagination)


@listing_bp.get("/<listing_id>")
@login_required
def get_listing(listing_id):
    return ok(ListingService.listing_detail(listing_id))


@listing_bp.put("/<listing_id>")
@role_required("Farmer")
def update_listing(listing_id):
    doc = ListingService.update_listing(current_user, listing_id, body())
    return ok(doc, "Listing updated successfully")


@listing_bp.delete("/<listing_id>")
@role_required("Farmer")
def delete_listing(listing_id):
    ListingService.delete_listing(current_user, listing_id)
    return ok(message="Listing deleted successfully")


@listing_bp.put("/<listing_id>/status")
@role_required("Farmer")
def set_listing_status(listing_id):
    doc = ListingService.set_status(current_user, listing_id, body())
    return ok(doc, f"Listing marked as {doc['status']}")
