# canelink/indexes.py
"""
Index definitions for every collection, plus the invitation index repair.

Uniqueness of pending invitations relies on partial unique indexes. Each
partialFilterExpression is scoped by invitationType and guards the refs with
$type: 'objectId', so documents of another type (whose refs are null) never
collide with each other.
"""
from __future__ import annotations

import logging

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from canelink.models.invitation_models import REQUIRED_REFS

log = logging.getLogger(__name__)

# Mongo error codes we treat as "nothing to drop"
NAMESPACE_NOT_FOUND = 26
INDEX_NOT_FOUND = 27

_OID = {"$type": "objectId"}

INVITATION_UNIQUE_INDEXES = [
    (
        [("invitationType", ASCENDING), ("workerId", ASCENDING), ("scheduleId", ASCENDING)],
        {
            "name": "uniq_pending_hhm_to_worker",
            "unique": True,
            "partialFilterExpression": {
                "invitationType": "hhm-to-worker",
                "workerId": _OID,
                "scheduleId": _OID,
                "status": "pending",
            },
        },
    ),
    (
        [("invitationType", ASCENDING), ("factoryId", ASCENDING), ("hhmId", ASCENDING)],
        {
            "name": "uniq_pending_factory_to_hhm",
            "unique": True,
            "partialFilterExpression": {
                "invitationType": "factory-to-hhm",
                "factoryId": _OID,
                "hhmId": _OID,
                "status": "pending",
            },
        },
    ),
    (
        [("invitationType", ASCENDING), ("hhmId", ASCENDING), ("factoryId", ASCENDING)],
        {
            "name": "uniq_pending_hhm_to_factory",
            "unique": True,
            "partialFilterExpression": {
                "invitationType": "hhm-to-factory",
                "hhmId": _OID,
                "factoryId": _OID,
                "status": "pending",
            },
        },
    ),
]

# Un-discriminated indexes from older deployments. They enforce uniqueness
# across types, so null refs of unrelated invitations collide.
LEGACY_INVITATION_INDEXES = (
    "workerId_1_scheduleId_1",
    "factoryId_1_hhmId_1",
    "hhmId_1_factoryId_1",
    "invitationType_1_workerId_1_scheduleId_1",
    "invitationType_1_factoryId_1_hhmId_1",
)

INDEX_SPECS = {
    "users": [
        ([("username", ASCENDING)], {"name": "uniq_username", "unique": True}),
        ([("email", ASCENDING)], {"name": "uniq_email", "unique": True}),
        ([("phone", ASCENDING)], {"name": "uniq_phone", "unique": True}),
        ([("role", ASCENDING), ("isActive", ASCENDING)], {"name": "idx_role_active"}),
    ],
    "crop_listings": [
        ([("farmer_id", ASCENDING), ("status", ASCENDING)], {"name": "idx_farmer_status"}),
        ([("status", ASCENDING), ("createdAt", DESCENDING)], {"name": "idx_status_created"}),
        ([("crop_variety", ASCENDING)], {"name": "idx_variety"}),
    ],
    "orders": [
        ([("sellerId", ASCENDING), ("status", ASCENDING)], {"name": "idx_seller_status"}),
        ([("buyerId", ASCENDING), ("status", ASCENDING)], {"name": "idx_buyer_status"}),
        ([("listingId", ASCENDING)], {"name": "idx_listing"}),
    ],
    "schedules": [
        ([("hhmId", ASCENDING), ("status", ASCENDING)], {"name": "idx_owner_status"}),
        ([("status", ASCENDING), ("startDate", ASCENDING)], {"name": "idx_status_start"}),
        ([("jobType", ASCENDING)], {"name": "idx_job_type"}),
    ],
    "applications": [
        (
            [("workerId", ASCENDING), ("scheduleId", ASCENDING)],
            {"name": "uniq_worker_schedule", "unique": True},
        ),
        ([("hhmId", ASCENDING), ("status", ASCENDING)], {"name": "idx_hhm_status"}),
        ([("scheduleId", ASCENDING), ("status", ASCENDING)], {"name": "idx_schedule_status"}),
    ],
    "invitations": INVITATION_UNIQUE_INDEXES + [
        ([("hhmId", ASCENDING), ("status", ASCENDING)], {"name": "idx_hhm_status"}),
        ([("factoryId", ASCENDING), ("status", ASCENDING)], {"name": "idx_factory_status"}),
        ([("workerId", ASCENDING), ("status", ASCENDING)], {"name": "idx_worker_status"}),
        ([("scheduleId", ASCENDING), ("status", ASCENDING)], {"name": "idx_schedule_status"}),
        ([("invitationType", ASCENDING), ("status", ASCENDING)], {"name": "idx_type_status"}),
        ([("status", ASCENDING), ("createdAt", DESCENDING)], {"name": "idx_status_created"}),
        ([("expiresAt", ASCENDING)], {"name": "idx_expires"}),
    ],
    "contracts": [
        (
            [("hhm_id", ASCENDING), ("factory_id", ASCENDING)],
            {
                "name": "uniq_active_hhm_factory",
                "unique": True,
                # $in in a partial filter needs MongoDB 6.0+
                "partialFilterExpression": {"status": {"$in": ["hhm_pending", "factory_offer"]}},
            },
        ),
        ([("factory_id", ASCENDING), ("status", ASCENDING)], {"name": "idx_factory_status"}),
        ([("expires_at", ASCENDING)], {"name": "idx_expires"}),
    ],
    "farmer_contracts": [
        ([("farmer_id", ASCENDING), ("status", ASCENDING)], {"name": "idx_farmer_status"}),
        ([("hhm_id", ASCENDING), ("status", ASCENDING)], {"name": "idx_hhm_status"}),
    ],
    "bills": [
        ([("factoryId", ASCENDING), ("billDate", DESCENDING)], {"name": "idx_factory_date"}),
        ([("farmerId", ASCENDING)], {"name": "idx_farmer"}),
        ([("status", ASCENDING)], {"name": "idx_status"}),
    ],
    "role_features": [
        ([("roleName", ASCENDING)], {"name": "uniq_role_name", "unique": True}),
    ],
    "announcements": [
        ([("targetAudience", ASCENDING), ("isActive", ASCENDING)], {"name": "idx_audience_active"}),
        ([("createdAt", DESCENDING)], {"name": "idx_created"}),
        ([("expiresAt", ASCENDING)], {"name": "idx_expires"}),
    ],
}


def ensure_indexes(db, collections=None) -> list:
    """Create the indexes in INDEX_SPECS. Failures are logged, not raised."""
    created = []
    for col_name, specs in INDEX_SPECS.items():
        if collections and col_name not in collections:
            continue
        col = db[col_name]
        for keys, options in specs:
            try:
                created.append(col.create_index(keys, **options))
            except OperationFailure as e:
                log.warning("index error on %s.%s: %s", col_name, options.get("name"), e)
    return created


def drop_index_if_exists(col, name: str) -> bool:
    """Drop an index by name; a missing index (or collection) is a no-op."""
    try:
        col.drop_index(name)
        log.info("dropped index %s.%s", col.name, name)
        return True
    except OperationFailure as e:
        if e.code in (INDEX_NOT_FOUND, NAMESPACE_NOT_FOUND):
            log.debug("index %s.%s not present", col.name, name)
            return False
        raise


def malformed_invitation_filter() -> dict:
    """Invitations missing one of the refs their type requires."""
    return {
        "$or": [
            {"invitationType": t, "$or": [{ref: None} for ref in refs]}
            for t, refs in REQUIRED_REFS.items()
        ]
    }


def repair_invitation_indexes(db) -> dict:
    """
    Drop legacy invitation indexes, remove invitations whose required refs
    are null, normalize the legacy 'declined' status, then recreate the
    partial unique indexes.
    """
    col = db["invitations"]

    dropped = [name for name in LEGACY_INVITATION_INDEXES if drop_index_if_exists(col, name)]
    # our own unique indexes too, so option changes take effect
    for _keys, options in INVITATION_UNIQUE_INDEXES:
        if drop_index_if_exists(col, options["name"]):
            dropped.append(options["name"])

    removed = col.delete_many(malformed_invitation_filter()).deleted_count
    relabeled = col.update_many(
        {"status": "declined"}, {"$set": {"status": "rejected"}}
    ).modified_count

    created = ensure_indexes(db, collections=("invitations",))
    log.info(
        "invitation index repair: dropped=%s removed=%s relabeled=%s created=%s",
        dropped, removed, relabeled, created,
    )
    return {
        "dropped": dropped,
        "removedMalformed": removed,
        "relabeledDeclined": relabeled,
        "created": created,
    }
