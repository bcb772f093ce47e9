import pytest
from pymongo.errors import OperationFailure

from canelink.indexes import (
    INDEX_NOT_FOUND,
    INDEX_SPECS,
    INVITATION_UNIQUE_INDEXES,
    LEGACY_INVITATION_INDEXES,
    drop_index_if_exists,
    ensure_indexes,
    malformed_invitation_filter,
    repair_invitation_indexes,
)


class Result:
    def __init__(self, deleted_count=0, modified_count=0):
        self.deleted_count = deleted_count
        self.modified_count = modified_count


class FakeCollection:
    """Records index calls; drop_index fails with code 27 for unknown names."""

    def __init__(self, name, indexes=()):
        self.name = name
        self.indexes = set(indexes)
        self.created = []
        self.deleted_filter = None
        self.drop_error = None

    def drop_index(self, name):
        if self.drop_error:
            raise self.drop_error
        if name not in self.indexes:
            raise OperationFailure("index not found with name [%s]" % name, code=INDEX_NOT_FOUND)
        self.indexes.discard(name)

    def create_index(self, keys, **options):
        self.created.append((keys, options))
        self.indexes.add(options["name"])
        return options["name"]

    def delete_many(self, query):
        self.deleted_filter = query
        return Result(deleted_count=2)

    def update_many(self, query, update):
        assert query == {"status": "declined"}
        return Result(modified_count=1)


class FakeDB:
    def __init__(self, **collections):
        self.collections = collections

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection(name))


def test_pending_invitation_indexes_are_partial_and_typed():
    for _keys, options in INVITATION_UNIQUE_INDEXES:
        pfe = options["partialFilterExpression"]
        assert options["unique"] is True
        assert pfe["status"] == "pending"
        assert pfe["invitationType"] in ("hhm-to-worker", "factory-to-hhm", "hhm-to-factory")
        refs = [k for k, v in pfe.items() if v == {"$type": "objectId"}]
        assert len(refs) >= 2


def test_every_collection_has_named_indexes():
    for col, specs in INDEX_SPECS.items():
        names = [options["name"] for _keys, options in specs]
        assert len(names) == len(set(names)), col


def test_drop_missing_index_is_noop():
    col = FakeCollection("invitations")
    assert drop_index_if_exists(col, "nope") is False


def test_drop_existing_index():
    col = FakeCollection("invitations", indexes={"workerId_1_scheduleId_1"})
    assert drop_index_if_exists(col, "workerId_1_scheduleId_1") is True
    assert col.indexes == set()


def test_drop_other_errors_propagate():
    col = FakeCollection("invitations")
    col.drop_error = OperationFailure("not authorized", code=13)
    with pytest.raises(OperationFailure):
        drop_index_if_exists(col, "anything")


def test_malformed_filter_covers_each_type():
    clauses = malformed_invitation_filter()["$or"]
    by_type = {c["invitationType"]: c["$or"] for c in clauses}
    assert {"hhmId": None} in by_type["hhm-to-worker"]
    assert {"scheduleId": None} in by_type["hhm-to-worker"]
    assert {"factoryId": None} in by_type["factory-to-hhm"]
    assert len(by_type["hhm-to-factory"]) == 2


def test_repair_drops_legacy_and_recreates(app):
    legacy = LEGACY_INVITATION_INDEXES[0]
    invitations = FakeCollection("invitations", indexes={legacy, "uniq_pending_hhm_to_worker"})
    db = FakeDB(invitations=invitations)

    report = repair_invitation_indexes(db)

    assert legacy in report["dropped"]
    assert "uniq_pending_hhm_to_worker" in report["dropped"]
    assert report["removedMalformed"] == 2
    assert report["relabeledDeclined"] == 1
    assert set(report["created"]) == {o["name"] for _k, o in INDEX_SPECS["invitations"]}
    assert invitations.deleted_filter == malformed_invitation_filter()


def test_ensure_indexes_limits_collections(app):
    db = FakeDB()
    created = ensure_indexes(db, collections=("bills",))
    assert created == [o["name"] for _k, o in INDEX_SPECS["bills"]]


def test_ensure_indexes_logs_failures(app):
    class Failing(FakeCollection):
        def create_index(self, keys, **options):
            raise OperationFailure("conflict", code=85)

    db = FakeDB(role_features=Failing("role_features"))
    assert ensure_indexes(db, collections=("role_features",)) == []
