import asyncio

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from metrowatch.config import settings
from metrowatch.core.database import MongoReportsBackend, serialize_change, serialize_report_row
from metrowatch.core.errors import BackendUnavailable, StatusUpdateError
from metrowatch.core.subscription import ChangeSubscription

REPORT_ID = ObjectId("65a1b2c3d4e5f60718293a4b")
USER_ID = ObjectId("65a1b2c3d4e5f60718293a4c")


def document(**fields):
    doc = {
        "_id": REPORT_ID,
        "latitude": "14.55",
        "longitude": "121.02",
        "severity": "High",
        "category": "Flooding",
        "date": "2024-01-01",
        "time": "08:30:00",
        "status": "pending",
        "user_id": USER_ID,
        "upvote": 3,
    }
    doc.update(fields)
    return doc


class FakeStream:
    def __init__(self, changes):
        self.changes = list(changes)
        self.alive = True

    def try_next(self):
        if self.changes:
            return self.changes.pop(0)
        return None

    def close(self):
        self.alive = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeCollection:
    def __init__(self, documents=(), changes=(), error=None):
        self.documents = list(documents)
        self.stream = FakeStream(changes)
        self.error = error
        self.pipelines = []

    def aggregate(self, pipeline):
        if self.error:
            raise self.error
        self.pipelines.append(pipeline)
        return iter(self.documents)

    def find_one_and_update(self, query, update, return_document=None):
        if self.error:
            raise self.error
        for doc in self.documents:
            if doc["_id"] == query["_id"]:
                doc.update(update["$set"])
                return doc
        return None

    def watch(self, full_document=None):
        if self.error:
            raise self.error
        return self.stream


def backend_for(collection):
    client = {"metrowatch": {settings.REPORTS_COLLECTION: collection}}
    return MongoReportsBackend(client=client, db_name="metrowatch")


def test_row_ids_become_strings():
    row = serialize_report_row(document(users=[{"_id": USER_ID, "name": "Juan", "email": "j@x.ph"}]))
    assert row["report_id"] == str(REPORT_ID)
    assert "_id" not in row
    assert row["user_id"] == str(USER_ID)
    assert row["users"] == {"name": "Juan"}


def test_empty_lookup_has_no_user():
    row = serialize_report_row(document(users=[]))
    assert row["users"] is None


def test_delete_change_maps_document_key():
    change = serialize_change({"operationType": "delete", "documentKey": {"_id": REPORT_ID}})
    assert change == {
        "operationType": "delete",
        "fullDocument": None,
        "documentKey": {"report_id": str(REPORT_ID)},
    }


def test_update_without_full_document_is_dropped(store):
    store.apply_snapshot([serialize_report_row(document(users=[{"name": "Juan"}]))])
    change = serialize_change(
        {"operationType": "update", "fullDocument": None, "documentKey": {"_id": REPORT_ID}}
    )
    assert not store.apply_change(change)
    assert store.dropped == 1
    assert store.get(str(REPORT_ID)).status == "pending"


def test_fetch_all_joins_users():
    collection = FakeCollection([document(users=[{"name": "Juan"}]), document(_id=USER_ID, users=[])])
    rows = backend_for(collection).fetch_all()
    assert [r["report_id"] for r in rows] == [str(REPORT_ID), str(USER_ID)]
    assert collection.pipelines[0][0]["$lookup"]["as"] == "users"


def test_fetch_all_failure_is_backend_unavailable():
    with pytest.raises(BackendUnavailable):
        backend_for(FakeCollection(error=PyMongoError("no primary"))).fetch_all()


def test_update_status():
    backend = backend_for(FakeCollection([document()]))
    row = backend.update_status(str(REPORT_ID), "resolved")
    assert row["status"] == "resolved"
    with pytest.raises(StatusUpdateError):
        backend.update_status(str(USER_ID), "resolved")


async def test_subscribe_opens_stream_before_returning():
    collection = FakeCollection(
        changes=[{"operationType": "insert", "fullDocument": document(), "documentKey": {"_id": REPORT_ID}}]
    )
    subscription = ChangeSubscription(settings.REPORTS_COLLECTION)
    unsubscribe = backend_for(collection).subscribe(subscription)
    subscription.bind(unsubscribe)
    try:
        change = await asyncio.wait_for(subscription.__anext__(), timeout=2)
    finally:
        subscription.release()
    assert change["documentKey"] == {"report_id": str(REPORT_ID)}
    assert collection.stream.alive is False


def test_subscribe_failure_is_backend_unavailable():
    subscription = ChangeSubscription(settings.REPORTS_COLLECTION)
    with pytest.raises(BackendUnavailable):
        backend_for(FakeCollection(error=PyMongoError("not a replica set"))).subscribe(subscription)
