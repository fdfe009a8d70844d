import threading
from functools import lru_cache
from typing import Any, Dict, List

import certifi
from bson import ObjectId, errors
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from metrowatch.config import logger, settings
from metrowatch.core.errors import BackendUnavailable, StatusUpdateError
from metrowatch.core.subscription import ChangeSubscription


@lru_cache(maxsize=None)
def get_client() -> MongoClient:
    """The process-wide MongoDB client, created on first use."""
    tls = settings.MONGO_URI.startswith("mongodb+srv://")
    if tls:
        client = MongoClient(settings.MONGO_URI, tlsCAFile=certifi.where())
    else:
        client = MongoClient(settings.MONGO_URI)
    logger.info("MongoDB client created")
    return client


def serialize_report_row(document: Dict[str, Any]) -> Dict[str, Any]:
    row = dict(document)
    if "_id" in row:
        row["report_id"] = str(row.pop("_id"))
    if isinstance(row.get("user_id"), ObjectId):
        row["user_id"] = str(row["user_id"])
    users = row.get("users")
    if isinstance(users, list):
        row["users"] = users[0] if users else None
    if isinstance(row.get("users"), dict):
        row["users"] = {"name": row["users"].get("name")}
    return row


def serialize_change(change: Dict[str, Any]) -> Dict[str, Any]:
    document = change.get("fullDocument")
    key = change.get("documentKey") or {}
    return {
        "operationType": change.get("operationType"),
        "fullDocument": serialize_report_row(document) if document else None,
        "documentKey": {"report_id": str(key["_id"])} if "_id" in key else None,
    }


def _object_id(report_id: str):
    try:
        return ObjectId(report_id)
    except (errors.InvalidId, TypeError):
        return report_id


class MongoReportsBackend:
    """Reports backend on MongoDB: bulk load, status update and change stream."""

    def __init__(self, client: MongoClient = None, db_name: str = None):
        self._client = client
        self.db_name = db_name or settings.MONGO_DB

    @property
    def db(self):
        return (self._client or get_client())[self.db_name]

    @property
    def reports_collection(self):
        return self.db[settings.REPORTS_COLLECTION]

    def fetch_all(self) -> List[Dict[str, Any]]:
        """All reports with the reporting user's name joined in."""
        pipeline = [
            {
                "$lookup": {
                    "from": settings.USERS_COLLECTION,
                    "localField": "user_id",
                    "foreignField": "_id",
                    "as": "users",
                }
            },
        ]
        try:
            documents = list(self.reports_collection.aggregate(pipeline))
        except PyMongoError as e:
            raise BackendUnavailable(f"Failed to fetch reports: {str(e)}") from e
        logger.info(f"Fetched {len(documents)} reports from MongoDB")
        return [serialize_report_row(doc) for doc in documents]

    def update_status(self, report_id: str, status: str) -> Dict[str, Any]:
        try:
            document = self.reports_collection.find_one_and_update(
                {"_id": _object_id(report_id)},
                {"$set": {"status": status}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StatusUpdateError(report_id, f"Failed to update report status: {str(e)}") from e
        if document is None:
            raise StatusUpdateError(report_id, f"Report {report_id} not found")
        return serialize_report_row(document)

    def subscribe(self, subscription: ChangeSubscription):
        """Feed the reports change stream into ``subscription``.

        The stream is opened before this returns, so every write after the
        call is delivered; it is then read in a daemon thread. Returns the
        unsubscribe handle, which closes the stream and stops the thread.
        """
        try:
            stream = self.reports_collection.watch(full_document="updateLookup")
        except PyMongoError as e:
            raise BackendUnavailable(f"Failed to open reports change stream: {str(e)}") from e
        stop = threading.Event()

        def watch():
            try:
                with stream:
                    while not stop.is_set() and stream.alive:
                        change = stream.try_next()
                        if change is None:
                            continue
                        subscription.push_threadsafe(serialize_change(change))
            except PyMongoError as e:
                if not stop.is_set():
                    logger.error(f"Reports change stream failed: {str(e)}")
            except RuntimeError as e:
                logger.debug(f"Change stream stopped: {str(e)}")

        thread = threading.Thread(target=watch, name="reports-change-stream", daemon=True)
        thread.start()
        logger.info(f"Subscribed to '{settings.REPORTS_COLLECTION}' change stream")

        def unsubscribe():
            stop.set()
            stream.close()

        return unsubscribe
