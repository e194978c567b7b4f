"""
Database helpers for EcoCollect

A thin wrapper over a pymongo database. Handlers receive a MongoStore through
the `get_store` dependency instead of touching a global client, so tests can
swap in an in-memory database.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError
from pydantic import BaseModel

from config import settings

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


class MongoStore:
    def __init__(self, db):
        self.db = db

    def ensure_indexes(self):
        self.db["user"].create_index([("email", ASCENDING)], unique=True)

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]):
        """Insert a single document with timestamps, return the new id"""
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = data.copy()

        now = datetime.now(timezone.utc)
        data_dict["created_at"] = now
        data_dict["updated_at"] = now

        result = self.db[collection_name].insert_one(data_dict)
        return str(result.inserted_id)

    def find_one(self, collection_name: str, filter_dict: dict, projection: dict = None):
        return self.db[collection_name].find_one(filter_dict, projection)

    def find_by_id(self, collection_name: str, doc_id: str):
        return self.db[collection_name].find_one({"_id": ObjectId(doc_id)})

    def get_documents(self, collection_name: str, filter_dict: dict = None, limit: int = None,
                      sort: list = None, projection: dict = None):
        cursor = self.db[collection_name].find(filter_dict or {}, projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def increment(self, collection_name: str, filter_dict: dict, amounts: dict) -> bool:
        """Atomic $inc; returns False when nothing matched"""
        res = self.db[collection_name].update_one(
            filter_dict,
            {"$inc": amounts, "$set": {"updated_at": datetime.now(timezone.utc)}},
        )
        return res.matched_count > 0

    def set_fields(self, collection_name: str, filter_dict: dict, fields: dict) -> bool:
        res = self.db[collection_name].update_one(
            filter_dict,
            {"$set": {**fields, "updated_at": datetime.now(timezone.utc)}},
        )
        return res.matched_count > 0

    def update_by_id(self, collection_name: str, doc_id: str, fields: dict) -> Optional[dict]:
        """Set fields on the document with this id and return the updated document.

        Raises ValueError for a malformed id; returns None when no document has it.
        """
        try:
            oid = ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid id: {doc_id}")

        return self.db[collection_name].find_one_and_update(
            {"_id": oid},
            {"$set": {**fields, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )

    def ping(self) -> Optional[List[str]]:
        """Collection names when the database answers, None otherwise"""
        try:
            return self.db.list_collection_names()
        except PyMongoError as e:
            logger.warning("Database ping failed: %s", e)
            return None


_lock = threading.Lock()
_store = None
_indexed = False


def get_store() -> Optional[MongoStore]:
    """FastAPI dependency; None when DATABASE_URL is not configured.

    Index creation is retried on every call until it succeeds, so the unique
    email index exists even when the database was down at first use.
    """
    global _store, _indexed
    if not settings.DATABASE_URL:
        return None

    with _lock:
        if _store is None:
            client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
            _store = MongoStore(client[settings.DATABASE_NAME])
        if not _indexed:
            try:
                _store.ensure_indexes()
                _indexed = True
            except PyMongoError as e:
                logger.error("Could not create indexes: %s", e)
    return _store


def serialize(doc: dict) -> dict:
    """Render a stored document for a JSON response"""
    out = dict(doc)
    out["id"] = str(out.pop("_id", ""))
    out.pop("password_hash", None)
    return out
