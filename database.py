"""
Database Helper Functions

MongoDB helpers shared by the services. Collections:
- "book"  -> catalog entries
- "order" -> customer orders
- "admin" -> admin accounts
"""

import logging
from datetime import datetime, timezone
from typing import Union, Optional, Dict, Any

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import config

logger = logging.getLogger(__name__)

BOOKS = "book"
ORDERS = "order"
ADMINS = "admin"

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL, tz_aware=True)
    db = _client[config.DATABASE_NAME]


def _ensure_db():
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def collection(name: str):
    _ensure_db()
    return db[name]


def to_object_id(doc_id: str) -> Optional[ObjectId]:
    """Parse a hex id; None when malformed"""
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        return None


def ensure_indexes():
    """Create the unique and sort indexes the services rely on"""
    collection(ORDERS).create_index([("order_id", ASCENDING)], unique=True)
    collection(ORDERS).create_index([("created_at", DESCENDING)])
    collection(ADMINS).create_index([("email", ASCENDING)], unique=True)
    logger.info("Database indexes ensured")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace the ObjectId `_id` with a string `id`"""
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a single document with timestamp"""
    # Convert Pydantic model to dict if needed
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict['created_at'] = now
    data_dict['updated_at'] = now

    result = collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None, projection: Optional[dict] = None):
    """Get documents from collection"""
    cursor = collection(collection_name).find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document_by_id(collection_name: str, doc_id: str, projection: Optional[dict] = None) -> Optional[Dict[str, Any]]:
    """Get a single document by _id string"""
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    return collection(collection_name).find_one({"_id": oid}, projection)


def update_document(collection_name: str, doc_id: str, data: dict) -> bool:
    """Update a document by id with $set and updated_at; True when it exists"""
    oid = to_object_id(doc_id)
    if oid is None:
        return False
    data = data.copy()
    data['updated_at'] = utcnow()
    res = collection(collection_name).update_one({"_id": oid}, {"$set": data})
    return res.matched_count > 0


def delete_document(collection_name: str, doc_id: str) -> bool:
    """Delete a document by id"""
    oid = to_object_id(doc_id)
    if oid is None:
        return False
    res = collection(collection_name).delete_one({"_id": oid})
    return res.deleted_count > 0
