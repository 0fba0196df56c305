"""
MongoDB access helpers.

A single process-wide handle is opened at startup by connect(); request
handlers obtain it through the get_db() dependency.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson.objectid import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None


def connect(uri: str, name: str, mongo_client: Optional[MongoClient] = None) -> Database:
    """Open the database handle. Raises if the server cannot be reached."""
    global client, db
    if mongo_client is None:
        mongo_client = MongoClient(uri, serverSelectionTimeoutMS=5000)
        mongo_client.admin.command("ping")
    client = mongo_client
    db = mongo_client[name]
    logger.info("Connected to MongoDB database %r", name)
    return db


def disconnect():
    global client, db
    if client is not None:
        client.close()
    client = None
    db = None


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def ensure_indexes():
    handle = get_db()
    handle["user"].create_index([("email", ASCENDING)], unique=True)
    handle["admin"].create_index([("email", ASCENDING)], unique=True)
    handle["order"].create_index([("order_number", ASCENDING)], unique=True)
    handle["order"].create_index([("user_id", ASCENDING)])
    # one stored order per gateway order; cod orders carry no gateway id
    handle["order"].create_index(
        [("gateway_order_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"gateway_order_id": {"$type": "string"}},
    )


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data) -> str:
    """Insert a pydantic model or dict, stamping created_at/updated_at."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("created_at", stamp)
    data_dict["updated_at"] = stamp
    result = get_db()[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    projection: Optional[Dict[str, int]] = None,
) -> List[dict]:
    cursor = get_db()[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value) -> Optional[ObjectId]:
    """Parse an id from a path or body; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return {k: _serialize_value(v) for k, v in doc.items()}
