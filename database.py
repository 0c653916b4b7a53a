"""
MongoDB access for the SkillHorizon API.

A single Store is created when the app starts and handed to each route
through the ``get_store`` dependency.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pymongo import MongoClient
from pymongo.database import Database

from errors import BadRequest, Internal

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "skillHorizonDB")


class Store:
    def __init__(self, db: Database, client: Optional[MongoClient] = None):
        self.db = db
        self.client = client
        self.users = db["users"]
        self.teachers = db["teachers"]
        self.classes = db["classes"]
        self.assignments = db["assignments"]
        self.payments = db["payments"]

    def ensure_indexes(self):
        # one user document per email, even when two sign-ups race
        self.users.create_index("email", unique=True)

    def ping(self):
        self.db.command("ping")

    def close(self):
        if self.client is not None:
            self.client.close()


def connect_store(url: str = DATABASE_URL, name: str = DATABASE_NAME) -> Store:
    client = MongoClient(url)
    logger.info("Connecting to MongoDB database %s", name)
    return Store(client[name], client)


def get_store(request: Request) -> Store:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise Internal("Database unavailable")
    return store


# ----------------------
# Document helpers
# ----------------------

def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise BadRequest("Invalid id format")


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            # pymongo hands back naive datetimes that are already UTC
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            d[k] = v.astimezone(timezone.utc).isoformat()
        elif isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def insert_summary(result) -> Dict[str, Any]:
    return {"acknowledged": result.acknowledged, "inserted_id": str(result.inserted_id)}


def update_summary(result) -> Dict[str, Any]:
    return {
        "acknowledged": result.acknowledged,
        "matched_count": result.matched_count,
        "modified_count": result.modified_count,
    }


def delete_summary(result) -> Dict[str, Any]:
    return {"acknowledged": result.acknowledged, "deleted_count": result.deleted_count}
