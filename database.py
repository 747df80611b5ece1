"""
Database helpers

MongoDB connection and small helpers shared by the CRUD layer.
The connection is configured from DATABASE_URL and DATABASE_NAME
(read from the environment or a .env file). When either is missing,
``db`` stays None and every helper raises DatabaseUnavailable.

Every write goes through these helpers so createdAt/updatedAt stay current.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]
    logger.info("MongoDB client configured for database %s", database_name)


class DatabaseUnavailable(RuntimeError):
    pass


def get_db():
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def _now():
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a single document with timestamps"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = _now()
    data_dict["createdAt"] = now
    data_dict["updatedAt"] = now

    result = get_db()[collection_name].insert_one(data_dict)
    logger.info("Inserted %s document %s", collection_name, result.inserted_id)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None):
    """Get documents from collection"""
    cursor = get_db()[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(collection_name: str, filter_dict: dict, update: dict):
    """Apply an update operator document, bumping updatedAt"""
    update = dict(update)
    update["$set"] = {**update.get("$set", {}), "updatedAt": _now()}
    return get_db()[collection_name].update_one(filter_dict, update)
