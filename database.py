
# Example usage:
# from database import Database, serialize_document
#
# # Build the gateway from environment variables (no network traffic yet)
# db = Database.from_env()
#
# # Insert an item; createdAt is stamped here
# item = db.create_document(db.items(), {"name": "Tacos", "price": 8.5})
#
# # Newest first, at most 100
# items = db.get_documents(db.items(), limit=100)
#
# # Fetch / delete by id
# db.get_document(db.items(), str(item["_id"]))
# db.delete_document(db.items(), str(item["_id"]))


import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from bson import ObjectId
from dotenv import load_dotenv
from pymongo import DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError
from pymongo.server_api import ServerApi

from errors import ConflictError, StoreError

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def load_env(base_dir: str = BASE_DIR):
    """Load .env.local from base_dir, then .env; existing variables win"""
    load_dotenv(os.path.join(base_dir, ".env.local"))
    load_dotenv(os.path.join(base_dir, ".env"))


load_env()

DEFAULT_CLUSTER = "cluster0.fab0szf.mongodb.net"
DEFAULT_DB_NAME = "chef"

USERS = "users"
ITEMS = "items"


def database_url_from_env() -> str:
    """Prefer a fully composed MONGODB_URI; otherwise build one from DB_USER/DB_PASS"""
    url = os.getenv("MONGODB_URI")
    if url:
        return url

    user = os.getenv("DB_USER")
    password = os.getenv("DB_PASS")
    cluster = os.getenv("MONGO_CLUSTER", DEFAULT_CLUSTER)
    if not user or not password:
        logger.warning("MONGODB_URI is not set. Set DB_USER/DB_PASS or MONGODB_URI before starting the server.")
    return f"mongodb+srv://{user}:{password}@{cluster}/?appName=Cluster0"


def mongo_client(url: str) -> MongoClient:
    return MongoClient(url, server_api=ServerApi("1", strict=True, deprecation_errors=True))


def utcnow() -> datetime:
    # MongoDB stores dates with millisecond precision
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


@contextmanager
def store_errors(action: str):
    """Translate driver failures into API errors

    A unique index violation becomes ConflictError; anything else the driver
    raises becomes StoreError.
    """
    try:
        yield
    except DuplicateKeyError as e:
        raise ConflictError("Record already exists") from e
    except PyMongoError as e:
        raise StoreError(f"{action} failed: {e}") from e


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    return value


def serialize_document(doc: dict) -> dict:
    """Convert a stored document into a JSON-ready dict

    The ObjectId `_id` becomes a string `id` and datetimes become ISO-8601
    UTC strings, e.g. 2024-05-01T12:00:00.000Z.
    """
    data = {"id": str(doc["_id"])} if "_id" in doc else {}
    for key, value in doc.items():
        if key == "_id":
            continue
        data[key] = serialize_value(value)
    return data


class Database:
    """Lazily connected handle to the document store

    Nothing touches the network until connect() runs, either explicitly at
    startup or on the first collection access. The connect step is guarded
    by a lock, so concurrent first requests share a single client.

    The unique index on users.email is built separately, on first access to
    the users collection. If existing data prevents the build (duplicate
    emails), the failure is logged and `email_index` stays False; callers
    then fall back to a pre-insert lookup. Items never depend on it.
    """

    def __init__(self, url: str, name: str, client_factory: Callable[[str], MongoClient] = mongo_client):
        self.url = url
        self.name = name
        self._client_factory = client_factory
        self._client: Optional[MongoClient] = None
        self._lock = threading.Lock()
        self._index_lock = threading.Lock()
        self._indexes_checked = False
        self.email_index = False

    @classmethod
    def from_env(cls) -> "Database":
        return cls(database_url_from_env(), os.getenv("DB_NAME", DEFAULT_DB_NAME))

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def connect(self) -> MongoClient:
        """Create the client, once per process

        Raises:
            StoreError: the client could not be created. The gateway stays
                disconnected so a later call can try again.
        """
        if self._client is not None:
            return self._client

        with self._lock:
            if self._client is None:
                try:
                    client = self._client_factory(self.url)
                except PyMongoError as e:
                    raise StoreError(f"Could not connect to MongoDB: {e}") from e
                self._client = client
                logger.info("Connected to MongoDB")
        return self._client

    def ensure_indexes(self) -> bool:
        """Build the unique users.email index, once

        Returns:
            bool: True when the index is in place
        """
        if self._indexes_checked:
            return self.email_index

        with self._index_lock:
            if not self._indexes_checked:
                users = self.collection(USERS)
                try:
                    users.create_index("email", unique=True)
                    self.email_index = True
                except OperationFailure as e:
                    # Existing duplicates; uniqueness falls back to a pre-insert check
                    logger.warning("Could not build unique index on users.email: %s", e)
                    self.email_index = False
                except PyMongoError as e:
                    raise StoreError(f"Index build failed: {e}") from e
                self._indexes_checked = True
        return self.email_index

    def ping(self) -> dict:
        with store_errors("MongoDB ping"):
            return self.connect().admin.command("ping")

    def close(self):
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def collection(self, collection_name: str) -> Collection:
        return self.connect()[self.name][collection_name]

    def users(self) -> Collection:
        self.ensure_indexes()
        return self.collection(USERS)

    def items(self) -> Collection:
        return self.collection(ITEMS)

    # Helper functions for common database operations
    def create_document(self, collection: Collection, data: dict) -> dict:
        """Insert a single document with a createdAt timestamp

        Args:
            collection: Target collection, e.g. db.items()
            data: Validated fields of the new record

        Returns:
            dict: The stored document, including its `_id`

        Raises:
            ConflictError: a unique index rejected the document
            StoreError: any other database failure
        """
        doc = dict(data)
        doc["createdAt"] = utcnow()
        with store_errors(f"Insert into {collection.name}"):
            result = collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get_documents(self, collection: Collection, limit: int = None) -> list:
        """Get documents from collection, newest first"""
        with store_errors(f"Query {collection.name}"):
            cursor = collection.find({}).sort("createdAt", DESCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)

    def find_one(self, collection: Collection, filter_dict: dict) -> Optional[dict]:
        with store_errors(f"Query {collection.name}"):
            return collection.find_one(filter_dict)

    def get_document(self, collection: Collection, doc_id: str) -> Optional[dict]:
        return self.find_one(collection, {"_id": ObjectId(doc_id)})

    def delete_document(self, collection: Collection, doc_id: str) -> bool:
        """Delete a document by id; False when nothing matched"""
        with store_errors(f"Delete from {collection.name}"):
            result = collection.delete_one({"_id": ObjectId(doc_id)})
        return result.deleted_count > 0
