"""
License Store for the License Server
Handles MongoDB operations for the ``licenses`` collection
"""
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import structlog
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConfigurationError, PyMongoError

from errors import StoreUnavailable, WriteFailure, QueryFailure

logger = structlog.get_logger(component="license_store")


class LicenseStore:
    """
    Append-only access to license records.

    Holds a single collection handle created at startup. A store built
    without a collection reports itself unavailable and every operation
    raises StoreUnavailable.
    """

    def __init__(self, collection: Optional[Collection] = None, client: Optional[MongoClient] = None):
        self._collection = collection
        self._client = client

    @classmethod
    def from_uri(cls, uri: Optional[str], database_name: str, collection_name: str = "licenses") -> "LicenseStore":
        if not uri:
            logger.error("mongo_uri_missing", hint="set MONGO_URI to enable license storage")
            return cls()
        try:
            client = MongoClient(uri)
        except (ConfigurationError, ValueError) as e:
            logger.error("mongo_client_init_failed", error=str(e))
            return cls()
        logger.info("mongo_client_initialized", database=database_name, collection=collection_name)
        return cls(client[database_name][collection_name], client=client)

    @property
    def available(self) -> bool:
        return self._collection is not None

    def _require_collection(self) -> Collection:
        if self._collection is None:
            logger.error("license_store_unavailable")
            raise StoreUnavailable()
        return self._collection

    def insert(self, record: Dict[str, Any]) -> Dict[str, str]:
        """
        Insert a license record, stamping ``createdAt``.

        Not idempotent: every call creates a new document.
        """
        collection = self._require_collection()
        document = dict(record)
        document["createdAt"] = datetime.now(timezone.utc).isoformat()

        try:
            result = collection.insert_one(document)
        except PyMongoError as e:
            logger.error("license_insert_failed", error=str(e), domain=record.get("domain"))
            raise WriteFailure(detail=str(e)) from e

        license_id = str(result.inserted_id)
        logger.info("license_created", id=license_id, domain=record.get("domain"))
        return {"id": license_id}

    def find_one(self, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Exact-match lookup; filters with a None value are ignored."""
        collection = self._require_collection()
        query = {k: v for k, v in filters.items() if v is not None}

        try:
            cursor = collection.find(query).limit(1)
            for document in cursor:
                return document
        except PyMongoError as e:
            logger.error("license_query_failed", error=str(e))
            raise QueryFailure(detail=str(e)) from e
        return None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
