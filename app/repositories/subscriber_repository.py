"""
Newsletter subscriber persistence on MongoDB.

Unconfirmed subscribers expire through a TTL index on `createdAt`
restricted to `confirmed == false`; `purge_unconfirmed` performs the same
sweep on demand.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from app.models.account import TokenPurpose
from app.repositories.errors import storage_errors

logger = logging.getLogger(__name__)


class SubscriberRepository:
    """Data access for newsletter subscribers."""

    COLLECTION = "subscribers"

    def __init__(self, db: AsyncIOMotorDatabase, unconfirmed_ttl: timedelta = timedelta(hours=48)):
        self._collection = db[self.COLLECTION]
        self._unconfirmed_ttl = unconfirmed_ttl

    async def ensure_indexes(self) -> None:
        with storage_errors():
            await self._collection.create_index([("email", ASCENDING)], unique=True)
            await self._collection.create_index(
                [("createdAt", ASCENDING)],
                expireAfterSeconds=int(self._unconfirmed_ttl.total_seconds()),
                partialFilterExpression={"confirmed": False},
            )
            await self._collection.create_index(
                [("confirmationToken.hash", ASCENDING)], sparse=True
            )
            await self._collection.create_index(
                [("unsubscribeToken.hash", ASCENDING)], sparse=True
            )
        logger.info("Subscriber indexes ensured")

    async def find_by_email(self, email: str) -> Optional[dict]:
        with storage_errors():
            return await self._collection.find_one({"email": email})

    async def upsert_pending(self, email: str, fields: dict, now: datetime) -> Optional[dict]:
        """
        Create or refresh an unconfirmed subscriber.

        A confirmed subscriber with the same email makes the upsert collide
        with the unique email index.

        Raises:
            UniquenessViolation: the email belongs to a confirmed subscriber
        """
        with storage_errors():
            return await self._collection.find_one_and_update(
                {"email": email, "confirmed": False},
                {
                    "$set": fields,
                    "$setOnInsert": {
                        "email": email,
                        "confirmed": False,
                        "subscribedAt": None,
                        "createdAt": now,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )

    async def find_by_token_hash(
        self, purpose: TokenPurpose, token_hash: str
    ) -> Optional[dict]:
        with storage_errors():
            return await self._collection.find_one({f"{purpose.value}.hash": token_hash})

    async def set_token(
        self,
        subscriber_id: Any,
        purpose: TokenPurpose,
        token: dict,
        updated_at: datetime,
        conditions: Optional[dict] = None,
    ) -> Optional[dict]:
        with storage_errors():
            return await self._collection.find_one_and_update(
                {"_id": ObjectId(subscriber_id), **(conditions or {})},
                {"$set": {purpose.value: token, "updatedAt": updated_at}},
                return_document=ReturnDocument.AFTER,
            )

    async def consume_token(
        self,
        purpose: TokenPurpose,
        token_hash: str,
        now: datetime,
        set_fields: Optional[dict] = None,
        conditions: Optional[dict] = None,
    ) -> Optional[dict]:
        """Clear an unexpired token and apply `set_fields` in one update."""
        query = {
            f"{purpose.value}.hash": token_hash,
            f"{purpose.value}.expiresAt": {"$gt": now},
            **(conditions or {}),
        }
        with storage_errors():
            return await self._collection.find_one_and_update(
                query,
                {"$set": {"updatedAt": now, **(set_fields or {}), purpose.value: None}},
                return_document=ReturnDocument.AFTER,
            )

    async def clear_token(
        self, subscriber_id: Any, purpose: TokenPurpose, token_hash: str
    ) -> bool:
        with storage_errors():
            result = await self._collection.update_one(
                {"_id": ObjectId(subscriber_id), f"{purpose.value}.hash": token_hash},
                {"$set": {purpose.value: None}},
            )
        return result.modified_count > 0

    async def delete_by_unsubscribe_hash(self, token_hash: str) -> Optional[dict]:
        """Remove the subscriber owning this unsubscribe token, returning it."""
        with storage_errors():
            return await self._collection.find_one_and_delete(
                {"unsubscribeToken.hash": token_hash}
            )

    async def purge_unconfirmed(self, older_than: datetime) -> int:
        with storage_errors():
            result = await self._collection.delete_many(
                {"confirmed": False, "createdAt": {"$lt": older_than}}
            )
        if result.deleted_count:
            logger.info(f"Purged {result.deleted_count} unconfirmed subscribers")
        return result.deleted_count
