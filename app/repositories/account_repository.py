"""
Account persistence on MongoDB.

Every token and session mutation is a single-document atomic update. A
one-time token is consumed with one `find_one_and_update` whose filter
matches the stored hash and an unexpired `expiresAt`, so two concurrent
consumers of the same token can never both succeed. Session rotation
removes the old entry and appends the new one in the same update.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from app.models.account import TokenPurpose
from app.repositories.errors import storage_errors

logger = logging.getLogger(__name__)

ACCOUNT_TOKEN_PURPOSES = (
    TokenPurpose.EMAIL_VERIFICATION,
    TokenPurpose.PASSWORD_RESET,
    TokenPurpose.EMAIL_CHANGE,
)


def _object_id(account_id: Any) -> Optional[ObjectId]:
    if isinstance(account_id, ObjectId):
        return account_id
    try:
        return ObjectId(account_id)
    except (InvalidId, TypeError):
        return None


def _literal_fields(fields: dict) -> dict:
    """Wrap values for use inside an aggregation-pipeline update."""
    return {key: {"$literal": value} for key, value in fields.items()}


def _sessions_expression(
    session: dict,
    now: datetime,
    max_sessions: int,
    drop_token_hash: Optional[str] = None,
) -> dict:
    """
    New value of `sessions`: live entries (minus the dropped one) plus the
    new session, keeping only the newest `max_sessions` entries.
    """
    keep = [{"$gt": ["$$s.expiresAt", now]}]
    if drop_token_hash is not None:
        keep.append({"$ne": ["$$s.tokenHash", drop_token_hash]})

    return {
        "$slice": [
            {
                "$concatArrays": [
                    {
                        "$filter": {
                            "input": {"$ifNull": ["$sessions", []]},
                            "as": "s",
                            "cond": {"$and": keep},
                        }
                    },
                    [{"$literal": session}],
                ]
            },
            -max_sessions,
        ]
    }


class AccountRepository:
    """Data access for account documents."""

    COLLECTION = "accounts"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._collection = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        """Create the unique and lookup indexes accounts rely on."""
        with storage_errors():
            await self._collection.create_index([("handle", ASCENDING)], unique=True)
            await self._collection.create_index(
                [("email", ASCENDING)],
                unique=True,
                partialFilterExpression={"email": {"$type": "string"}},
            )
            await self._collection.create_index(
                [("sessions.tokenHash", ASCENDING)],
                unique=True,
                partialFilterExpression={"sessions.tokenHash": {"$exists": True}},
            )
            for purpose in ACCOUNT_TOKEN_PURPOSES:
                await self._collection.create_index(
                    [(f"{purpose.value}.hash", ASCENDING)], sparse=True
                )
        logger.info("Account indexes ensured")

    # =========================================================================
    # Create / read
    # =========================================================================

    async def create(self, document: dict) -> dict:
        """
        Insert a new account document.

        Raises:
            UniquenessViolation: handle or email already in use
            RepositoryError: any other storage failure
        """
        with storage_errors():
            await self._collection.insert_one(document)
        return document

    async def find_by_id(self, account_id: Any) -> Optional[dict]:
        oid = _object_id(account_id)
        if oid is None:
            return None
        with storage_errors():
            return await self._collection.find_one({"_id": oid})

    async def find_by_handle(self, handle: str) -> Optional[dict]:
        with storage_errors():
            return await self._collection.find_one({"handle": handle})

    async def find_by_email(self, email: str) -> Optional[dict]:
        with storage_errors():
            return await self._collection.find_one({"email": email})

    async def find_by_session_token_hash(self, token_hash: str) -> Optional[dict]:
        """Account holding a session with this hash, expired or not."""
        with storage_errors():
            return await self._collection.find_one({"sessions.tokenHash": token_hash})

    async def find_by_token_hash(
        self, purpose: TokenPurpose, token_hash: str
    ) -> Optional[dict]:
        """Account holding a one-time token with this hash, expired or not."""
        with storage_errors():
            return await self._collection.find_one({f"{purpose.value}.hash": token_hash})

    # =========================================================================
    # Conditional updates
    # =========================================================================

    async def update(
        self,
        account_id: Any,
        set_fields: dict,
        conditions: Optional[dict] = None,
    ) -> Optional[dict]:
        """
        Set fields on an account if it still matches `conditions`.

        Returns:
            The updated document, or None if no account matched
        """
        oid = _object_id(account_id)
        if oid is None:
            return None
        query = {"_id": oid, **(conditions or {})}
        with storage_errors():
            return await self._collection.find_one_and_update(
                query,
                {"$set": set_fields},
                return_document=ReturnDocument.AFTER,
            )

    async def set_token(
        self,
        account_id: Any,
        purpose: TokenPurpose,
        token: dict,
        updated_at: datetime,
        conditions: Optional[dict] = None,
    ) -> Optional[dict]:
        """Store a token subdocument, replacing any earlier one for the purpose."""
        return await self.update(
            account_id,
            {purpose.value: token, "updatedAt": updated_at},
            conditions=conditions,
        )

    async def consume_token(
        self,
        purpose: TokenPurpose,
        token_hash: str,
        now: datetime,
        set_fields: Optional[dict] = None,
        conditions: Optional[dict] = None,
        adopt_pending_email: bool = False,
    ) -> Optional[dict]:
        """
        Clear an unexpired token and apply `set_fields` in one update.

        With `adopt_pending_email`, the account's email becomes the target
        bound to its email-change token in the same update.

        Returns:
            The updated document, or None if no unexpired token matched
        """
        field = purpose.value
        query = {
            f"{field}.hash": token_hash,
            f"{field}.expiresAt": {"$gt": now},
            **(conditions or {}),
        }
        fields = {"updatedAt": now, **(set_fields or {})}

        if adopt_pending_email:
            update: Any = [
                {"$set": {"email": f"${field}.target", **_literal_fields(fields)}},
                {"$set": {field: None}},
            ]
        else:
            update = {"$set": {**fields, field: None}}

        with storage_errors():
            return await self._collection.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )

    async def clear_token(
        self, account_id: Any, purpose: TokenPurpose, token_hash: str
    ) -> bool:
        """Unset a token only if it is still the one with this hash."""
        oid = _object_id(account_id)
        if oid is None:
            return False
        with storage_errors():
            result = await self._collection.update_one(
                {"_id": oid, f"{purpose.value}.hash": token_hash},
                {"$set": {purpose.value: None}},
            )
        return result.modified_count > 0

    # =========================================================================
    # Sessions
    # =========================================================================

    async def add_session(
        self,
        account_id: Any,
        session: dict,
        now: datetime,
        max_sessions: int,
        set_fields: Optional[dict] = None,
    ) -> Optional[dict]:
        """
        Append a session, pruning expired entries and capping the set.

        Returns:
            The updated document, or None if the account does not exist
        """
        oid = _object_id(account_id)
        if oid is None:
            return None
        fields = {"updatedAt": now, **(set_fields or {})}
        update = [
            {
                "$set": {
                    "sessions": _sessions_expression(session, now, max_sessions),
                    **_literal_fields(fields),
                }
            }
        ]
        with storage_errors():
            return await self._collection.find_one_and_update(
                {"_id": oid}, update, return_document=ReturnDocument.AFTER
            )

    async def replace_session(
        self,
        old_token_hash: str,
        session: dict,
        now: datetime,
        max_sessions: int,
    ) -> Optional[dict]:
        """
        Swap a live session for a new one in a single update.

        Returns:
            The updated document, or None if no live session had the old hash
        """
        query = {
            "sessions": {
                "$elemMatch": {"tokenHash": old_token_hash, "expiresAt": {"$gt": now}}
            }
        }
        update = [
            {
                "$set": {
                    "sessions": _sessions_expression(
                        session, now, max_sessions, drop_token_hash=old_token_hash
                    ),
                    "updatedAt": {"$literal": now},
                }
            }
        ]
        with storage_errors():
            return await self._collection.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )

    async def remove_session(self, token_hash: str) -> bool:
        with storage_errors():
            result = await self._collection.update_one(
                {"sessions.tokenHash": token_hash},
                {"$pull": {"sessions": {"tokenHash": token_hash}}},
            )
        return result.modified_count > 0

    async def clear_sessions(self, account_id: Any) -> None:
        oid = _object_id(account_id)
        if oid is None:
            return
        with storage_errors():
            await self._collection.update_one({"_id": oid}, {"$set": {"sessions": []}})

    async def delete(self, account_id: Any) -> bool:
        oid = _object_id(account_id)
        if oid is None:
            return False
        with storage_errors():
            result = await self._collection.delete_one({"_id": oid})
        if result.deleted_count:
            logger.info(f"Account deleted: {oid}")
        return result.deleted_count > 0
