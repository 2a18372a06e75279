"""Unit tests for the MongoDB repositories, against a mocked collection."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from app.models.account import TokenPurpose
from app.repositories import (
    AccountRepository,
    RepositoryError,
    SubscriberRepository,
    UniquenessViolation,
)


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _duplicate(field):
    return DuplicateKeyError(
        f"E11000 duplicate key error collection: finora.accounts index: {field}_1",
        code=11000,
        details={"keyPattern": {field: 1}, "keyValue": {field: "x"}},
    )


def _session(token_hash="new-hash"):
    return {
        "tokenHash": token_hash,
        "expiresAt": NOW + timedelta(days=7),
        "createdAt": NOW,
        "device": {"userAgent": "", "ip": ""},
    }


# ─────────────────────────────────────────────────────────────────
# AccountRepository
# ─────────────────────────────────────────────────────────────────


class TestAccountRepositoryErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["handle", "email"])
    async def test_duplicate_key_names_the_field(self, mock_db, mock_collection, field):
        mock_collection.insert_one.side_effect = _duplicate(field)
        repo = AccountRepository(mock_db)

        with pytest.raises(UniquenessViolation) as exc_info:
            await repo.create({"_id": ObjectId(), "handle": "alice"})

        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_driver_failure_becomes_repository_error(self, mock_db, mock_collection):
        mock_collection.find_one.side_effect = ServerSelectionTimeoutError("no primary")
        repo = AccountRepository(mock_db)

        with pytest.raises(RepositoryError):
            await repo.find_by_handle("alice")

    @pytest.mark.asyncio
    async def test_invalid_id_short_circuits(self, mock_db, mock_collection):
        repo = AccountRepository(mock_db)

        assert await repo.find_by_id("not-an-object-id") is None
        assert await repo.update("nope", {"handle": "x"}) is None
        mock_collection.find_one.assert_not_called()
        mock_collection.find_one_and_update.assert_not_called()


class TestAccountRepositoryTokens:
    @pytest.mark.asyncio
    async def test_consume_filters_on_hash_and_expiry(self, mock_db, mock_collection):
        mock_collection.find_one_and_update.return_value = {"_id": ObjectId()}
        repo = AccountRepository(mock_db)

        await repo.consume_token(
            TokenPurpose.PASSWORD_RESET,
            "abc",
            NOW,
            set_fields={"sessions": []},
            conditions={"emailVerified": True},
        )

        query, update = mock_collection.find_one_and_update.call_args.args
        assert query == {
            "passwordResetToken.hash": "abc",
            "passwordResetToken.expiresAt": {"$gt": NOW},
            "emailVerified": True,
        }
        assert update == {
            "$set": {"updatedAt": NOW, "sessions": [], "passwordResetToken": None}
        }
        assert (
            mock_collection.find_one_and_update.call_args.kwargs["return_document"]
            == ReturnDocument.AFTER
        )

    @pytest.mark.asyncio
    async def test_consume_can_adopt_pending_email(self, mock_db, mock_collection):
        mock_collection.find_one_and_update.return_value = None
        repo = AccountRepository(mock_db)

        result = await repo.consume_token(
            TokenPurpose.EMAIL_CHANGE,
            "abc",
            NOW,
            set_fields={"emailVerified": True},
            adopt_pending_email=True,
        )

        _, update = mock_collection.find_one_and_update.call_args.args
        assert result is None
        assert update == [
            {
                "$set": {
                    "email": "$emailChangeToken.target",
                    "updatedAt": {"$literal": NOW},
                    "emailVerified": {"$literal": True},
                }
            },
            {"$set": {"emailChangeToken": None}},
        ]

    @pytest.mark.asyncio
    async def test_consume_collision_on_email(self, mock_db, mock_collection):
        mock_collection.find_one_and_update.side_effect = _duplicate("email")
        repo = AccountRepository(mock_db)

        with pytest.raises(UniquenessViolation) as exc_info:
            await repo.consume_token(
                TokenPurpose.EMAIL_CHANGE, "abc", NOW, adopt_pending_email=True
            )

        assert exc_info.value.field == "email"

    @pytest.mark.asyncio
    async def test_set_token_is_conditional(self, mock_db, mock_collection):
        account_id = ObjectId()
        repo = AccountRepository(mock_db)
        token = {"hash": "h", "expiresAt": NOW}

        await repo.set_token(account_id, TokenPurpose.EMAIL_CHANGE, token, NOW, conditions={"email": None})

        query, update = mock_collection.find_one_and_update.call_args.args
        assert query == {"_id": account_id, "email": None}
        assert update == {"$set": {"emailChangeToken": token, "updatedAt": NOW}}

    @pytest.mark.asyncio
    async def test_clear_token_only_matching_hash(self, mock_db, mock_collection):
        mock_collection.update_one.return_value = MagicMock(modified_count=0)
        account_id = ObjectId()
        repo = AccountRepository(mock_db)

        cleared = await repo.clear_token(account_id, TokenPurpose.PASSWORD_RESET, "old")

        assert cleared is False
        mock_collection.update_one.assert_awaited_once_with(
            {"_id": account_id, "passwordResetToken.hash": "old"},
            {"$set": {"passwordResetToken": None}},
        )


class TestAccountRepositorySessions:
    @pytest.mark.asyncio
    async def test_replace_requires_live_old_session(self, mock_db, mock_collection):
        repo = AccountRepository(mock_db)
        session = _session()

        await repo.replace_session("old-hash", session, NOW, 10)

        query, update = mock_collection.find_one_and_update.call_args.args
        assert query == {
            "sessions": {"$elemMatch": {"tokenHash": "old-hash", "expiresAt": {"$gt": NOW}}}
        }
        sessions = update[0]["$set"]["sessions"]
        assert sessions["$slice"][1] == -10
        kept, appended = sessions["$slice"][0]["$concatArrays"]
        assert appended == [{"$literal": session}]
        assert {"$ne": ["$$s.tokenHash", "old-hash"]} in kept["$filter"]["cond"]["$and"]
        assert {"$gt": ["$$s.expiresAt", NOW]} in kept["$filter"]["cond"]["$and"]

    @pytest.mark.asyncio
    async def test_add_session_writes_extra_fields(self, mock_db, mock_collection):
        account_id = ObjectId()
        repo = AccountRepository(mock_db)

        await repo.add_session(account_id, _session(), NOW, 5, set_fields={"lastLoginAt": NOW})

        query, update = mock_collection.find_one_and_update.call_args.args
        assert query == {"_id": account_id}
        assert update[0]["$set"]["lastLoginAt"] == {"$literal": NOW}
        assert update[0]["$set"]["sessions"]["$slice"][1] == -5

    @pytest.mark.asyncio
    async def test_remove_session_pulls_entry(self, mock_db, mock_collection):
        mock_collection.update_one.return_value = MagicMock(modified_count=1)
        repo = AccountRepository(mock_db)

        assert await repo.remove_session("h") is True
        mock_collection.update_one.assert_awaited_once_with(
            {"sessions.tokenHash": "h"},
            {"$pull": {"sessions": {"tokenHash": "h"}}},
        )


class TestAccountRepositoryIndexes:
    @pytest.mark.asyncio
    async def test_unique_indexes(self, mock_db, mock_collection):
        await AccountRepository(mock_db).ensure_indexes()

        calls = mock_collection.create_index.call_args_list
        handle = next(c for c in calls if c.args[0] == [("handle", 1)])
        email = next(c for c in calls if c.args[0] == [("email", 1)])
        assert handle.kwargs["unique"] is True
        assert email.kwargs["unique"] is True
        assert email.kwargs["partialFilterExpression"] == {"email": {"$type": "string"}}


# ─────────────────────────────────────────────────────────────────
# SubscriberRepository
# ─────────────────────────────────────────────────────────────────


class TestSubscriberRepository:
    @pytest.mark.asyncio
    async def test_upsert_only_touches_unconfirmed(self, mock_db, mock_collection):
        repo = SubscriberRepository(mock_db)

        await repo.upsert_pending("a@example.com", {"language": "en"}, NOW)

        query, update = mock_collection.find_one_and_update.call_args.args
        assert query == {"email": "a@example.com", "confirmed": False}
        assert update["$set"] == {"language": "en"}
        assert update["$setOnInsert"]["createdAt"] == NOW
        assert mock_collection.find_one_and_update.call_args.kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_upsert_against_confirmed_collides(self, mock_db, mock_collection):
        mock_collection.find_one_and_update.side_effect = _duplicate("email")
        repo = SubscriberRepository(mock_db)

        with pytest.raises(UniquenessViolation):
            await repo.upsert_pending("a@example.com", {"language": "en"}, NOW)

    @pytest.mark.asyncio
    async def test_ttl_index_limited_to_unconfirmed(self, mock_db, mock_collection):
        await SubscriberRepository(mock_db, unconfirmed_ttl=timedelta(hours=48)).ensure_indexes()

        ttl = next(
            c for c in mock_collection.create_index.call_args_list
            if "expireAfterSeconds" in c.kwargs
        )
        assert ttl.args[0] == [("createdAt", 1)]
        assert ttl.kwargs["expireAfterSeconds"] == 48 * 3600
        assert ttl.kwargs["partialFilterExpression"] == {"confirmed": False}

    @pytest.mark.asyncio
    async def test_purge_deletes_stale_unconfirmed(self, mock_db, mock_collection):
        mock_collection.delete_many.return_value = MagicMock(deleted_count=3)
        cutoff = NOW - timedelta(hours=48)

        removed = await SubscriberRepository(mock_db).purge_unconfirmed(cutoff)

        assert removed == 3
        mock_collection.delete_many.assert_awaited_once_with(
            {"confirmed": False, "createdAt": {"$lt": cutoff}}
        )
