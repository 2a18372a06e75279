"""Shared test fixtures for Finora backend tests."""

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from bson.errors import InvalidId

from common.auth import AccessTokenSigner, PasswordHasher
from app.config import Settings
from app.dependencies import token_ttls
from app.models.account import TokenPurpose, new_account_document
from app.repositories.errors import UniquenessViolation
from app.services.auth.one_time_tokens import OneTimeTokenService
from app.services.auth.session_manager import SessionManager
from app.services.notifications.notification_dispatcher import NotificationDispatcher

TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
STRONG_PASSWORD = "Secr3t!9xQ"


# ─────────────────────────────────────────────────────────────────
# Clock
# ─────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ─────────────────────────────────────────────────────────────────
# In-memory repositories
#
# Each operation yields to the event loop once, then checks and writes
# without another suspension point, like a single-document update on the
# server. Concurrent callers therefore interleave between operations but
# never inside one.
# ─────────────────────────────────────────────────────────────────


def _oid(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _matches(document: dict, conditions: Optional[dict]) -> bool:
    for key, expected in (conditions or {}).items():
        actual = document.get(key)
        if isinstance(expected, dict) and "$ne" in expected:
            if actual == expected["$ne"]:
                return False
        elif actual != expected:
            return False
    return True


def _token_matches(document: dict, field: str, token_hash: str) -> bool:
    token = document.get(field)
    return bool(token) and token.get("hash") == token_hash


class InMemoryAccountRepository:
    def __init__(self):
        self.accounts = {}

    def _email_taken(self, email, except_id=None) -> bool:
        return any(
            a.get("email") == email and a["_id"] != except_id for a in self.accounts.values()
        )

    def _find(self, predicate) -> Optional[dict]:
        for account in self.accounts.values():
            if predicate(account):
                return account
        return None

    async def ensure_indexes(self):
        await asyncio.sleep(0)

    async def create(self, document):
        await asyncio.sleep(0)
        if any(a["handle"] == document["handle"] for a in self.accounts.values()):
            raise UniquenessViolation("handle")
        if document.get("email") and self._email_taken(document["email"]):
            raise UniquenessViolation("email")
        self.accounts[document["_id"]] = copy.deepcopy(document)
        return copy.deepcopy(document)

    async def find_by_id(self, account_id):
        await asyncio.sleep(0)
        account = self.accounts.get(_oid(account_id))
        return copy.deepcopy(account) if account else None

    async def find_by_handle(self, handle):
        await asyncio.sleep(0)
        return copy.deepcopy(self._find(lambda a: a["handle"] == handle))

    async def find_by_email(self, email):
        await asyncio.sleep(0)
        return copy.deepcopy(self._find(lambda a: a.get("email") == email))

    async def find_by_session_token_hash(self, token_hash):
        await asyncio.sleep(0)
        return copy.deepcopy(
            self._find(lambda a: any(s["tokenHash"] == token_hash for s in a["sessions"]))
        )

    async def find_by_token_hash(self, purpose, token_hash):
        await asyncio.sleep(0)
        return copy.deepcopy(self._find(lambda a: _token_matches(a, purpose.value, token_hash)))

    async def update(self, account_id, set_fields, conditions=None):
        await asyncio.sleep(0)
        account = self.accounts.get(_oid(account_id))
        if account is None or not _matches(account, conditions):
            return None
        email = set_fields.get("email")
        if email and self._email_taken(email, except_id=account["_id"]):
            raise UniquenessViolation("email")
        account.update(copy.deepcopy(set_fields))
        return copy.deepcopy(account)

    async def set_token(self, account_id, purpose, token, updated_at, conditions=None):
        return await self.update(
            account_id, {purpose.value: token, "updatedAt": updated_at}, conditions=conditions
        )

    async def consume_token(
        self,
        purpose,
        token_hash,
        now,
        set_fields=None,
        conditions=None,
        adopt_pending_email=False,
    ):
        await asyncio.sleep(0)
        field = purpose.value
        account = self._find(
            lambda a: _token_matches(a, field, token_hash)
            and a[field]["expiresAt"] > now
            and _matches(a, conditions)
        )
        if account is None:
            return None
        changes = {"updatedAt": now, **copy.deepcopy(set_fields or {})}
        if adopt_pending_email:
            target = account[field].get("target")
            if self._email_taken(target, except_id=account["_id"]):
                raise UniquenessViolation("email")
            changes["email"] = target
        changes[field] = None
        account.update(changes)
        return copy.deepcopy(account)

    async def clear_token(self, account_id, purpose, token_hash):
        await asyncio.sleep(0)
        account = self.accounts.get(_oid(account_id))
        if account is None or not _token_matches(account, purpose.value, token_hash):
            return False
        account[purpose.value] = None
        return True

    @staticmethod
    def _next_sessions(sessions, session, now, max_sessions, drop=None):
        live = [s for s in sessions if s["expiresAt"] > now and s["tokenHash"] != drop]
        return (live + [copy.deepcopy(session)])[-max_sessions:]

    async def add_session(self, account_id, session, now, max_sessions, set_fields=None):
        await asyncio.sleep(0)
        account = self.accounts.get(_oid(account_id))
        if account is None:
            return None
        account["sessions"] = self._next_sessions(account["sessions"], session, now, max_sessions)
        account.update({"updatedAt": now, **copy.deepcopy(set_fields or {})})
        return copy.deepcopy(account)

    async def replace_session(self, old_token_hash, session, now, max_sessions):
        await asyncio.sleep(0)
        account = self._find(
            lambda a: any(
                s["tokenHash"] == old_token_hash and s["expiresAt"] > now for s in a["sessions"]
            )
        )
        if account is None:
            return None
        account["sessions"] = self._next_sessions(
            account["sessions"], session, now, max_sessions, drop=old_token_hash
        )
        account["updatedAt"] = now
        return copy.deepcopy(account)

    async def remove_session(self, token_hash):
        await asyncio.sleep(0)
        account = self._find(lambda a: any(s["tokenHash"] == token_hash for s in a["sessions"]))
        if account is None:
            return False
        account["sessions"] = [s for s in account["sessions"] if s["tokenHash"] != token_hash]
        return True

    async def clear_sessions(self, account_id):
        await asyncio.sleep(0)
        account = self.accounts.get(_oid(account_id))
        if account is not None:
            account["sessions"] = []

    async def delete(self, account_id):
        await asyncio.sleep(0)
        return self.accounts.pop(_oid(account_id), None) is not None


class InMemorySubscriberRepository:
    def __init__(self):
        self.subscribers = {}

    def _find(self, predicate) -> Optional[dict]:
        for subscriber in self.subscribers.values():
            if predicate(subscriber):
                return subscriber
        return None

    async def ensure_indexes(self):
        await asyncio.sleep(0)

    async def find_by_email(self, email):
        await asyncio.sleep(0)
        return copy.deepcopy(self._find(lambda s: s["email"] == email))

    async def upsert_pending(self, email, fields, now):
        await asyncio.sleep(0)
        subscriber = self._find(lambda s: s["email"] == email)
        if subscriber is not None and subscriber["confirmed"]:
            raise UniquenessViolation("email")
        if subscriber is None:
            subscriber = {
                "_id": ObjectId(),
                "email": email,
                "confirmed": False,
                "subscribedAt": None,
                "createdAt": now,
            }
            self.subscribers[subscriber["_id"]] = subscriber
        subscriber.update(copy.deepcopy(fields))
        return copy.deepcopy(subscriber)

    async def find_by_token_hash(self, purpose, token_hash):
        await asyncio.sleep(0)
        return copy.deepcopy(self._find(lambda s: _token_matches(s, purpose.value, token_hash)))

    async def set_token(self, subscriber_id, purpose, token, updated_at, conditions=None):
        await asyncio.sleep(0)
        subscriber = self.subscribers.get(_oid(subscriber_id))
        if subscriber is None or not _matches(subscriber, conditions):
            return None
        subscriber.update({purpose.value: copy.deepcopy(token), "updatedAt": updated_at})
        return copy.deepcopy(subscriber)

    async def consume_token(self, purpose, token_hash, now, set_fields=None, conditions=None):
        await asyncio.sleep(0)
        field = purpose.value
        subscriber = self._find(
            lambda s: _token_matches(s, field, token_hash)
            and s[field]["expiresAt"] > now
            and _matches(s, conditions)
        )
        if subscriber is None:
            return None
        subscriber.update({"updatedAt": now, **copy.deepcopy(set_fields or {}), field: None})
        return copy.deepcopy(subscriber)

    async def clear_token(self, subscriber_id, purpose, token_hash):
        await asyncio.sleep(0)
        subscriber = self.subscribers.get(_oid(subscriber_id))
        if subscriber is None or not _token_matches(subscriber, purpose.value, token_hash):
            return False
        subscriber[purpose.value] = None
        return True

    async def delete_by_unsubscribe_hash(self, token_hash):
        await asyncio.sleep(0)
        subscriber = self._find(lambda s: _token_matches(s, "unsubscribeToken", token_hash))
        if subscriber is None:
            return None
        return self.subscribers.pop(subscriber["_id"])

    async def purge_unconfirmed(self, older_than):
        await asyncio.sleep(0)
        stale = [
            sid for sid, s in self.subscribers.items()
            if not s["confirmed"] and s["createdAt"] < older_than
        ]
        for sid in stale:
            del self.subscribers[sid]
        return len(stale)


# ─────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        JWT_SECRET=TEST_JWT_SECRET,
        ENVIRONMENT="test",
        BCRYPT_ROUNDS=4,
        EMAIL_MODE="console",
    )


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def signer():
    return AccessTokenSigner(secret=TEST_JWT_SECRET, expire_minutes=15)


@pytest.fixture
def account_repo():
    return InMemoryAccountRepository()


@pytest.fixture
def subscriber_repo():
    return InMemorySubscriberRepository()


@pytest.fixture
def account_tokens(account_repo, test_settings, clock):
    return OneTimeTokenService(account_repo, token_ttls(test_settings), clock=clock)


@pytest.fixture
def subscriber_tokens(subscriber_repo, test_settings, clock):
    return OneTimeTokenService(subscriber_repo, token_ttls(test_settings), clock=clock)


@pytest.fixture
def session_manager(account_repo, signer, clock):
    return SessionManager(
        repository=account_repo,
        signer=signer,
        refresh_ttl=timedelta(days=7),
        max_sessions=10,
        clock=clock,
    )


@pytest.fixture
def mock_email_service():
    service = MagicMock()
    sent = {"success": True, "mode": "console"}
    for name in (
        "send_verification_email",
        "send_password_reset_email",
        "send_email_change_verification",
        "send_security_alert",
        "send_welcome_email",
        "send_newsletter_confirmation",
        "send_newsletter_welcome",
        "send_newsletter_goodbye",
    ):
        setattr(service, name, AsyncMock(return_value=sent))
    return service


@pytest.fixture
def notifier(mock_email_service):
    return NotificationDispatcher(lambda: mock_email_service)


@pytest.fixture
def device():
    return {"userAgent": "pytest-agent/1.0", "ip": "203.0.113.7"}


@pytest.fixture
def make_account(account_repo, hasher, clock):
    """Insert an account directly, bypassing registration."""

    async def _make(
        handle: str = "alice",
        email: Optional[str] = "alice@example.com",
        password: str = STRONG_PASSWORD,
        verified: bool = True,
        **overrides,
    ) -> dict:
        document = new_account_document(
            handle=handle,
            credential_hash=await hasher.hash(password),
            email=email,
            now=clock(),
        )
        if email:
            document["emailVerified"] = verified
        document.update(overrides)
        return await account_repo.create(document)

    return _make


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() returns a cursor synchronously (not a coroutine),
    # so use MagicMock for it. Async methods like find_one, insert_one,
    # find_one_and_update etc. stay as AsyncMock.
    collection.find = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


@pytest.fixture
def purposes():
    return TokenPurpose
