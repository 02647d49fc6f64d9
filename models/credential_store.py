"""
Credential store: tracks live (non-revoked) token ids.

Each issued token id maps to the owning user id and expires together with
the token. Presence in the store is what makes a signed token usable; logout
and refresh delete entries.

- RedisCredentialStore: redis-py client, per-key TTL, atomic DELETE count
- MemoryCredentialStore: in-process dict guarded by a lock (dev / tests)
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Tuple

from redis import Redis
from redis.exceptions import RedisError

from utils.errors import AppError, ErrorKind, Message
from utils.tokens import AccessRecord, TokenPair

logger = logging.getLogger(__name__)

KEY_PREFIX = "auth:token:"

MSG_SAVE_AUTH = Message("store.credentials.save_auth.app_error", "could not save auth details")
MSG_GET_AUTH = Message("store.credentials.get_auth.app_error", "token is invalid or has already expired")
MSG_DELETE_AUTH = Message("store.credentials.delete_auth.app_error", "could not delete auth details")
MSG_STORE_UNAVAILABLE = Message("store.credentials.unavailable.app_error", "credential store unavailable")


def ttl_seconds(expires_at: datetime) -> int:
    """Seconds until `expires_at`, clamped to at least 1 (Redis rejects <= 0)."""
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return max(1, int((expires_at - datetime.now(timezone.utc)).total_seconds()))


def _not_found(op: str) -> AppError:
    return AppError(op, ErrorKind.NOT_FOUND, MSG_GET_AUTH, 401)


class RedisCredentialStore:
    """Thin Redis wrapper for access/refresh token ids."""

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout: float = 5.0) -> "RedisCredentialStore":
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def save_auth(self, user_id: int, pair: TokenPair) -> None:
        try:
            pipe = self.client.pipeline()
            pipe.set(KEY_PREFIX + pair.access_id, str(user_id), ex=ttl_seconds(pair.access_expires))
            pipe.set(KEY_PREFIX + pair.refresh_id, str(user_id), ex=ttl_seconds(pair.refresh_expires))
            pipe.execute()
        except RedisError as exc:
            logger.error("save_auth failed for user %s: %s", user_id, exc)
            raise AppError("RedisCredentialStore.SaveAuth", ErrorKind.INTERNAL, MSG_SAVE_AUTH, 500)

    def get_auth(self, record: AccessRecord) -> int:
        try:
            value = self.client.get(KEY_PREFIX + record.access_id)
        except RedisError as exc:
            logger.error("get_auth failed: %s", exc)
            raise AppError("RedisCredentialStore.GetAuth", ErrorKind.INTERNAL, MSG_STORE_UNAVAILABLE, 500)
        if value is None:
            raise _not_found("RedisCredentialStore.GetAuth")
        try:
            user_id = int(value)
        except (TypeError, ValueError):
            raise _not_found("RedisCredentialStore.GetAuth")
        if user_id != record.user_id:
            raise _not_found("RedisCredentialStore.GetAuth")
        return user_id

    def delete_auth(self, token_id: str) -> int:
        try:
            return int(self.client.delete(KEY_PREFIX + token_id))
        except RedisError as exc:
            logger.error("delete_auth failed: %s", exc)
            raise AppError("RedisCredentialStore.DeleteAuth", ErrorKind.INTERNAL, MSG_DELETE_AUTH, 500)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


class MemoryCredentialStore:
    """Process local store with the same contract; not shared across workers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[int, datetime]] = {}

    def _purge_expired(self, now: datetime) -> None:
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for k in expired:
            self._entries.pop(k, None)

    def save_auth(self, user_id: int, pair: TokenPair) -> None:
        with self._lock:
            self._purge_expired(datetime.now(timezone.utc))
            self._entries[pair.access_id] = (user_id, pair.access_expires)
            self._entries[pair.refresh_id] = (user_id, pair.refresh_expires)

    def get_auth(self, record: AccessRecord) -> int:
        with self._lock:
            self._purge_expired(datetime.now(timezone.utc))
            entry = self._entries.get(record.access_id)
        if entry is None or entry[0] != record.user_id:
            raise _not_found("MemoryCredentialStore.GetAuth")
        return entry[0]

    def delete_auth(self, token_id: str) -> int:
        with self._lock:
            self._purge_expired(datetime.now(timezone.utc))
            return 1 if self._entries.pop(token_id, None) is not None else 0

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(datetime.now(timezone.utc))
            return len(self._entries)


def build_credential_store(config) -> RedisCredentialStore | MemoryCredentialStore:
    kind = (config.get("CREDENTIAL_STORE") or "memory").lower()
    if kind == "redis":
        return RedisCredentialStore.from_url(config["REDIS_URL"])
    if kind == "memory":
        return MemoryCredentialStore()
    raise ValueError(f"Unknown CREDENTIAL_STORE: {kind}")
