"""Per-(account, job kind) sync locks in Redis.

A lock is a ``SET NX EX`` key holding a JSON payload with a random owner
token. Only the owner may release it; the TTL frees locks left behind by
crashed workers. Kinds listed in ``KIND_CONFLICTS`` also refuse to start
while a conflicting kind holds a lock on the same account.

Acquire and release each run as one Lua script, so the conflict check and
the ``SET`` cannot interleave with another worker, and a lock that expired
and was taken over is never deleted by its previous owner.
"""

import json
import logging
import os
import socket
import uuid
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

import redis

from kuralis_sync.config import get_settings
from kuralis_sync.enums import PLATFORM_IMPORT_KINDS, PLATFORM_ORDER_KINDS
from kuralis_sync.errors import SyncLockUnavailable
from kuralis_sync.utils import utcnow

logger = logging.getLogger(__name__)

LOCK_PREFIX = "sync"
PUSH_INVENTORY_KIND = "PushInventory"

_IMPORT_KINDS = set(PLATFORM_IMPORT_KINDS.values())
_ORDER_KINDS = set(PLATFORM_ORDER_KINDS.values())

# Listing imports, order syncs and inventory pushes all write product and
# listing quantities, so no two of these groups run at once on an account.
KIND_CONFLICTS: dict[str, set[str]] = {
    **{kind: _ORDER_KINDS | {PUSH_INVENTORY_KIND} for kind in _IMPORT_KINDS},
    **{kind: _IMPORT_KINDS | {PUSH_INVENTORY_KIND} for kind in _ORDER_KINDS},
    PUSH_INVENTORY_KIND: _IMPORT_KINDS | _ORDER_KINDS,
}

# KEYS[1] is the lock, KEYS[2..n] the conflicting locks. Returns the key
# that blocked the acquire, or nil when the lock was taken.
ACQUIRE_SCRIPT = """
for i = 2, #KEYS do
    if redis.call("EXISTS", KEYS[i]) == 1 then
        return KEYS[i]
    end
end
if redis.call("SET", KEYS[1], ARGV[1], "NX", "EX", ARGV[2]) then
    return false
end
return KEYS[1]
"""

# Delete KEYS[1] only while it still holds our payload
RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


@lru_cache
def get_redis() -> redis.Redis:
    return redis.from_url(get_settings().redis_url, decode_responses=True)


def lock_key(account_id, job_kind: str) -> str:
    return f"{LOCK_PREFIX}:{account_id}:{job_kind}"


class SyncLock:
    """Handle for a held lock."""

    def __init__(self, client: redis.Redis, key: str, owner: str, payload: str):
        self.client = client
        self.key = key
        self.owner = owner
        self.payload = payload

    def release(self) -> bool:
        """Delete the key if we still own it. Returns True when released."""
        try:
            released = self.client.register_script(RELEASE_SCRIPT)(keys=[self.key], args=[self.payload])
        except redis.RedisError:
            logger.exception(f"Failed to release sync lock {self.key}")
            return False
        if not released:
            logger.warning(f"Lock {self.key} expired or is held by another owner, not releasing")
            return False
        logger.info(f"Released sync lock: {self.key}")
        return True


def acquire(account_id, job_kind: str, job_id: str | None = None,
            ttl: int | None = None, client: redis.Redis | None = None) -> SyncLock:
    """Take the lock for ``(account_id, job_kind)`` or raise SyncLockUnavailable."""
    client = client or get_redis()
    ttl = ttl or get_settings().sync_lock_ttl_seconds

    key = lock_key(account_id, job_kind)
    conflict_keys = [lock_key(account_id, conflict) for conflict in sorted(KIND_CONFLICTS.get(job_kind, ()))]
    owner = uuid.uuid4().hex
    payload = json.dumps({
        "owner": owner,
        "job_id": job_id,
        "started_at": utcnow().isoformat(),
        "hostname": socket.gethostname(),
        "pid": os.getpid(),
    })

    blocked_by = client.register_script(ACQUIRE_SCRIPT)(keys=[key, *conflict_keys], args=[payload, ttl])
    if blocked_by == key:
        logger.warning(f"Failed to acquire sync lock: {key} (existing: {client.get(key)})")
        raise SyncLockUnavailable(f"{job_kind} already running for account {account_id}")
    if blocked_by:
        conflict = blocked_by.rsplit(":", 1)[-1]
        logger.warning(f"Sync conflict: {job_kind} blocked by {conflict} ({client.get(blocked_by)})")
        raise SyncLockUnavailable(f"Cannot start {job_kind} while {conflict} is running for account {account_id}")

    logger.info(f"Acquired sync lock: {key} ({job_id})")
    return SyncLock(client, key, owner, payload)


@contextmanager
def sync_lock(account_id, job_kind: str, job_id: str | None = None,
              client: redis.Redis | None = None) -> Iterator[SyncLock]:
    """Hold the lock for the duration of the block, releasing it on every exit path."""
    lock = acquire(account_id, job_kind, job_id=job_id, client=client)
    try:
        yield lock
    finally:
        lock.release()


def is_locked(account_id, job_kind: str, client: redis.Redis | None = None) -> bool:
    client = client or get_redis()
    return bool(client.exists(lock_key(account_id, job_kind)))


def active_locks(account_id, client: redis.Redis | None = None) -> list[dict]:
    """Describe every lock currently held for an account, oldest first."""
    client = client or get_redis()
    locks = []
    for key in client.scan_iter(match=f"{LOCK_PREFIX}:{account_id}:*"):
        raw = client.get(key)
        if raw is None:
            continue
        try:
            info = json.loads(raw)
        except ValueError:
            logger.warning(f"Unreadable sync lock payload at {key}")
            continue
        locks.append({
            "job_kind": key.rsplit(":", 1)[-1],
            "job_id": info.get("job_id"),
            "started_at": info.get("started_at"),
            "hostname": info.get("hostname"),
        })
    return sorted(locks, key=lambda lock: lock["started_at"] or "")
