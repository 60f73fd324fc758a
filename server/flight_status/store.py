"""
Rendezvous store: short-lived Redis lists that collect the partial results of
one fan-out.

A key looks like ``fs:<expectedCount>:<uuid4>``. The planner opens the key,
then every window appends one value; the poller compares the list length with
the count embedded in the key and drains the list once they match.

Next to the list live a few marker keys, all expiring after ``ttl`` seconds:

    <key>:open       written when the fan-out starts
    <key>:w:<i>      window i has appended its value
    <key>:failed     a window could not store its value
    <key>:drained    the list was handed out to a poll
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import List, NamedTuple

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import KEY_PREFIX, RENDEZVOUS_TTL_S, STORE_RETRY_ATTEMPTS
from .errors import StoreError

logger = logging.getLogger("flightstatus.store")

_KEY_RE = re.compile(rf"{KEY_PREFIX}:\d+:[-a-z0-9]{{36}}")
_COUNT_RE = re.compile(rf"^{KEY_PREFIX}:(\d+):")

OPEN_SUFFIX = ":open"
FAILED_SUFFIX = ":failed"
TOMBSTONE_SUFFIX = ":drained"

# KEYS: list, window marker. ARGV: value, ttl.
# The marker makes a replayed append a no-op, so a retry after a lost reply
# cannot push the same window twice.
APPEND_ONCE_SCRIPT = """
if redis.call('SET', KEYS[2], '1', 'NX', 'EX', ARGV[2]) then
    redis.call('RPUSH', KEYS[1], ARGV[1])
    redis.call('EXPIRE', KEYS[1], ARGV[2])
    return 1
end
return 0
"""

_store_retry = retry(
    stop=stop_after_attempt(STORE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
    reraise=True,
)


def random_key() -> str:
    return str(uuid.uuid4())


def new_key(expected_count: int) -> str:
    """Key for a new list that is complete once it holds `expected_count` values."""
    return f"{KEY_PREFIX}:{int(expected_count)}:{random_key()}"


def is_valid_key(candidate: object) -> bool:
    return isinstance(candidate, str) and _KEY_RE.fullmatch(candidate) is not None


def expected_count(key: str) -> int:
    m = _COUNT_RE.match(key or "")
    if not m:
        raise StoreError(f"Malformed rendezvous key {key!r}")
    return int(m.group(1))


def window_marker(key: str, window: int) -> str:
    return f"{key}:w:{int(window)}"


def _decode(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class KeyStatus(NamedTuple):
    size: int
    opened: bool
    failed: bool
    drained: bool


class RendezvousStore:
    """Append-only lists with a TTL over a `redis.asyncio.Redis` client."""

    def __init__(self, redis_client, ttl: int = RENDEZVOUS_TTL_S) -> None:
        self._redis = redis_client
        self.ttl = int(ttl)
        self._append_once = redis_client.register_script(APPEND_ONCE_SCRIPT)

    @_store_retry
    async def _push(self, key: str, value: str, window: int) -> bool:
        added = await self._append_once(
            keys=[key, window_marker(key, window)], args=[value, self.ttl]
        )
        return bool(added)

    @_store_retry
    async def _mark(self, key: str, suffix: str) -> None:
        await self._redis.set(key + suffix, 1, ex=self.ttl)

    async def open(self, key: str) -> None:
        """Record that a fan-out under `key` has started."""
        try:
            await self._mark(key, OPEN_SUFFIX)
        except RedisError as e:
            raise StoreError(f"open of {key} failed: {e}") from e

    async def append(self, key: str, value: str, window: int) -> None:
        """
        Append the value of window `window` and push the key's expiry `ttl`
        seconds out again. A window that already appended is left alone.
        """
        try:
            added = await self._push(key, value, window)
        except RedisError as e:
            raise StoreError(f"append to {key} failed: {e}") from e
        if not added:
            logger.warning(f"Window {window} of {key} was already stored, value dropped")

    async def mark_failed(self, key: str) -> None:
        """Flag the fan-out as broken so that polls stop waiting for it."""
        try:
            await self._mark(key, FAILED_SUFFIX)
        except RedisError as e:
            raise StoreError(f"failure marker for {key} failed: {e}") from e

    async def size(self, key: str) -> int:
        try:
            return int(await self._redis.llen(key))
        except RedisError as e:
            raise StoreError(f"size of {key} failed: {e}") from e

    async def status(self, key: str) -> KeyStatus:
        """List length and markers of `key`, read in one round trip."""
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.llen(key)
                pipe.exists(key + OPEN_SUFFIX)
                pipe.exists(key + FAILED_SUFFIX)
                pipe.exists(key + TOMBSTONE_SUFFIX)
                size, opened, failed, drained = await pipe.execute()
        except RedisError as e:
            raise StoreError(f"status of {key} failed: {e}") from e
        return KeyStatus(int(size), bool(opened), bool(failed), bool(drained))

    async def drain_and_delete(self, key: str) -> List[str]:
        """
        Read the whole list and delete it in one MULTI/EXEC.

        Of two concurrent drains, one gets the values and the other an empty
        list. A tombstone is left behind for `ttl` seconds so that later polls
        can tell a drained key from one that has not received anything yet.
        """
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lrange(key, 0, -1)
                pipe.delete(key)
                pipe.set(key + TOMBSTONE_SUFFIX, 1, ex=self.ttl)
                values, _deleted, _ok = await pipe.execute()
        except RedisError as e:
            raise StoreError(f"drain of {key} failed: {e}") from e
        drained = [_decode(v) for v in values or []]
        logger.debug(f"Drained {len(drained)} partial results from {key}")
        return drained

    async def was_drained(self, key: str) -> bool:
        try:
            return bool(await self._redis.exists(key + TOMBSTONE_SUFFIX))
        except RedisError as e:
            raise StoreError(f"tombstone lookup for {key} failed: {e}") from e
