from __future__ import annotations

import json
import logging
from typing import Any, List

from logging_utils import log_event

from .errors import InvalidKey, ParseError
from .models import (
    SENTINEL_BAD_AIRPORT,
    SENTINEL_ERROR,
    PollResult,
    PollState,
)
from .store import RendezvousStore, expected_count, is_valid_key

logger = logging.getLogger("flightstatus.poller")


def merge_partials(partials: List[str]) -> List[Any]:
    """
    Concatenate the JSON arrays of all partial results, in arrival order.
    Empty strings are skipped.
    """
    merged: List[Any] = []
    for fragment in partials:
        if not fragment:
            continue
        try:
            items = json.loads(fragment)
        except ValueError as e:
            raise ParseError(f"Partial result is not JSON: {fragment[:80]!r}") from e
        if not isinstance(items, list):
            raise ParseError(f"Partial result is not a JSON array: {fragment[:80]!r}")
        merged.extend(items)
    return merged


class CompletionPoller:
    """
    Answers polls for a rendezvous key. Purely reactive: every call looks at
    the list once and either reports PENDING or drains it for good.
    """

    def __init__(self, store: RendezvousStore) -> None:
        self._store = store

    async def poll(self, key: str) -> PollResult:
        if not is_valid_key(key):
            raise InvalidKey(f"Wrong key {key!r}")

        expected = expected_count(key)
        status = await self._store.status(key)
        size = status.size

        if size < expected:
            if size == 0 and status.drained:
                raise InvalidKey(f"Key {key} was already drained")
            if status.failed:
                log_event(
                    logger,
                    "rendezvous_fanout_failed",
                    level=logging.ERROR,
                    key=key,
                    size=size,
                    expected=expected,
                )
                return PollResult(state=PollState.ERROR)
            if not status.opened:
                # Never dispatched here, or expired before it completed
                raise InvalidKey(f"Key {key} is unknown or expired")
            return PollResult(state=PollState.PENDING)

        if size > expected:
            log_event(
                logger,
                "rendezvous_list_overflow",
                level=logging.CRITICAL,
                key=key,
                size=size,
                expected=expected,
            )
            return PollResult(state=PollState.ERROR)

        partials = await self._store.drain_and_delete(key)
        if not partials:
            # Another poll drained it between our size check and our drain.
            raise InvalidKey(f"Key {key} was drained by a concurrent poll")

        if any(p == SENTINEL_ERROR for p in partials):
            log_event(
                logger,
                "rendezvous_error_in_partials",
                level=logging.ERROR,
                key=key,
                errors=partials.count(SENTINEL_ERROR),
                windows=len(partials),
            )
            return PollResult(state=PollState.ERROR)

        if any(p == SENTINEL_BAD_AIRPORT for p in partials):
            return PollResult(state=PollState.BAD_AIRPORT)

        try:
            flights = merge_partials(partials)
        except ParseError as e:
            log_event(
                logger,
                "rendezvous_merge_failed",
                level=logging.ERROR,
                key=key,
                error=str(e),
            )
            return PollResult(state=PollState.ERROR)

        log_event(logger, "rendezvous_ready", key=key, flights=len(flights))
        return PollResult(state=PollState.READY, flights=flights)
