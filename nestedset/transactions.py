"""Retried transactions for structural mutations.

Every mutation of the nested set touches a contiguous range of rows, so two
writers easily collide. An outermost transaction that fails with a lock
conflict is rolled back and replayed after a short randomized pause. A
nested one is never replayed on its own: the conflict surfaces to the
outermost caller, which owns the retry.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from nestedset.errors import TransientStoreConflict
from nestedset.models import Transaction
from nestedset.store.base import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 10
BACKOFF_UNIT = 0.1


async def tenacious_transaction(
    store: RecordStore,
    body: Callable[[Transaction], Awaitable[T]],
    parent: Transaction | None = None,
    max_attempts: int = MAX_ATTEMPTS,
    backoff_unit: float = BACKOFF_UNIT,
) -> T:
    """Run ``body`` in a transaction, retrying lock conflicts when outermost.

    ``body`` receives the open Transaction and must pass it on to any
    structural operation it calls, so those join instead of retrying.
    """
    if parent is not None:
        async with store.transaction(parent) as tx:
            return await body(tx)

    attempt = 1
    while True:
        try:
            async with store.transaction() as tx:
                return await body(tx)
        except TransientStoreConflict:
            if attempt >= max_attempts:
                logger.warning(
                    "Lock conflict persisted after %d attempts, giving up", attempt
                )
                raise
            logger.info("Lock conflict on attempt %d, restarting transaction", attempt)
            await asyncio.sleep(random.randrange(attempt) * backoff_unit)
            attempt += 1
