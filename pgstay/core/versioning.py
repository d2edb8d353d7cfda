# Optimistic concurrency for whole-aggregate writes

import logging
from typing import Awaitable, Callable, Optional, TypeVar

import tenacity
from motor.motor_asyncio import AsyncIOMotorCollection

from pgstay.metrics.metrics import MetricsCollector
from pgstay.utils.date_helper import utcnow
from pgstay.utils.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def save_versioned(
    collection: AsyncIOMotorCollection,
    aggregate,
    kind: str,
    metrics: Optional[MetricsCollector] = None,
):
    """
    Replace the stored document only if nobody else wrote it since it was read.

    `aggregate` is a model with `id`, `version`, `updated_at` and
    `to_document()`. On success its version is bumped in place.
    """
    expected = aggregate.version
    aggregate.version = expected + 1
    aggregate.updated_at = utcnow()
    result = await collection.replace_one(
        {"_id": aggregate.id, "version": expected},
        aggregate.to_document(),
    )
    if result.matched_count == 0:
        aggregate.version = expected
        if metrics:
            metrics.record_conflict(kind)
        logger.info(f"Version conflict on {kind} {aggregate.id} at version {expected}")
        raise ConcurrentModificationError(f"{kind.capitalize()} was modified concurrently, please retry")
    return aggregate


async def delete_versioned(
    collection: AsyncIOMotorCollection,
    aggregate,
    kind: str,
    metrics: Optional[MetricsCollector] = None,
) -> None:
    result = await collection.delete_one({"_id": aggregate.id, "version": aggregate.version})
    if result.deleted_count == 0:
        if metrics:
            metrics.record_conflict(kind)
        raise ConcurrentModificationError(f"{kind.capitalize()} was modified concurrently, please retry")


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    attempts: int,
    metrics: Optional[MetricsCollector] = None,
) -> T:
    """
    Run a load -> mutate -> save cycle, re-running it from a fresh read when
    the save loses a version race. Other errors propagate on first sight.
    """
    try:
        async for attempt in tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(attempts),
            wait=tenacity.wait_random_exponential(multiplier=0.02, max=0.25),
            retry=tenacity.retry_if_exception_type(ConcurrentModificationError),
            reraise=True,
        ):
            with attempt:
                return await operation()
    except ConcurrentModificationError:
        logger.warning(f"{name}: giving up after {attempts} conflicting attempts")
        if metrics:
            metrics.record_retries_exhausted(name)
        raise
