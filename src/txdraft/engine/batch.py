"""Bounded fan-out for independent ledger lookups.

Items are processed in chunks of ``batch_size`` with at most
``concurrency`` calls in flight. Results are assembled by original index,
never completion order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from txdraft.config.settings import BatchConfig
    from txdraft.ledger.base import LedgerRPC

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BATCH_SIZE = 50
DEFAULT_CONCURRENCY = 5


@dataclass(frozen=True)
class BatchProgress:
    completed: int
    total: int
    percentage: int
    success: int
    failed: int


@dataclass(frozen=True)
class BatchError:
    index: int
    error: Exception


@dataclass
class BatchQueryResult(Generic[R]):
    """Fan-out outcome.

    ``results[i]`` holds the result for ``items[i]``, or ``None`` if that
    item failed; the failure is in ``errors`` with the same index.
    """

    results: list[R | None]
    errors: list[BatchError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def success(self) -> int:
        return self.total - self.failed


@dataclass(frozen=True)
class BatchOptions:
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    on_progress: Callable[[BatchProgress], None] | None = None

    @classmethod
    def from_config(
        cls, config: BatchConfig, on_progress: Callable[[BatchProgress], None] | None = None
    ) -> BatchOptions:
        return cls(config.batch_size, config.concurrency, on_progress)


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split *items* into consecutive slices of at most *size*."""
    if size <= 0:
        size = DEFAULT_BATCH_SIZE
    return [items[i : i + size] for i in range(0, len(items), size)]


async def batch_query(
    items: Sequence[T],
    query: Callable[[T, int], Awaitable[R]],
    options: BatchOptions | None = None,
) -> BatchQueryResult[R]:
    """Run *query(item, index)* for every item with bounded concurrency.

    A failing item does not stop the others; its exception is recorded in
    :attr:`BatchQueryResult.errors`. Cancellation propagates.

    Args:
        items: Inputs to query.
        query: Coroutine function called with each item and its index.
        options: Chunk size, concurrency and progress callback.
    """
    options = options or BatchOptions()
    concurrency = options.concurrency if options.concurrency > 0 else DEFAULT_CONCURRENCY
    batch_size = options.batch_size if options.batch_size > 0 else DEFAULT_BATCH_SIZE

    total = len(items)
    results: list[R | None] = [None] * total
    errors: list[BatchError] = []
    counts = {"completed": 0, "success": 0, "failed": 0}
    semaphore = asyncio.Semaphore(concurrency)

    def _report() -> None:
        counts["completed"] += 1
        if options.on_progress is not None:
            options.on_progress(
                BatchProgress(
                    completed=counts["completed"],
                    total=total,
                    percentage=counts["completed"] * 100 // total,
                    success=counts["success"],
                    failed=counts["failed"],
                )
            )

    async def _one(index: int, item: T) -> None:
        async with semaphore:
            try:
                results[index] = await query(item, index)
            except Exception as exc:
                logger.debug("Batch item %d failed: %s", index, exc)
                errors.append(BatchError(index=index, error=exc))
                counts["failed"] += 1
            else:
                counts["success"] += 1
        _report()

    for offset, chunk in zip(range(0, total, batch_size), chunked(items, batch_size)):
        await asyncio.gather(*(_one(offset + i, item) for i, item in enumerate(chunk)))

    errors.sort(key=lambda e: e.index)
    return BatchQueryResult(results=results, errors=errors)


async def parallel_execute(
    items: Sequence[T],
    execute: Callable[[T], Awaitable[R]],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[R]:
    """Run *execute* over *items* concurrently; fail on the first error.

    Results are in item order.
    """
    semaphore = asyncio.Semaphore(concurrency if concurrency > 0 else DEFAULT_CONCURRENCY)

    async def _one(item: T) -> R:
        async with semaphore:
            return await execute(item)

    return list(await asyncio.gather(*(_one(item) for item in items)))


async def batch_balances(
    ledger: LedgerRPC,
    owners: Sequence[bytes],
    token_id: bytes | None = None,
    options: BatchOptions | None = None,
) -> BatchQueryResult[int]:
    """Spendable balance of each owner for *token_id*."""

    async def _balance(owner: bytes, _index: int) -> int:
        utxos = await ledger.query_utxos(owner, token_id)
        return sum(u.amount for u in utxos if u.token_id == token_id)

    return await batch_query(owners, _balance, options)
