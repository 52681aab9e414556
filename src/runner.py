"""
Scheduling loop for the detector.

Three producers publish independently into single-slot cells (pool state,
gas price, CEX depth); a fixed-cadence ticker reads whatever is latest and
runs the evaluator.  Nothing waits on anything else: a slow RPC just means
the ticker sees an older pool snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import AsyncIterator, Callable, Generic, Optional, TypeVar

from core.errors import InvalidInputError
from core.serializer import CanonicalSerializer
from exchange.orderbook import BookDepth
from pricing.pool_state import PoolState
from strategy.evaluator import ArbitrageEvaluator, EvaluationState, TickOutcome
from strategy.fees import GasCostModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestValue(Generic[T]):
    """Latest published value plus when it was published; reads never block."""

    def __init__(self, name: str, time_fn: Callable[[], float] = time.monotonic):
        self.name = name
        self._value: Optional[T] = None
        self._published_at: Optional[float] = None
        self._time_fn = time_fn

    def publish(self, value: T) -> None:
        self._value = value
        self._published_at = self._time_fn()

    def get(self) -> Optional[T]:
        return self._value

    def age(self) -> Optional[float]:
        if self._published_at is None:
            return None
        return self._time_fn() - self._published_at


async def poll_books(
    fetch: Callable[[], BookDepth], interval: float
) -> AsyncIterator[BookDepth]:
    """Turn a blocking REST snapshot call into a book feed."""
    while True:
        try:
            yield await asyncio.to_thread(fetch)
        except RuntimeError as exc:
            logger.warning("book snapshot failed: %s", exc)
        await asyncio.sleep(interval)


class ArbitrageRunner:
    def __init__(
        self,
        evaluator: ArbitrageEvaluator,
        gas_model: GasCostModel,
        pool_source: Callable[[], PoolState],
        gas_source: Callable[[], Decimal],
        book_feed: Callable[[], AsyncIterator[BookDepth]],
        tick_interval: float = 1.0,
        pool_refresh_interval: float = 5.0,
        gas_refresh_interval: float = 10.0,
        heartbeat_every: int = 5,
        max_book_age: float = 5.0,
        book_retry_interval: float = 1.0,
        time_fn: Callable[[], float] = time.monotonic,
    ):
        self.evaluator = evaluator
        self.gas_model = gas_model
        self._pool_source = pool_source
        self._gas_source = gas_source
        self._book_feed = book_feed
        self.tick_interval = tick_interval
        self.pool_refresh_interval = pool_refresh_interval
        self.gas_refresh_interval = gas_refresh_interval
        self.heartbeat_every = heartbeat_every
        self.max_book_age = max_book_age
        self.book_retry_interval = book_retry_interval

        # ── latest snapshots ────────────────────────────────────
        self.pool: LatestValue[PoolState] = LatestValue("pool", time_fn)
        self.gas: LatestValue[Decimal] = LatestValue("gas", time_fn)
        self.book: LatestValue[BookDepth] = LatestValue("book", time_fn)

        self.ticks = 0
        self.opportunities_seen = 0
        self.last_outcome: Optional[TickOutcome] = None

    # ── public API ──────────────────────────────────────────────

    async def run(self, max_ticks: Optional[int] = None) -> None:
        producers = [
            asyncio.create_task(
                self._poll(self._pool_source, self.pool, self.pool_refresh_interval)
            ),
            asyncio.create_task(
                self._poll(self._gas_source, self.gas, self.gas_refresh_interval)
            ),
            asyncio.create_task(self._consume_books()),
        ]
        logger.info(
            "runner started: tick=%.2fs pool=%.2fs gas=%.2fs",
            self.tick_interval,
            self.pool_refresh_interval,
            self.gas_refresh_interval,
        )
        try:
            while max_ticks is None or self.ticks < max_ticks:
                await asyncio.sleep(self.tick_interval)
                self.tick()
        finally:
            for task in producers:
                task.cancel()
            await asyncio.gather(*producers, return_exceptions=True)

    def tick(self) -> Optional[TickOutcome]:
        """One evaluation over the latest snapshots.  None if the tick was skipped."""
        self.ticks += 1
        pool, book, gas_gwei = self.pool.get(), self.book.get(), self.gas.get()
        book_age = self.book.age()
        if book is not None and book_age is not None and book_age > self.max_book_age:
            # stale book counts as no book
            logger.warning(
                "tick %d: book is %.1fs old (max %.1fs), waiting for a fresh one",
                self.ticks,
                book_age,
                self.max_book_age,
            )
            book = None
        try:
            gas_cost = None
            if pool is not None and gas_gwei is not None:
                gas_cost = self.gas_model.cost(gas_gwei, pool.price)
            outcome = self.evaluator.evaluate_tick(pool, book, gas_cost)
        except InvalidInputError as exc:
            logger.warning("tick %d skipped: %s", self.ticks, exc)
            self.last_outcome = None
            return None

        self.last_outcome = outcome
        if outcome.state is EvaluationState.OPPORTUNITY_FOUND:
            for opp in outcome.opportunities:
                self.opportunities_seen += 1
                logger.info(
                    "[OPP] %s %s",
                    opp.description,
                    CanonicalSerializer.serialize(opp.to_dict()).decode("utf-8"),
                )
        elif self.ticks % self.heartbeat_every == 0:
            self._heartbeat(outcome, pool, book, gas_cost)
        return outcome

    # ── producers ───────────────────────────────────────────────

    async def _poll(
        self, source: Callable[[], T], cell: LatestValue[T], interval: float
    ) -> None:
        while True:
            try:
                cell.publish(await asyncio.to_thread(source))
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Keep serving the previous snapshot; the next poll retries.
                logger.warning("%s refresh failed: %s", cell.name, exc)
            await asyncio.sleep(interval)

    async def _consume_books(self) -> None:
        while True:
            try:
                async for book in self._book_feed():
                    self.book.publish(book)
                logger.warning("book feed ended, restarting")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("book feed failed, restarting: %s", exc)
            await asyncio.sleep(self.book_retry_interval)

    # ── private helpers ─────────────────────────────────────────

    def _heartbeat(
        self,
        outcome: TickOutcome,
        pool: Optional[PoolState],
        book: Optional[BookDepth],
        gas_cost: Optional[Decimal],
    ) -> None:
        if outcome.state is EvaluationState.AWAITING_DATA:
            logger.info(
                "[HEARTBEAT] tick=%d waiting for data pool=%s book=%s gas=%s",
                self.ticks,
                pool is not None,
                book is not None,
                self.gas.get() is not None,
            )
            return
        logger.info(
            "[HEARTBEAT] tick=%d no opportunity dex=%.2f bid=%s ask=%s "
            "spread=%.1fbps gas=$%.2f",
            self.ticks,
            pool.price if pool is not None else 0,
            book.best_bid[0] if book is not None and book.best_bid else None,
            book.best_ask[0] if book is not None and book.best_ask else None,
            (book.spread_bps or 0) if book is not None else 0,
            gas_cost if gas_cost is not None else 0,
        )
