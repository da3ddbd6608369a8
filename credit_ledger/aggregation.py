"""Dashboard metrics computed from the ledger over an optional date window.

The four sub-queries (registered users, revenue, product sales, recent sales)
share nothing, so they run concurrently on a ``ThreadPoolExecutor`` and are
joined once all of them finish. The first failure cancels work that has not
started yet and propagates; a partial aggregate is never returned.
"""

import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from .directory import UserDirectory
from .logging_setup import get_logger
from .models import (
    CreditTransaction,
    DashboardAggregate,
    ReportingWindow,
    TransactionFilter,
    TransactionKind,
)
from .transactions import TransactionStore

logger = get_logger(__name__)


class AggregationEngine:
    def __init__(
        self,
        store: TransactionStore,
        directory: UserDirectory,
        *,
        recent_sales_limit: int = 10,
        max_workers: int = 4,
    ):
        if recent_sales_limit < 1:
            raise ValueError("recent_sales_limit must be a positive integer")
        if max_workers < 1:
            raise ValueError("max_workers must be a positive integer")
        self.store = store
        self.directory = directory
        self.recent_sales_limit = recent_sales_limit
        self.max_workers = max_workers

    def aggregate(self, window: Optional[ReportingWindow] = None) -> DashboardAggregate:
        window = window or ReportingWindow()
        if window.is_inverted:
            logger.debug("Inverted window %s..%s; returning empty aggregate", window.start, window.end)
            return DashboardAggregate.empty()

        jobs: dict[str, Callable[[], Any]] = {
            "total_users": lambda: self.directory.count_registered(window),
            "total_revenue_cents": lambda: self._total(TransactionKind.TOPUP, window),
            "product_sales_cents": lambda: self._total(TransactionKind.SPEND, window),
            "recent_sales": lambda: self._recent_sales(window),
        }

        started = time.perf_counter()
        results = self._fan_out(jobs)
        logger.debug("Aggregated dashboard in %.3fs", time.perf_counter() - started)
        return DashboardAggregate(**results)

    def _fan_out(self, jobs: dict[str, Callable[[], Any]]) -> dict[str, Any]:
        pool = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(jobs)),
            thread_name_prefix="ledger-aggregate",
        )
        try:
            futures: dict[Future, str] = {pool.submit(fn): name for name, fn in jobs.items()}
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for fut in done:
                error = fut.exception()
                if error is not None:
                    logger.error("Aggregation sub-query %s failed: %s", futures[fut], error)
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise error
            return {name: fut.result() for fut, name in futures.items()}
        finally:
            pool.shutdown(wait=True)

    def _total(self, kind: TransactionKind, window: ReportingWindow) -> int:
        entries = self.store.query(TransactionFilter(kind=kind, window=window))
        return sum(e.amount_cents for e in entries)

    def _recent_sales(self, window: ReportingWindow) -> list[CreditTransaction]:
        return self.store.query(
            TransactionFilter(
                kind=TransactionKind.SPEND,
                window=window,
                limit=self.recent_sales_limit,
            )
        )
