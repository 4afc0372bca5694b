"""Batch check runner for scheduled jobs.

Runs many independent product checks with bounded concurrency.
One product failing never affects the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Iterable

from expira.util.concurrency import ConcurrencyController
from expira.checker.engine import ProductChecker, CheckResponse
from expira.state.store import ProductNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    """Results of one batch run."""
    responses: List[CheckResponse] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def checked_count(self) -> int:
        return len(self.responses)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class CheckWorker:
    """Checks a batch of products concurrently."""

    def __init__(self, checker: ProductChecker, max_workers: int = 10, rate_limit: float = 0.0):
        """Initialize worker.

        Args:
            checker: Engine used for every check
            max_workers: Maximum checks in flight at once
            rate_limit: Minimum delay in seconds between check starts
        """
        self.checker = checker
        self.max_workers = max_workers
        self.rate_limit = rate_limit

    async def run(self, product_ids: Iterable[str]) -> BatchSummary:
        """Check every product id. Returns responses in input order."""
        product_ids = list(product_ids)
        controller = ConcurrencyController(max_workers=self.max_workers, rate_limit_delay=self.rate_limit)
        logger.info(f"Checking {len(product_ids)} products ({self.max_workers} workers)")

        outcomes = await asyncio.gather(*(self._check_one(controller, pid) for pid in product_ids))

        summary = BatchSummary()
        for product_id, response, error in outcomes:
            if response is not None:
                summary.responses.append(response)
            else:
                summary.errors[product_id] = error

        logger.info(f"Batch complete: {summary.checked_count} checked, {summary.error_count} errors "
                    f"(peak {controller.peak} in flight)")
        return summary

    async def run_all(self, user_id: Optional[str] = None) -> BatchSummary:
        """Check every stored product, optionally for one user."""
        products = self.checker.store.list_products(user_id)
        return await self.run(p.id for p in products)

    async def _check_one(self, controller: ConcurrencyController, product_id: str):
        async with controller.acquire():
            try:
                return product_id, await self.checker.check_product(product_id), None
            except ProductNotFoundError as e:
                logger.warning(f"✗ {e}")
                return product_id, None, str(e)
            except Exception as e:
                logger.error(f"✗ Check crashed for product {product_id}: {e}", exc_info=True)
                return product_id, None, f"{type(e).__name__}: {e}"
