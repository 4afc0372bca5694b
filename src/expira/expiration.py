"""Scheduled product-expiry sweep.

Runs without touching the network: only the product's own expiry date
is judged. Status moves up through the same verdict escalation a check
uses, starting from the product's current status, so a sweep can never
lower a status that a check has set.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from expira.util.types import ProductStatus, Severity
from expira.util.time import now_utc, days_until
from expira.checker.rules import evaluate_product_expiry
from expira.checker.verdict import Verdict
from expira.notifications.dispatcher import NotificationDispatcher, plan_expiry_alerts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    product_id: str
    days_until_expiry: int
    previous_status: ProductStatus
    status: ProductStatus
    alerts_sent: int = 0

    @property
    def changed(self) -> bool:
        return self.status != self.previous_status


class ExpirationSweeper:
    """Escalates products whose expiry date has passed or is near."""

    def __init__(self, store, dispatcher: Optional[NotificationDispatcher] = None,
                 warning_days: int = 30, sms_warning_days: int = 7):
        """Initialize sweeper with warning windows in days."""
        self.store = store
        self.dispatcher = dispatcher
        self.warning_days = warning_days
        self.sms_warning_days = sms_warning_days

    async def sweep(self, now: Optional[datetime] = None) -> List[SweepResult]:
        """Check every active/warning product that has an expiry date.

        Alerts go out only when a product's status actually changes.
        """
        now = now or now_utc()
        results = []

        for product in self.store.products_with_expiry():
            days = days_until(product.expires_at, now)
            verdict = Verdict(severity=Severity.from_product_status(product.status))
            outcome = evaluate_product_expiry(product.expires_at, now, self.warning_days)
            if outcome is not None:
                verdict = verdict.apply(outcome)

            status = verdict.severity.product_status
            sent = 0
            if status != product.status:
                self.store.update_product_status(product.id, status)
                logger.info(f"Product {product.id} ({product.name}): {product.status.value} -> {status.value}")

                if self.dispatcher is not None:
                    alerts = plan_expiry_alerts(product.name, product.user_id, days, self.sms_warning_days)
                    sent = await self.dispatcher.dispatch_all(alerts)

            results.append(SweepResult(
                product_id=product.id,
                days_until_expiry=days,
                previous_status=product.status,
                status=status,
                alerts_sent=sent,
            ))

        changed = sum(1 for r in results if r.changed)
        logger.info(f"Expiry sweep: {len(results)} products examined, {changed} escalated")
        return results
