"""Notification dispatch - turn verdicts into (user, channel, title, message) alerts.

The engine never knows how alerts are delivered. It plans alerts from a
verdict and hands each one to a NotificationDispatcher.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List

from expira.util.types import ProductStatus, CheckStatus

logger = logging.getLogger(__name__)


class Channel(Enum):
    """Delivery channel for an alert."""
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"


@dataclass(frozen=True)
class Alert:
    user_id: str
    channel: Channel
    title: str
    message: str


def plan_check_alerts(product_name: str, user_id: str, status: ProductStatus,
                      check_status: CheckStatus, message: str) -> List[Alert]:
    """Alerts for a finished check.

    Nothing for an active product. Otherwise email and push, plus sms
    when the product is expired or the check errored.
    """
    if status == ProductStatus.ACTIVE:
        return []

    title = f"Product Check: {product_name}"
    alerts = [Alert(user_id, Channel.EMAIL, title, message)]
    if status == ProductStatus.EXPIRED or check_status == CheckStatus.ERROR:
        alerts.append(Alert(user_id, Channel.SMS, title, message))
    alerts.append(Alert(user_id, Channel.PUSH, title, message))
    return alerts


def plan_expiry_alerts(product_name: str, user_id: str, days: int,
                       sms_warning_days: int = 7) -> List[Alert]:
    """Alerts for the scheduled expiry sweep. Email always, sms when close."""
    if days < 0:
        title = "Product Expired"
        message = f'Your product "{product_name}" has expired. Please renew it immediately.'
    else:
        title = "Product Expiring Soon"
        message = f'Your product "{product_name}" will expire in {days} days.'

    alerts = [Alert(user_id, Channel.EMAIL, title, message)]
    if days <= sms_warning_days:
        alerts.append(Alert(user_id, Channel.SMS, title, message))
    return alerts


class NotificationDispatcher(ABC):
    """Delivers alerts. Implementations decide what delivery means."""

    @abstractmethod
    async def dispatch(self, alert: Alert) -> None:
        """Deliver one alert. May raise; callers log and continue."""

    async def dispatch_all(self, alerts: List[Alert]) -> int:
        """Deliver alerts in order. Returns how many were delivered.

        One failed alert never stops the rest.
        """
        sent = 0
        for alert in alerts:
            try:
                await self.dispatch(alert)
                sent += 1
            except Exception as e:
                logger.warning(f"Failed to send {alert.channel.value} alert to {alert.user_id}: {e}")
        return sent


class LoggingDispatcher(NotificationDispatcher):
    """Logs alerts instead of delivering them."""

    async def dispatch(self, alert: Alert) -> None:
        logger.info(f"[{alert.channel.value}] to {alert.user_id}: {alert.title} - {alert.message}")


class OutboxDispatcher(NotificationDispatcher):
    """Records every alert in the store's notification outbox.

    Channel delivery (email/sms/push providers) reads the outbox; each
    alert is also kept as an in-app notification for the user.
    """

    def __init__(self, store):
        """Initialize with a ProductStore."""
        self.store = store

    async def dispatch(self, alert: Alert) -> None:
        self.store.add_notification(alert.user_id, alert.channel.value, alert.title, alert.message)
        if alert.channel != Channel.IN_APP:
            self.store.add_notification(alert.user_id, Channel.IN_APP.value, alert.title, alert.message)
        logger.debug(f"Queued {alert.channel.value} alert for {alert.user_id}: {alert.title}")
