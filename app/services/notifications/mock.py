"""
Mock Notification Service

Stands in for Twilio/SendGrid in development. Order status updates are
logged instead of sent; a configurable share of deliveries fails so the
Celery retry path can be exercised locally.
"""

import asyncio
import random
import uuid
import logging
from typing import Optional

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Logs status-update notifications instead of delivering them."""

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 0.05,
        max_latency: float = 0.2,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _deliver(self, channel: str, destination: str, summary: str) -> NotificationResult:
        """Pretend to hand one status update to a channel."""
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

        if random.random() < self.failure_rate:
            logger.warning(f"[mock] status update {channel} to {destination} dropped (simulated outage)")
            return NotificationResult(
                success=False,
                error_message=f"Mock {channel} channel unavailable",
                provider=self.provider_name,
            )

        message_id = f"{channel}_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"[mock] status update {channel} to {destination}: {summary} ({message_id})")
        return NotificationResult(success=True, message_id=message_id, provider=self.provider_name)

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        # First line carries the status title
        return await self._deliver("sms", to_phone, message.splitlines()[0] if message else "")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        return await self._deliver("email", to_email, subject)

    async def health_check(self) -> bool:
        return True
