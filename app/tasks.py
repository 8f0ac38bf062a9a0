"""
Celery Tasks
Background delivery of notifications recorded by the order lifecycle.
"""

import asyncio
import logging
import time
from datetime import datetime

from app.celery_worker import celery_app
from app.services.notifications import get_notification_service

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Every channel failed; raised so Celery retries the task."""


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(NotificationDeliveryError,),
    retry_backoff=True
)
def deliver_notification(self, notification_data: dict) -> dict:
    """
    Send a stored notification to the recipient's phone and email.

    Args:
        notification_data: Notification id, recipient contact details,
            title and message

    Returns:
        dict: Result of the delivery
    """
    task_id = self.request.id
    notification_id = notification_data.get("notification_id", "unknown")

    if not (notification_data.get("recipient_email") or notification_data.get("recipient_phone")):
        logger.info(f"Task {task_id}: notification #{notification_id} has no contact channel, skipped")
        return {
            "success": False,
            "skipped": True,
            "notification_id": notification_id,
            "task_id": task_id,
        }

    logger.info(f"Task {task_id}: delivering notification #{notification_id}")
    start_time = time.time()

    service = get_notification_service()
    result = asyncio.run(service.send_status_update(
        recipient_name=notification_data.get("recipient_name") or "there",
        recipient_email=notification_data.get("recipient_email"),
        recipient_phone=notification_data.get("recipient_phone"),
        title=notification_data["title"],
        message=notification_data["message"],
    ))

    elapsed = round(time.time() - start_time, 3)
    if not result.success:
        logger.warning(
            f"Task {task_id}: notification #{notification_id} failed after {elapsed}s - {result.error_message}"
        )
        raise NotificationDeliveryError(result.error_message)

    logger.info(f"Task {task_id}: notification #{notification_id} delivered in {elapsed}s")

    payload = result.to_dict()
    payload.update({
        "skipped": False,
        "notification_id": notification_id,
        "task_id": task_id,
        "processing_time_seconds": elapsed,
    })
    return payload


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
