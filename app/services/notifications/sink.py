"""
Notification Sink

Append-only record of events for a recipient. Recording only adds the row
to the caller's unit of work; the caller commits it together with the
change that caused it. Outbound delivery is queued separately once the
commit succeeded.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models import Notification, User

logger = logging.getLogger(__name__)


def record_notification(
    db: AsyncSession,
    recipient_id: int,
    type: str,
    title: str,
    message: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
) -> Notification:
    """Add a notification to the session. Does not flush or commit."""
    notification = Notification(
        recipient_id=recipient_id,
        type=type,
        title=title,
        message=message,
        related_entity_type=entity_type,
        related_entity_id=entity_id,
    )
    db.add(notification)
    logger.debug(f"Notification recorded for user #{recipient_id}: {title}")
    return notification


def serialize_notification(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "recipient": notification.recipient_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "relatedEntity": {
            "entityType": notification.related_entity_type,
            "entityId": notification.related_entity_id,
        },
        "isRead": notification.is_read,
        "createdAt": notification.created_at,
    }


def dispatch_notification(notification: Notification, recipient: User) -> bool:
    """
    Queue outbound delivery of a committed notification.

    Queue failures are logged and reported as False; the notification row
    stays in the store either way.
    """
    settings = get_settings()
    if not settings.notifications_dispatch_enabled:
        logger.debug(f"Dispatch disabled; notification #{notification.id} stored only")
        return False

    # Imported here so the store layer does not pull in the Celery app
    from app.tasks import deliver_notification

    try:
        deliver_notification.delay({
            "notification_id": notification.id,
            "recipient_id": recipient.id,
            "recipient_name": recipient.username,
            "recipient_email": recipient.email,
            "recipient_phone": recipient.contact_number,
            "title": notification.title,
            "message": notification.message,
        })
    except Exception as e:
        logger.warning(f"Could not queue notification #{notification.id}: {e}")
        return False

    logger.info(f"Notification #{notification.id} queued for user #{recipient.id}")
    return True
