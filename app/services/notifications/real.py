"""
Real Notification Service

Delivers order status updates through:
- Twilio (SMS to the customer's contact number)
- SendGrid (email to the customer's account address)

Both SDKs are blocking and run in a worker thread.
"""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

SENDGRID_ACCEPTED = (200, 201, 202)


class RealNotificationService(BaseNotificationService):
    """Status-update delivery over Twilio SMS and SendGrid email."""

    def __init__(self):
        self.twilio_client = None
        self.twilio_from_number = settings.twilio_phone_number
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
        else:
            logger.warning("Twilio credentials not configured; status update SMS disabled")

        self.sendgrid_client = None
        self.sendgrid_from_email = settings.sendgrid_from_email
        if settings.sendgrid_api_key:
            self.sendgrid_client = SendGridAPIClient(settings.sendgrid_api_key)
        else:
            logger.warning("SendGrid API key not configured; status update email disabled")

        logger.info(
            f"RealNotificationService initialized "
            f"(sms={self.twilio_client is not None}, email={self.sendgrid_client is not None})"
        )

    @property
    def provider_name(self) -> str:
        return "real"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        if self.twilio_client is None:
            return NotificationResult(success=False, error_message="Twilio not configured", provider="twilio")

        try:
            sent = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=to_phone,
            )
        except TwilioException as e:
            logger.error(f"Status update SMS to {to_phone} rejected by Twilio: {e}")
            return NotificationResult(success=False, error_message=str(e), provider="twilio")

        logger.info(f"Status update SMS queued by Twilio for {to_phone} (sid {sent.sid})")
        return NotificationResult(success=True, message_id=sent.sid, provider="twilio")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        if self.sendgrid_client is None:
            return NotificationResult(success=False, error_message="SendGrid not configured", provider="sendgrid")

        mail = Mail(
            from_email=self.sendgrid_from_email,
            to_emails=to_email,
            subject=subject,
            html_content=body_html,
            plain_text_content=body_text,
        )

        # SendGrid raises its own HTTP error types as well as transport errors
        try:
            response = await asyncio.to_thread(self.sendgrid_client.send, mail)
        except Exception as e:
            logger.error(f"Status update email to {to_email} failed: {e}")
            return NotificationResult(success=False, error_message=str(e), provider="sendgrid")

        accepted = response.status_code in SENDGRID_ACCEPTED
        if accepted:
            logger.info(f"Status update email '{subject}' accepted for {to_email}")
        else:
            logger.warning(f"SendGrid answered {response.status_code} for status update email to {to_email}")

        return NotificationResult(
            success=accepted,
            message_id=response.headers.get("X-Message-Id"),
            error_message=None if accepted else f"SendGrid status {response.status_code}",
            provider="sendgrid",
        )

    async def health_check(self) -> bool:
        """Healthy when at least one channel is configured."""
        return self.twilio_client is not None or self.sendgrid_client is not None
