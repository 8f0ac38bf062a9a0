"""
Notification Service Abstract Base Class

Defines interface for sending SMS and Email notifications.
Supports both Mock (development) and Real (production) implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "message_id": self.message_id,
            "error_message": self.error_message,
            "provider": self.provider,
        }


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send an email."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    async def send_status_update(
        self,
        recipient_name: str,
        recipient_email: Optional[str],
        recipient_phone: Optional[str],
        title: str,
        message: str,
    ) -> NotificationResult:
        """
        Fan an order status notification out to every channel the
        recipient has. Succeeds if at least one channel succeeded.
        """
        results = []

        if recipient_phone:
            results.append(await self.send_sms(recipient_phone, f"{title}\n{message}"))

        if recipient_email:
            results.append(await self.send_email(
                to_email=recipient_email,
                subject=title,
                body_html=f"<p>Hi {recipient_name},</p><h2>{title}</h2><p>{message}</p>",
                body_text=f"Hi {recipient_name},\n\n{message}",
            ))

        if not results:
            return NotificationResult(
                success=False,
                error_message="Recipient has no email or phone",
                provider=self.provider_name,
            )

        succeeded = [r for r in results if r.success]
        return NotificationResult(
            success=bool(succeeded),
            message_id=succeeded[0].message_id if succeeded else None,
            error_message=None if succeeded else "; ".join(
                r.error_message or "unknown error" for r in results
            ),
            provider=self.provider_name,
        )
