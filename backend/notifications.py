"""
Notification service for ContainerPulse
Delivers update notifications for update-approach=notify containers by email,
or logs them when email is disabled or not configured.
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from email.mime.text import MIMEText
from typing import Dict, Any, Optional

import aiosmtplib

from event_bus import Event, EventBus, EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateNotification:
    """Payload emitted instead of recreating a notify-labeled container"""
    container_name: str
    current_image: str
    candidate_image: str
    current_image_id: str
    candidate_image_id: Optional[str]
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['detected_at'] = self.detected_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UpdateNotification':
        detected_at = data.get('detected_at')
        if isinstance(detected_at, str):
            detected_at = datetime.fromisoformat(detected_at)
        return cls(
            container_name=data['container_name'],
            current_image=data.get('current_image', ''),
            candidate_image=data.get('candidate_image', ''),
            current_image_id=data.get('current_image_id', ''),
            candidate_image_id=data.get('candidate_image_id'),
            detected_at=detected_at or datetime.now(timezone.utc),
        )


def format_notification_body(notification: UpdateNotification) -> str:
    candidate = notification.candidate_image
    if notification.candidate_image_id:
        candidate = f"{candidate} ({notification.candidate_image_id})"
    return (
        "Container Update Available\n"
        "\n"
        f"Container: {notification.container_name}\n"
        f"Current Image: {notification.current_image} ({notification.current_image_id})\n"
        f"Update Available: {candidate}\n"
        "\n"
        "This container has the 'update-approach=notify' label, so it will not be automatically updated.\n"
        "Please review and update manually if desired.\n"
        "\n"
        "ContainerPulse Auto-Updater\n"
        f"{notification.detected_at.isoformat()}\n"
    )


class NotificationService:
    """
    Handles update notifications.

    Args:
        config: EmailConfig dict (see config.settings.EmailConfig)
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventType.UPDATE_NOTIFICATION, self.handle_event)

    async def handle_event(self, event: Event) -> None:
        notification = UpdateNotification.from_dict(event.data)
        await self.notify(notification)

    async def notify(self, notification: UpdateNotification) -> bool:
        """
        Deliver one notification.

        Returns:
            True if an email was sent
        """
        if not self.config.get('enabled') or not self.config.get('to_email'):
            logger.info(
                f"NOTIFICATION: Container {notification.container_name} has update available: "
                f"{notification.current_image} -> {notification.candidate_image}"
            )
            return False

        sent = await self._send_smtp(notification)
        if not sent:
            # Keep the notification visible even when delivery fails
            logger.info(
                f"NOTIFICATION: Container {notification.container_name} has update available: "
                f"{notification.current_image} -> {notification.candidate_image}"
            )
        return sent

    async def _send_smtp(self, notification: UpdateNotification) -> bool:
        """Send notification via SMTP (Email)"""
        smtp_host = (self.config.get('smtp_host') or '').strip()
        smtp_port = int(self.config.get('smtp_port') or 587)
        smtp_user = (self.config.get('smtp_user') or '').strip()
        smtp_password = self.config.get('smtp_password') or ''
        from_email = (self.config.get('from_email') or '').strip()
        to_email = (self.config.get('to_email') or '').strip()

        if not smtp_host:
            logger.error("SMTP config missing smtp_host")
            return False

        msg = MIMEText(format_notification_body(notification), 'plain', 'utf-8')
        msg['Subject'] = self.config.get('subject') or f"ContainerPulse: {notification.container_name}"
        msg['From'] = from_email
        msg['To'] = to_email

        # Port 587 uses STARTTLS, port 465 uses direct TLS/SSL
        if smtp_port == 465:
            smtp_kwargs = {'hostname': smtp_host, 'port': smtp_port, 'use_tls': True, 'timeout': 30}
        elif smtp_port == 587:
            smtp_kwargs = {'hostname': smtp_host, 'port': smtp_port, 'start_tls': True, 'timeout': 30}
        else:
            smtp_kwargs = {'hostname': smtp_host, 'port': smtp_port, 'start_tls': False, 'timeout': 30}

        try:
            async with aiosmtplib.SMTP(**smtp_kwargs) as smtp:
                if smtp_user:
                    await smtp.login(smtp_user, smtp_password)
                await smtp.send_message(msg)
        except aiosmtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            return False
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email notification for {notification.container_name}: {e}")
            return False

        logger.info(f"Email notification sent via SMTP to {to_email} for container {notification.container_name}")
        return True
