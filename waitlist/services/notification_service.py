"""
Outbound waitlist notifications

Dispatch only enqueues a Celery task; delivery happens on the worker. Any
failure to hand the task over is raised as NotificationError for the caller
to log and drop.
"""
from typing import Optional
import logging

from waitlist.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


class CeleryNotifier:
    def send_welcome(self, email: str, name: str, referral_code: str, position: Optional[int], total: int) -> None:
        from waitlist.tasks.notification_tasks import send_welcome_email
        try:
            send_welcome_email.delay(email, name, referral_code, position, total)
        except Exception as e:
            raise NotificationError("Could not queue welcome email", details=str(e)) from e

    def position_changed(self, email: str, position: int, total: int) -> None:
        from waitlist.tasks.notification_tasks import send_position_update_email
        try:
            send_position_update_email.delay(email, position, total)
        except Exception as e:
            raise NotificationError("Could not queue position update email", details=str(e)) from e

    def contact_message(self, name: str, email: str, message: str) -> None:
        from waitlist.tasks.notification_tasks import send_contact_email
        try:
            send_contact_email.delay(name, email, message)
        except Exception as e:
            raise NotificationError("Could not queue contact message", details=str(e)) from e


class NullNotifier:
    """Used when NOTIFICATIONS_ENABLED is off."""

    def send_welcome(self, email: str, name: str, referral_code: str, position: Optional[int], total: int) -> None:
        logger.debug(f"Notifications disabled; skipping welcome email for {email}")

    def position_changed(self, email: str, position: int, total: int) -> None:
        logger.debug(f"Notifications disabled; skipping position update for {email}")

    def contact_message(self, name: str, email: str, message: str) -> None:
        logger.debug(f"Notifications disabled; dropping contact message from {email}")
