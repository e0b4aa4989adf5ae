# Tasks package
from .notification_tasks import send_welcome_email, send_position_update_email, send_contact_email

__all__ = [
    "send_welcome_email",
    "send_position_update_email",
    "send_contact_email",
]
