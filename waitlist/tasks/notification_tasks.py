import logging

from waitlist.core.celery_app import celery_app
from waitlist.core.exceptions import NotificationError
from waitlist.services.email_service import EmailService

logger = logging.getLogger(__name__)


@celery_app.task
def send_welcome_email(email: str, name: str, referral_code: str, position, total: int):
    """Send the waitlist welcome email"""
    try:
        EmailService().send_welcome(email, name, referral_code, position, total)
        logger.info(f"📧 Welcome email sent to {email}")
        return {"status": "sent", "email": email}
    except NotificationError as e:
        logger.error(f"❌ Failed to send welcome email to {email}: {e.details or e.message}")
        return {"status": "failed", "email": email, "error": e.message}


@celery_app.task
def send_position_update_email(email: str, position: int, total: int):
    """Tell a participant their waitlist position moved"""
    try:
        EmailService().send_position_update(email, position, total)
        logger.info(f"📧 Position update (#{position}) sent to {email}")
        return {"status": "sent", "email": email, "position": position}
    except NotificationError as e:
        logger.error(f"❌ Failed to send position update to {email}: {e.details or e.message}")
        return {"status": "failed", "email": email, "error": e.message}


@celery_app.task
def send_contact_email(name: str, email: str, message: str):
    """Forward a contact form message to support"""
    try:
        EmailService().send_contact(name, email, message)
        logger.info(f"📧 Contact message from {email} forwarded to support")
        return {"status": "sent", "email": email}
    except NotificationError as e:
        logger.error(f"❌ Failed to forward contact message from {email}: {e.details or e.message}")
        return {"status": "failed", "email": email, "error": e.message}
