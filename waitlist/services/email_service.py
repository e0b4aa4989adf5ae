from html import escape

import resend

from waitlist.core.config import settings
from waitlist.core.exceptions import NotificationError


class EmailService:
    def __init__(self):
        resend.api_key = settings.RESEND_API_KEY
        self.sender = getattr(settings, "EMAIL_FROM", "Humoni Waitlist <waitlist@example.com>")

    def _send(self, to: str, subject: str, html: str, text: str) -> None:
        try:
            resend.Emails.send({
                "from": self.sender,
                "to": [to],
                "subject": subject,
                "html": html,
                "text": text,
            })
        except Exception as e:
            raise NotificationError(f"Email to {to} failed", details=str(e)) from e

    def send_welcome(self, to: str, name: str, referral_code: str, position, total: int) -> None:
        subject = "Welcome to the Humoni waitlist!"
        if position is None:
            standing = f"You are one of the first {total} people on the list."
        else:
            standing = f"You are currently <strong>#{position}</strong> out of {total} people."
        html = f"""
        <div style='font-family: Inter, Arial, sans-serif; max-width:600px; margin:0 auto; line-height:1.6;'>
            <h1 style='color:#333;font-size:24px;'>Welcome to Humoni, {escape(name)}!</h1>
            <p>Thank you for joining our waitlist.</p>
            <div style='background:#f5f5f5;border-radius:8px;padding:20px;margin:24px 0;'>
                <p>{standing}</p>
                <p>Your referral code: <strong>{referral_code}</strong></p>
            </div>
            <p>Share your referral code with friends. Every friend who joins with it moves you up the list.</p>
            <p style='color:#888;font-size:14px;'>Best regards,<br>The Humoni Team</p>
        </div>
        """
        text = (
            f"Welcome to Humoni, {name}! {standing.replace('<strong>', '').replace('</strong>', '')} "
            f"Your referral code is {referral_code}. Share it with friends to move up the waitlist!"
        )
        self._send(to, subject, html, text)

    def send_position_update(self, to: str, position: int, total: int) -> None:
        subject = "Your Waitlist Position Has Changed!"
        html = f"""
        <div style='font-family: Inter, Arial, sans-serif; line-height:1.6;'>
            <h2>Great news!</h2>
            <p>Your position has been updated to <strong>#{position}</strong> out of {total}.</p>
            <p>Keep referring friends to move up the list!</p>
        </div>
        """
        text = (
            f"Great news! Your position has been updated to #{position} out of {total}. "
            "Keep referring friends to move up the list!"
        )
        self._send(to, subject, html, text)

    def send_contact(self, name: str, email: str, message: str) -> None:
        """Forward a contact form submission to the support inbox"""
        subject = f"New Contact Form Message from {name}"
        html = f"""
        <div style='font-family: Inter, Arial, sans-serif; max-width:600px; margin:0 auto;'>
            <h2>New Contact Form Submission</h2>
            <p><strong>From:</strong> {escape(name)} ({escape(email)})</p>
            <p><strong>Message:</strong></p>
            <div style='background:#f5f5f5;padding:15px;border-radius:5px;'>{escape(message)}</div>
        </div>
        """
        text = f"New message from {name} ({email}):\n\n{message}"
        self._send(settings.CONTACT_EMAIL_TO, subject, html, text)
