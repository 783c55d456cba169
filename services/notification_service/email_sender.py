import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_FROM = "Gear Store <noreply@gear-store.ge>"


class EmailSender:
    """Plain-text mail through the Mailhog SMTP relay."""

    def __init__(self, mailhog_host: str, mailhog_port: int, from_address: str = DEFAULT_FROM, reply_to: Optional[str] = None):
        self.mailhog_host = mailhog_host
        self.mailhog_port = mailhog_port
        self.from_address = from_address
        self.reply_to = reply_to

    def build_message(self, to_email: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to_email
        message["Subject"] = subject
        if self.reply_to:
            message["Reply-To"] = self.reply_to
        message.set_content(body, charset="utf-8")
        return message

    def send_email(self, to_email: str, subject: str, body: str) -> bool:
        """Deliver one message. False means the relay refused it or could not be reached."""
        message = self.build_message(to_email, subject, body)
        try:
            with smtplib.SMTP(self.mailhog_host, self.mailhog_port, timeout=10) as server:
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email to {to_email} failed: {e}")
            return False

        logger.info(f"Email sent to {to_email}: {subject}")
        return True
