"""
notify.py – Delivery of fatal run errors to an operator.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

SUBJECT = "Error in the WordPress inventory sync"


class Notifier(Protocol):
    def notify(self, message: str) -> None:
        ...


class LogNotifier:
    """Writes the notification to the log only."""

    def notify(self, message: str) -> None:
        logger.error("Notification: %s", message)


class EmailNotifier:
    """Sends the notification by e-mail over SMTP (STARTTLS when credentials are set)."""

    def __init__(
        self,
        recipient: str,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: float = 30,
    ) -> None:
        self.recipient = recipient
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username or recipient
        self.timeout = timeout

    def build_message(self, message: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = SUBJECT
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg.set_content(f"The following error occurred during the sync:\n\n{message}\n")
        return msg

    def notify(self, message: str) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.username and self.password:
                    smtp.starttls()
                    smtp.login(self.username, self.password)
                smtp.send_message(self.build_message(message))
            logger.info("Error notification sent to %s", self.recipient)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Could not send error notification to %s: %s", self.recipient, exc)
