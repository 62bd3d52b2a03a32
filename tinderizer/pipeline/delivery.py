from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Optional

from .errors import DeliveryError

logger = logging.getLogger(__name__)

MOBI_MIME = ("application", "x-mobipocket-ebook")


class Mailer:
    """
    Abstract delivery collaborator.
    """

    def send(self, email: str, attachment: Path, title: str) -> None:
        raise NotImplementedError


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        sender: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def build_message(self, email: str, attachment: Path, title: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = email
        message["Subject"] = title
        message.set_content(f"Your article is attached: {title}\n")
        maintype, subtype = MOBI_MIME
        message.add_attachment(
            attachment.read_bytes(),
            maintype=maintype,
            subtype=subtype,
            filename=attachment.name,
        )
        return message

    def send(self, email: str, attachment: Path, title: str) -> None:
        try:
            message = self.build_message(email, attachment, title)
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"Failed to send {attachment.name} to {email}: {exc}") from exc
        logger.info("Sent %s to %s", attachment.name, email)
