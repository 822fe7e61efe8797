"""
SMTP delivery strategy - Implements the DeliveryStrategy protocol via smtplib.

One instance targets one host and port. Alternate ports and fallback
providers are separate instances placed later in the gateway's list.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage

from src.domain.ports import Channel

from .base import SUBJECTS, CodeMessage, DeliveryError, render_text

logger = logging.getLogger(__name__)


class SmtpDeliveryStrategy:
    """Sends codes as plain-text email."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_ssl: bool = False,
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.starttls = starttls and not use_ssl
        self.timeout = timeout
        self.name = f"smtp:{host}:{port}"

    def supports(self, channel: Channel) -> bool:
        return channel is Channel.EMAIL

    def build_message(self, message: CodeMessage) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self.sender
        email["To"] = message.request.address
        email["Subject"] = SUBJECTS[message.request.kind]
        email.set_content(render_text(message))
        return email

    def deliver(self, message: CodeMessage) -> None:
        email = self.build_message(message)
        context = ssl.create_default_context()
        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.starttls:
                    server.starttls(context=context)
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(email)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"{self.name}: {e}") from e

        logger.info("Code for record %s sent via %s", message.request.record_id, self.name)
