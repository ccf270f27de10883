"""Mail transports used by the email distribution sink."""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol, Sequence

from rca_service.core.config import Settings, settings

_logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Transport contract for sending one HTML message."""

    def send(self, recipients: Sequence[str], subject: str, html: str) -> None:  # pragma: no cover - interface
        ...


class LoggingMailer:
    """Simulates delivery when no SMTP host is configured."""

    def send(self, recipients: Sequence[str], subject: str, html: str) -> None:
        _logger.info("SMTP not configured; simulated email '%s' to %s", subject, ", ".join(recipients))


class SmtpMailer:
    """Sends mail through an SMTP relay with optional STARTTLS and login."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        sender: str,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._user = user
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def send(self, recipients: Sequence[str], subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self._sender
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            server.ehlo()
            if self._use_tls:
                server.starttls()
                server.ehlo()
            if self._user and self._password:
                server.login(self._user, self._password)
            server.sendmail(self._sender, list(recipients), msg.as_string())
        _logger.info("Email sent to %d recipients: %s", len(recipients), subject)


def mailer_from_settings(config: Settings | None = None) -> Mailer:
    config = config or settings
    if not config.smtp_host:
        return LoggingMailer()
    return SmtpMailer(
        config.smtp_host,
        config.smtp_port,
        sender=config.smtp_from,
        user=config.smtp_user,
        password=config.smtp_password,
        use_tls=config.smtp_use_tls,
        timeout=config.http_timeout_seconds,
    )
