"""Email delivery of converted books to a Kindle address."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Optional

from .config import EmailConfig
from .errors import DeliveryError
from .models import ConversionOutcome, OutputFormat

logger = logging.getLogger("substack_kindle.sender")

SMTP_TIMEOUT_SECONDS = 60
IMPLICIT_TLS_PORT = 465

ATTACHMENT_TYPES = {
    OutputFormat.EPUB: ("application", "epub+zip"),
    OutputFormat.AZW3: ("application", "vnd.amazon.ebook"),
    OutputFormat.MOBI: ("application", "x-mobipocket-ebook"),
}

SmtpFactory = Callable[[EmailConfig], smtplib.SMTP]


def build_message(outcome: ConversionOutcome, config: EmailConfig) -> MIMEMultipart:
    """Assemble the mail: a short text part followed by the book attachment."""
    message = MIMEMultipart("mixed")
    message["From"] = config.sender
    message["To"] = config.recipient
    message["Subject"] = outcome.title

    text = f"Sending '{outcome.title}' by {outcome.author} to your Kindle.\r\n"
    message.attach(MIMEText(text, "plain", "utf-8"))

    try:
        payload = outcome.path.read_bytes()
    except OSError as exc:
        raise DeliveryError(f"Failed to read {outcome.path}: {exc}") from exc

    maintype, subtype = ATTACHMENT_TYPES.get(outcome.format, ("application", "octet-stream"))
    attachment = MIMEBase(maintype, subtype)
    attachment.set_payload(payload)
    encoders.encode_base64(attachment)
    attachment.add_header("Content-Disposition", "attachment", filename=outcome.path.name)
    message.attach(attachment)
    return message


def open_smtp(config: EmailConfig) -> smtplib.SMTP:
    """Connect to the relay, upgrading to TLS whenever the server allows it."""
    context = ssl.create_default_context()
    if config.smtp_port == IMPLICIT_TLS_PORT:
        return smtplib.SMTP_SSL(
            config.smtp_host,
            config.smtp_port,
            timeout=SMTP_TIMEOUT_SECONDS,
            context=context,
        )
    server = smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS)
    server.ehlo()
    if server.has_extn("starttls"):
        server.starttls(context=context)
        server.ehlo()
    return server


def send_to_kindle(
    outcome: ConversionOutcome,
    config: EmailConfig,
    smtp_factory: Optional[SmtpFactory] = None,
) -> None:
    """Send ``outcome`` to ``config.recipient``; any failure raises ``DeliveryError``."""
    message = build_message(outcome, config)
    factory = smtp_factory or open_smtp
    logger.info("Sending %s to %s via %s:%s", outcome.path.name, config.recipient, config.smtp_host, config.smtp_port)
    try:
        with factory(config) as server:
            server.login(config.sender, config.password)
            server.sendmail(config.sender, [config.recipient], message.as_string())
    except smtplib.SMTPAuthenticationError as exc:
        raise DeliveryError(
            f"SMTP authentication failed for {config.sender!r}; check EMAIL_FROM and EMAIL_PASSWORD"
        ) from exc
    except (smtplib.SMTPException, OSError) as exc:
        raise DeliveryError(f"Failed to send email: {exc}") from exc
    logger.info("Email sent to %s", config.recipient)
