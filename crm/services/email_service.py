"""
Outbound email over SMTP.

Sends plain-text outreach emails synchronously so the caller can log
the result to contact history. A missing configuration and a failed
send raise different exceptions so routes can answer 503 vs 500.

Usage:
    from crm.services.email_service import send_email

    send_email(
        to="buyer@example.com",
        subject="Quick question",
        text="Hi Sam, ...",
    )
"""

import logging
import smtplib
import uuid
from email.mime.text import MIMEText
from email.utils import make_msgid

from flask import current_app

from crm.errors import EmailNotConfiguredError, EmailSendError

logger = logging.getLogger(__name__)


def is_configured():
    config = current_app.config
    return bool(config.get("MAIL_USERNAME") and config.get("MAIL_PASSWORD"))


def sender_name():
    return current_app.config.get("MAIL_FROM_NAME", "")


def _from_header():
    config = current_app.config
    from_email = config.get("MAIL_FROM_ADDRESS") or config.get("MAIL_USERNAME", "")
    return f"{sender_name()} <{from_email}>"


def _deliver(msg=None):
    """Open an authenticated SMTP session and send msg, if given."""
    config = current_app.config
    host = config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = config.get("MAIL_SMTP_PORT", 587)
    with smtplib.SMTP(host, port, timeout=30) as server:
        server.ehlo()
        server.starttls()
        server.ehlo()
        server.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
        if msg is not None:
            server.send_message(msg)


def verify_connection():
    """Open and authenticate an SMTP session, then close it."""
    if not is_configured():
        raise EmailNotConfiguredError("SMTP is not configured. Set MAIL_USERNAME and MAIL_PASSWORD.")
    try:
        _deliver()
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP verification failed: {e}")
        raise EmailSendError(str(e)) from e
    return True


def send_email(to, subject, text, reply_to=None):
    """
    Send a plain-text email and block until the server accepts it.

    Args:
        to:        Recipient email address.
        subject:   Email subject line.
        text:      Plain-text body.
        reply_to:  Optional reply-to address (defaults to MAIL_REPLY_TO).

    Returns:
        str: the Message-ID of the sent email.

    Raises:
        EmailNotConfiguredError: MAIL_USERNAME / MAIL_PASSWORD missing.
        EmailSendError: the SMTP exchange failed.
    """
    if not is_configured():
        raise EmailNotConfiguredError("SMTP is not configured. Set MAIL_USERNAME and MAIL_PASSWORD.")

    msg = MIMEText(text, "plain", "utf-8")
    msg["Subject"] = subject
    msg["From"] = _from_header()
    msg["To"] = to
    msg["Message-ID"] = make_msgid(idstring=uuid.uuid4().hex[:12])

    reply_to = reply_to or current_app.config.get("MAIL_REPLY_TO")
    if reply_to:
        msg["Reply-To"] = reply_to

    try:
        _deliver(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to}: {e}")
        raise EmailSendError(str(e)) from e

    logger.info(f"Email sent to {to} — {subject}")
    return msg["Message-ID"]
