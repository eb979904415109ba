"""
SMTP mailer.

Builds a multipart (plain + HTML) message and hands it to an SMTP relay.
Every failure surfaces as ``TransportError`` so callers can tell "not
delivered" apart from everything else.
"""

from __future__ import annotations

import smtplib
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Protocol, Sequence

from mes_kernel.exceptions import TransportError
from mes_kernel.logging_config import get_logger

logger = get_logger("services.mailer")


def build_message(
    *,
    from_email: str,
    to_emails: Sequence[str],
    subject: str,
    body_html: str,
    body_text: str = "",
    from_name: str | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    if from_name:
        msg["From"] = str(Address(display_name=from_name, addr_spec=from_email))
    else:
        msg["From"] = from_email
    msg["To"] = ", ".join(to_emails)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=None)

    msg.set_content(body_text or " ", charset="utf-8")
    msg.add_alternative(body_html, subtype="html", charset="utf-8")
    return msg


class Mailer(Protocol):
    """Anything that can deliver one HTML message."""

    def send(self, *, to_emails: Sequence[str], subject: str, body_html: str) -> None:
        """Deliver or raise TransportError."""
        ...


class SmtpMailer:
    """Mailer over ``smtplib`` with optional STARTTLS and login."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 25,
        sender_email: str,
        sender_name: str | None = None,
        use_tls: bool = False,
        username: str | None = None,
        password: str | None = None,
        timeout: int = 30,
    ):
        self._host = host
        self._port = port
        self._sender_email = sender_email
        self._sender_name = sender_name
        self._use_tls = use_tls
        self._username = username
        self._password = password
        self._timeout = timeout

    def send(self, *, to_emails: Sequence[str], subject: str, body_html: str) -> None:
        recipients = tuple(e.strip() for e in to_emails if e and e.strip())
        if not recipients:
            raise TransportError(recipients, "no recipient addresses")

        msg = build_message(
            from_email=self._sender_email,
            from_name=self._sender_name,
            to_emails=recipients,
            subject=subject,
            body_html=body_html,
        )
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as s:
                s.ehlo()
                if self._use_tls:
                    s.starttls()
                    s.ehlo()
                if self._username:
                    s.login(self._username, self._password or "")
                s.send_message(msg, from_addr=self._sender_email, to_addrs=list(recipients))
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(recipients, str(exc)) from exc

        logger.info(
            "mail_sent",
            extra={
                "smtp_host": self._host,
                "recipient_count": len(recipients),
                "subject": subject,
            },
        )
