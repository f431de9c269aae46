"""
SMTP mailer

Email is a best-effort side effect: send() logs and returns False on
missing configuration or delivery failure, it never raises.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from olympiad.core.config import Settings
from olympiad.notifications.templates import approval_email, registration_email

logger = logging.getLogger(__name__)


class SmtpMailer:

    def __init__(self, settings: Settings):
        self.host = settings.MAIL_HOST
        self.port = settings.MAIL_PORT
        self.user = settings.MAIL_USER
        self.password = settings.MAIL_PASSWORD
        self.mail_from = settings.MAIL_FROM or settings.MAIL_USER or "noreply@example.com"
        self.use_tls = settings.MAIL_USE_TLS

    def _build(self, subject: str, to_address: str, text_body: str, html_body: Optional[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.mail_from
        msg["To"] = to_address
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=15) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def send(self, subject: str, to_address: str, text_body: str, html_body: Optional[str] = None) -> bool:
        if not self.host:
            logger.warning("[MAIL] MAIL_HOST not configured; skipping email send")
            return False
        if not to_address:
            logger.warning(f"[MAIL] No recipient for '{subject}'; skipping")
            return False

        msg = self._build(subject, to_address, text_body, html_body)
        try:
            await run_in_threadpool(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"[MAIL] Failed to send '{subject}' to {to_address}: {e}")
            return False

        logger.info(f"[MAIL] Sent '{subject}' to {to_address}")
        return True


async def send_registration_email(mailer, to_address: str, name: str) -> bool:
    subject, text, html = registration_email(name)
    return await mailer.send(subject, to_address, text, html)


async def send_approval_email(mailer, to_address: str, name: str) -> bool:
    subject, text, html = approval_email(name)
    return await mailer.send(subject, to_address, text, html)
