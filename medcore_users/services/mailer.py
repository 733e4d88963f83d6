"""Verification email delivery over SMTP.

Sending never raises: callers get a ``MailResult`` and decide how to
compensate for a failed delivery.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
import logging
import secrets
from typing import Any, Protocol

import aiosmtplib

from medcore_users.config import Settings

logger = logging.getLogger(__name__)

SUBJECT = "MedCore | Verifica tu correo para activar tu cuenta"

BODY_TEXT = """Hola {fullname},

Para mantener la seguridad de la información clínica necesitamos verificar tu correo.
Ingresa el siguiente código en la aplicación para activar tu cuenta:

    {code}

Si no fuiste tú quien solicitó esta verificación, puedes ignorar este mensaje.

© {year} MedCore
"""

BODY_HTML = """<!-- VERIFICATION_CODE:{code} -->
<div style="max-width:640px;margin:0 auto;font-family:system-ui,sans-serif;color:#0f172a">
  <h1 style="font-size:20px">Hola {fullname},</h1>
  <p>Para mantener la seguridad de la información clínica necesitamos verificar tu correo.
  Ingresa el siguiente código en la aplicación para activar tu cuenta:</p>
  <div style="text-align:center;margin:20px 0">
    <span style="display:inline-block;background:#0ea5e9;color:#fff;font-size:28px;font-weight:800;
    padding:12px 24px;border-radius:10px;letter-spacing:4px">{code}</span>
  </div>
  <p>Si no fuiste tú quien solicitó esta verificación, puedes ignorar este mensaje.</p>
  <p style="color:#64748b;font-size:12px">© {year} MedCore</p>
</div>
"""


def generate_verification_code() -> str:
    """Six-digit code drawn uniformly from [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


@dataclass(slots=True)
class MailResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class VerificationSender(Protocol):
    async def send_verification(self, email: str, fullname: str, code: str) -> MailResult: ...


class VerificationMailer:
    """Async SMTP sender for account verification codes."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def send_verification(self, email: str, fullname: str, code: str) -> MailResult:
        if not self._settings.email_enabled:
            logger.warning("Email disabled; verification for %s not sent", email)
            return MailResult(success=False, error="Email sending is disabled")

        message = self._build_message(email, fullname, code)
        try:
            response = await self._smtp_send(message)
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Could not send verification email to %s: %s", email, exc)
            return MailResult(success=False, error=str(exc) or exc.__class__.__name__)

        logger.info("Verification email sent to %s", email)
        logger.debug("SMTP reply for %s: %s", email, response)
        return MailResult(success=True, message_id=message["Message-ID"])

    def _build_message(self, email: str, fullname: str, code: str) -> MIMEMultipart:
        values = {"fullname": fullname, "code": code, "year": datetime.now(UTC).year}
        message = MIMEMultipart("alternative")
        message["Subject"] = SUBJECT
        message["From"] = f"{self._settings.email_from_name} <{self._settings.email_from_address}>"
        message["To"] = email
        sender_domain = self._settings.email_from_address.rpartition("@")[2]
        message["Message-ID"] = make_msgid(domain=sender_domain or None)
        message.attach(MIMEText(BODY_TEXT.format(**values), "plain", "utf-8"))
        message.attach(MIMEText(BODY_HTML.format(**values), "html", "utf-8"))
        return message

    async def _smtp_send(self, message: MIMEMultipart) -> Any:
        s = self._settings
        # App passwords are often pasted with grouping spaces.
        password = s.smtp_password.replace(" ", "")
        async with aiosmtplib.SMTP(
            hostname=s.smtp_host,
            port=s.smtp_port,
            timeout=s.email_send_timeout_seconds,
            use_tls=s.smtp_use_ssl,
            start_tls=False,
        ) as smtp:
            if s.smtp_use_tls and not s.smtp_use_ssl:
                await smtp.starttls()
            if s.smtp_username and password:
                await smtp.login(s.smtp_username, password)
            return await smtp.send_message(message)
