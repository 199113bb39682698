"""SMTP mail transport used by the dispatcher."""

from __future__ import annotations

import asyncio
from email.message import EmailMessage
from typing import Optional

import aiosmtplib


class TransportError(RuntimeError):
    """Raised when the transport could not hand the message to the SMTP server."""

    def __init__(self, message: str, smtp_code: Optional[int] = None):
        super().__init__(message)
        self.smtp_code = smtp_code


def build_message(email_from: str, email_to: str, subject: str, text: str) -> EmailMessage:
    """Translate the request fields into a plain-text :class:`EmailMessage`."""
    msg = EmailMessage()
    msg["From"] = email_from
    msg["To"] = email_to
    msg["Subject"] = subject
    msg.set_content(text, subtype="plain")
    return msg


class SMTPTransport:
    """Deliver one message per call over a fresh SMTP connection."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 25,
        user: Optional[str] = None,
        password: Optional[str] = None,
        *,
        use_tls: Optional[bool] = None,
        start_tls: bool = False,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        # Implicit TLS on the submission port unless configured explicitly
        self.use_tls = self.port == 465 if use_tls is None else bool(use_tls)
        self.start_tls = bool(start_tls) and not self.use_tls
        self.timeout = float(timeout)

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.use_tls,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )

    async def _connect(self, smtp: aiosmtplib.SMTP) -> None:
        """Open the SMTP connection and authenticate if needed."""
        await smtp.connect()
        if self.user and self.password:
            await smtp.login(self.user, self.password)

    async def _disconnect(self, smtp: aiosmtplib.SMTP) -> None:
        """Close the connection without affecting the outcome of the send."""
        try:
            await asyncio.wait_for(smtp.quit(), timeout=self.timeout)
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError):
            smtp.close()

    async def send(self, email_from: str, email_to: str, subject: str, text: str) -> None:
        """Send the message or raise :class:`TransportError`."""
        msg = build_message(email_from, email_to, subject, text)
        smtp = self._client()
        try:
            async with asyncio.timeout(self.timeout * 3):
                await self._connect(smtp)
                await smtp.send_message(msg, sender=email_from)
        except aiosmtplib.SMTPException as exc:
            smtp_code = getattr(exc, "smtp_code", None) or getattr(exc, "code", None)
            error_info = f"{exc} (SMTP {smtp_code})" if smtp_code else str(exc)
            raise TransportError(error_info, smtp_code) from exc
        except (asyncio.TimeoutError, TimeoutError, OSError) as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        finally:
            await self._disconnect(smtp)

    async def close(self) -> None:
        """Release transport resources; connections are per-send so nothing is pooled."""
        return None
