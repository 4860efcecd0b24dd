import asyncio
import logging
import smtplib
import time
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Dict, Optional

import httpx

from expresstrafic.config import Settings

logger = logging.getLogger(__name__)


class EmailTransport(ABC):
    """Delivers one rendered email."""

    name: str = "email"

    @abstractmethod
    async def send(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        raise NotImplementedError()


class SmtpTransport(EmailTransport):
    name = "smtp"

    def __init__(self, host: str, port: int, user: Optional[str], password: Optional[str], sender: str, use_tls: bool = True, timeout: float = 10):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def _send_sync(self, to: str, subject: str, body: str) -> str:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(body, subtype="html")

        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.use_tls:
                server.starttls()
            if self.user:
                server.login(self.user, self.password or "")
            server.send_message(msg)
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()
        return msg["Message-ID"] or ""

    async def send(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        # smtplib blocks; keep it off the event loop
        message_id = await asyncio.to_thread(self._send_sync, to, subject, body)
        return {"status": "sent", "provider": self.name, "message_id": message_id}


class SimulatedTransport(EmailTransport):
    """Logs instead of sending; selected when no mail host is configured."""

    name = "simulated"

    async def send(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        logger.info("[SimulatedTransport] email to %s subject=%s", to, subject)
        logger.debug("Email body: %s", body)
        return {"status": "sent", "provider": self.name, "message_id": f"simulated-{int(time.time() * 1000)}"}


class SmsSender(ABC):
    name: str = "sms"

    @abstractmethod
    async def send(self, to: str, body: str, meta: Optional[Dict] = None) -> Dict:
        raise NotImplementedError()


class HttpSmsSender(SmsSender):
    """Posts messages to an HTTP SMS gateway."""

    name = "http"

    def __init__(self, api_url: str, api_key: Optional[str], sender: str, timeout: float = 10):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    async def send(self, to: str, body: str, meta: Optional[Dict] = None) -> Dict:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {"to": to, "from": self.sender, "text": body}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.api_url, json=payload, headers=headers)
            resp.raise_for_status()
        return {"status": "sent", "provider": self.name}


class LogSmsSender(SmsSender):
    name = "log"

    async def send(self, to: str, body: str, meta: Optional[Dict] = None) -> Dict:
        logger.info("[LogSmsSender] SMS to %s", to)
        logger.debug("SMS body: %s", body)
        return {"status": "sent", "provider": self.name}


def resolve_email_transport(settings: Settings) -> EmailTransport:
    host = settings.mail_host
    if not host:
        logger.warning("No mail host configured (MAIL_HOST / EMAIL_HOST); emails will be simulated")
        return SimulatedTransport()
    logger.info("Mail transport: smtp %s:%s", host, settings.mail_port)
    return SmtpTransport(
        host=host,
        port=settings.mail_port,
        user=settings.mail_user,
        password=settings.mail_password,
        sender=settings.MAIL_FROM,
        use_tls=settings.MAIL_USE_TLS,
        timeout=settings.MAIL_TIMEOUT_SECONDS,
    )


def resolve_sms_sender(settings: Settings) -> SmsSender:
    if settings.SMS_API_URL:
        return HttpSmsSender(settings.SMS_API_URL, settings.SMS_API_KEY, settings.SMS_SENDER)
    return LogSmsSender()
