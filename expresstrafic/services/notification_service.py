import logging
from pathlib import Path
from typing import Dict, Optional

from fastapi import Request
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from expresstrafic.config import Settings
from expresstrafic.metrics import NOTIF_COUNTER_FAILED, NOTIF_COUNTER_SENT
from expresstrafic.services.notification_providers import (
    EmailTransport,
    SimulatedTransport,
    SmsSender,
    LogSmsSender,
    resolve_email_transport,
    resolve_sms_sender,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "notifications" / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


class NotificationService:
    def __init__(self, email_transport: Optional[EmailTransport] = None, sms_sender: Optional[SmsSender] = None):
        self.email_transport = email_transport or SimulatedTransport()
        self.sms_sender = sms_sender or LogSmsSender()

    def render(self, template_name: str, locale: str = "en", context: Optional[Dict] = None) -> str:
        ctx = context or {}
        # try locale-specific template, fallback to en
        for tpl in (f"{locale}/{template_name}", f"en/{template_name}"):
            try:
                return _env.get_template(tpl).render(**ctx)
            except TemplateNotFound:
                continue
        raise RuntimeError("Template not found: %s" % template_name)

    async def send_email(self, to: str, subject: str, template_name: str, context: Optional[Dict] = None, locale: str = "en", meta: Optional[Dict] = None) -> Dict:
        body = self.render(template_name, locale=locale, context=context)
        provider = self.email_transport.name
        try:
            res = await self.email_transport.send(to=to, subject=subject, body=body, meta=meta)
        except Exception:
            NOTIF_COUNTER_FAILED.labels(channel="email", provider=provider).inc()
            logger.exception("Email send failed to=%s template=%s", to, template_name)
            raise
        NOTIF_COUNTER_SENT.labels(channel="email", provider=provider).inc()
        return res

    async def send_sms(self, to: str, template_name: str, context: Optional[Dict] = None, locale: str = "en", meta: Optional[Dict] = None) -> Dict:
        body = self.render(template_name, locale=locale, context=context)
        provider = self.sms_sender.name
        try:
            res = await self.sms_sender.send(to=to, body=body, meta=meta)
        except Exception:
            NOTIF_COUNTER_FAILED.labels(channel="sms", provider=provider).inc()
            logger.exception("SMS send failed to=%s template=%s", to, template_name)
            raise
        NOTIF_COUNTER_SENT.labels(channel="sms", provider=provider).inc()
        return res


def build_notification_service(settings: Settings) -> NotificationService:
    """Resolve the transports once; the result lives on ``app.state``."""
    return NotificationService(
        email_transport=resolve_email_transport(settings),
        sms_sender=resolve_sms_sender(settings),
    )


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service
