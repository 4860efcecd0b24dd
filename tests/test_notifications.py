import pytest

from expresstrafic.config import Settings
from expresstrafic.services.notification_providers import (
    HttpSmsSender,
    LogSmsSender,
    SimulatedTransport,
    SmtpTransport,
    resolve_email_transport,
    resolve_sms_sender,
)
from expresstrafic.services.notification_service import NotificationService, build_notification_service
from factories import FailingTransport, RecordingTransport


def _settings(**kwargs):
    return Settings(DATABASE_URL="sqlite+aiosqlite://", **kwargs)


def test_no_mail_host_falls_back_to_simulated():
    assert isinstance(resolve_email_transport(_settings()), SimulatedTransport)


def test_mail_settings_take_precedence_over_email_settings():
    transport = resolve_email_transport(
        _settings(MAIL_HOST="smtp.mail.test", EMAIL_HOST="smtp.email.test", EMAIL_PORT=2525, EMAIL_USER="legacy")
    )
    assert isinstance(transport, SmtpTransport)
    assert transport.host == "smtp.mail.test"
    assert transport.port == 2525
    assert transport.user == "legacy"


def test_legacy_email_host_and_default_port():
    transport = resolve_email_transport(_settings(EMAIL_HOST="smtp.email.test"))
    assert transport.host == "smtp.email.test"
    assert transport.port == 587


def test_sms_sender_resolution():
    assert isinstance(resolve_sms_sender(_settings()), LogSmsSender)
    sender = resolve_sms_sender(_settings(SMS_API_URL="https://sms.example.com/send", SMS_API_KEY="k"))
    assert isinstance(sender, HttpSmsSender)
    assert sender.api_url == "https://sms.example.com/send"


def test_build_notification_service():
    service = build_notification_service(_settings())
    assert isinstance(service.email_transport, SimulatedTransport)
    assert isinstance(service.sms_sender, LogSmsSender)


def test_render_falls_back_to_english():
    service = NotificationService()
    body = service.render("email_verification.html", locale="fr", context={"prenom": "Awa", "verification_link": "http://x/y?a=1&b=2"})
    assert "Hello Awa" in body
    assert "a=1&amp;b=2" in body


def test_render_unknown_template():
    with pytest.raises(RuntimeError):
        NotificationService().render("missing.html")


@pytest.mark.asyncio
async def test_simulated_transport_returns_message_id():
    result = await SimulatedTransport().send("a@example.com", "Hi", "<p>Hi</p>")
    assert result["status"] == "sent"
    assert result["message_id"].startswith("simulated-")


@pytest.mark.asyncio
async def test_send_email_renders_and_delivers():
    transport = RecordingTransport()
    service = NotificationService(email_transport=transport)

    await service.send_email(
        to="a@example.com",
        subject="Welcome",
        template_name="welcome_verified.html",
        context={"prenom": "Awa", "login_link": "http://frontend.test/login", "support_email": "help@example.com"},
    )
    assert transport.sent[0]["to"] == "a@example.com"
    assert "http://frontend.test/login" in transport.sent[0]["body"]


@pytest.mark.asyncio
async def test_send_email_failure_propagates():
    service = NotificationService(email_transport=FailingTransport())
    with pytest.raises(RuntimeError):
        await service.send_email(to="a@example.com", subject="x", template_name="welcome_verified.html", context={})


@pytest.mark.asyncio
async def test_http_sms_sender_posts_to_gateway(monkeypatch):
    import httpx

    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(200, json={"id": "1"})

    real_client = httpx.AsyncClient

    def fake_client(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", fake_client)
    result = await HttpSmsSender("https://sms.example.com/send", "secret", "ExpressTrafic").send("+33612345678", "code")

    assert result == {"status": "sent", "provider": "http"}
    assert seen["auth"] == "Bearer secret"
    assert b"+33612345678" in seen["body"]
