import json
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx

from app.core.settings import Settings
from app.services.currency import format_brl
from app.services.notifier import (
    DEFAULT_CLINIC_ADDRESS,
    DEFAULT_CLINIC_NAME,
    WebhookConfig,
    build_appointment_event,
    build_webhook_body,
    send_appointment_webhook,
    webhook_config_from_settings,
)


def _appointment(**overrides):
    values = dict(
        id=42,
        starts_at=datetime(2026, 3, 10, 17, 30, tzinfo=timezone.utc),
        price_cents=15000,
        patient=SimpleNamespace(name="Maria Souza"),
        doctor=SimpleNamespace(name="Dr. Paulo Lima"),
        clinic=SimpleNamespace(name="Clinica Centro", address="Rua das Flores, 100"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _event(**overrides):
    return build_appointment_event(
        _appointment(**overrides), "paid", base_url="https://clinic.example.com/"
    )


def test_event_uses_local_date_and_links():
    event = _event()
    assert event.appointment_id == "42"
    assert event.appointment_date == "10/03/2026"
    assert event.appointment_time == "14:30"
    assert event.confirm_url == "https://clinic.example.com/api/appointments/42/confirm"
    assert event.cancel_url == "https://clinic.example.com/api/appointments/42/cancel"


def test_event_defaults_missing_clinic_details():
    event = _event(clinic=SimpleNamespace(name=None, address=""))
    assert event.clinic_name == DEFAULT_CLINIC_NAME
    assert event.clinic_address == DEFAULT_CLINIC_ADDRESS

    no_links = build_appointment_event(_appointment(), "paid")
    assert no_links.confirm_url is None


def test_webhook_body_shape():
    now = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)
    body = build_webhook_body(_event(), now=now)
    assert body["event"] == "appointment_status_change"
    assert body["timestamp"] == now.isoformat()
    data = body["data"]
    assert data["appointmentId"] == "42"
    assert data["patientName"] == "Maria Souza"
    assert data["price"] == 15000
    assert data["priceFormatted"] == "R$ 150,00"
    assert data["appointmentDateTime"] == "10/03/2026 14:30"


def test_send_posts_json_to_configured_url():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True})

    delivery = send_appointment_webhook(
        _event(),
        WebhookConfig(url="https://hooks.example.com/n8n"),
        transport=httpx.MockTransport(handler),
    )
    assert delivery.delivered is True
    assert delivery.status_code == 200
    assert len(captured) == 1
    assert str(captured[0].url) == "https://hooks.example.com/n8n"
    assert json.loads(captured[0].content)["data"]["status"] == "paid"


def test_send_reports_rejection_without_raising():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable"))
    delivery = send_appointment_webhook(
        _event(), WebhookConfig(url="https://hooks.example.com/n8n"), transport=transport
    )
    assert delivery.delivered is False
    assert delivery.status_code == 503
    assert "503" in delivery.error


def test_send_reports_transport_error_without_raising():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    delivery = send_appointment_webhook(
        _event(),
        WebhookConfig(url="https://hooks.example.com/n8n"),
        transport=httpx.MockTransport(handler),
    )
    assert delivery.delivered is False
    assert delivery.status_code is None
    assert "connection refused" in delivery.error


def test_send_skips_when_disabled():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    delivery = send_appointment_webhook(
        _event(), WebhookConfig(url=None), transport=httpx.MockTransport(handler)
    )
    assert delivery.delivered is False
    assert delivery.error == "webhook url not configured"


def test_config_is_built_from_explicit_settings():
    settings = Settings(
        N8N_WEBHOOK_URL="https://hooks.example.com/n8n",
        WEBHOOK_TIMEOUT_SECONDS=3,
        APP_PUBLIC_URL="https://clinic.example.com",
        CLINIC_UTC_OFFSET_HOURS=-3,
    )
    config = webhook_config_from_settings(settings)
    assert config.enabled is True
    assert config.timeout_seconds == 3
    assert config.public_base_url == "https://clinic.example.com"

    blank = webhook_config_from_settings(Settings(N8N_WEBHOOK_URL="   "))
    assert blank.enabled is False


def test_format_brl():
    assert format_brl(15000) == "R$ 150,00"
    assert format_brl(5) == "R$ 0,05"
    assert format_brl(123456) == "R$ 1234,56"
    assert format_brl(-250) == "-R$ 2,50"
