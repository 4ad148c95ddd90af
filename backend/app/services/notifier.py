"""Best-effort workflow webhook for appointment status changes.

Delivery failures are logged and reported in the returned ``WebhookDelivery``;
they never propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.core.settings import Settings
from app.models.appointment import Appointment
from app.services.currency import format_brl
from app.services.errors import NotificationError

logger = logging.getLogger("clinic_billing.webhook")

EVENT_NAME = "appointment_status_change"
DEFAULT_CLINIC_NAME = "Clinic"
DEFAULT_CLINIC_ADDRESS = "Address not provided"


@dataclass(frozen=True)
class WebhookConfig:
    url: str | None
    timeout_seconds: float = 10.0
    public_base_url: str | None = None
    utc_offset_hours: int = -3

    @property
    def enabled(self) -> bool:
        return bool(self.url)


def webhook_config_from_settings(settings: Settings) -> WebhookConfig:
    return WebhookConfig(
        url=settings.webhook_url,
        timeout_seconds=settings.webhook_timeout_seconds,
        public_base_url=settings.public_base_url,
        utc_offset_hours=settings.clinic_utc_offset_hours,
    )


class AppointmentWebhookEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    status: str
    appointment_id: str
    patient_name: str
    doctor_name: str
    clinic_name: str
    clinic_address: str
    price: int
    appointment_date: str
    appointment_time: str
    confirm_url: str | None = None
    cancel_url: str | None = None


@dataclass(frozen=True)
class WebhookDelivery:
    delivered: bool
    status_code: int | None = None
    error: str | None = None


def build_appointment_event(
    appointment: Appointment,
    status: str,
    *,
    base_url: str | None = None,
    utc_offset_hours: int = -3,
) -> AppointmentWebhookEvent:
    starts_at = appointment.starts_at
    if starts_at.tzinfo is None:
        starts_at = starts_at.replace(tzinfo=timezone.utc)
    local = starts_at.astimezone(timezone(timedelta(hours=utc_offset_hours)))
    clinic = appointment.clinic
    confirm_url = cancel_url = None
    if base_url:
        root = base_url.rstrip("/")
        confirm_url = f"{root}/api/appointments/{appointment.id}/confirm"
        cancel_url = f"{root}/api/appointments/{appointment.id}/cancel"
    return AppointmentWebhookEvent(
        status=status,
        appointment_id=str(appointment.id),
        patient_name=appointment.patient.name,
        doctor_name=appointment.doctor.name,
        clinic_name=(clinic.name if clinic and clinic.name else DEFAULT_CLINIC_NAME),
        clinic_address=(clinic.address if clinic and clinic.address else DEFAULT_CLINIC_ADDRESS),
        price=appointment.price_cents,
        appointment_date=local.strftime("%d/%m/%Y"),
        appointment_time=local.strftime("%H:%M"),
        confirm_url=confirm_url,
        cancel_url=cancel_url,
    )


def build_webhook_body(event: AppointmentWebhookEvent, *, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    data = event.model_dump(by_alias=True)
    data["priceFormatted"] = format_brl(event.price)
    data["appointmentDateTime"] = f"{event.appointment_date} {event.appointment_time}"
    return {
        "event": EVENT_NAME,
        "timestamp": now.isoformat(),
        "data": data,
    }


def send_appointment_webhook(
    event: AppointmentWebhookEvent,
    config: WebhookConfig,
    *,
    transport: httpx.BaseTransport | None = None,
) -> WebhookDelivery:
    if not config.enabled:
        logger.warning("Webhook URL not configured; skipping %s for appointment %s", event.status, event.appointment_id)
        return WebhookDelivery(delivered=False, error="webhook url not configured")

    logger.info(
        "Sending appointment webhook status=%s appointment_id=%s",
        event.status,
        event.appointment_id,
    )
    try:
        with httpx.Client(timeout=config.timeout_seconds, transport=transport) as client:
            response = client.post(config.url, json=build_webhook_body(event))
        if response.is_success:
            logger.info("Appointment webhook delivered (%s)", response.status_code)
            return WebhookDelivery(delivered=True, status_code=response.status_code)
        raise NotificationError(
            f"Webhook responded {response.status_code}: {response.text[:500]}",
            status_code=response.status_code,
        )
    except NotificationError as exc:
        logger.error("Appointment webhook rejected: %s", exc.message)
        return WebhookDelivery(delivered=False, status_code=exc.status_code, error=exc.message)
    except httpx.HTTPError as exc:
        error = NotificationError(f"Webhook request failed: {exc}")
        logger.error("Appointment webhook failed: %s", error.message)
        return WebhookDelivery(delivered=False, error=error.message)
