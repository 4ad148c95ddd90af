from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.core.settings import settings
from app.db.session import get_db
from app.deps import require_admin, require_billing_staff
from app.models.user import User
from app.schemas.billing import (
    BillingStatsOut,
    PendingAppointmentOut,
    RevenueReportOut,
    WebhookConfigOut,
)
from app.services.audit import log_event
from app.services.billing import RevenuePeriod, billing_stats, pending_appointments, revenue_report
from app.services.errors import InvalidInputError
from app.services.notifier import webhook_config_from_settings
from app.services.reconciliation import PaymentMethod, PaymentStatus

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/stats", response_model=BillingStatsOut)
def get_billing_stats(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_billing_staff),
):
    stats = billing_stats(db, clinic_id=user.clinic_id)
    log_event(
        db,
        actor=user,
        action="billing.stats_viewed",
        entity_type="billing",
        entity_id="billing_statistics",
        ip_address=request.client.host if request.client else None,
    )
    db.commit()
    return BillingStatsOut(
        pending_appointments=stats.pending_appointments,
        payments_today=stats.payments_today,
        daily_revenue_cents=stats.daily_revenue_cents,
    )


@router.get("/pending", response_model=list[PendingAppointmentOut])
def list_pending_appointments(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_billing_staff),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    items = []
    for appointment in pending_appointments(db, clinic_id=user.clinic_id, limit=limit, offset=offset):
        payment = appointment.payment
        items.append(
            PendingAppointmentOut(
                id=appointment.id,
                patient_name=appointment.patient.name,
                doctor_name=appointment.doctor.name,
                starts_at=appointment.starts_at,
                status=appointment.status,
                price_cents=appointment.price_cents,
                payment_status=payment.status if payment else PaymentStatus.unpaid,
                paid_cents=payment.paid_cents if payment else 0,
                remaining_cents=payment.remaining_cents if payment else appointment.price_cents,
            )
        )
    log_event(
        db,
        actor=user,
        action="billing.pending_viewed",
        entity_type="billing",
        entity_id="pending_private_appointments",
        after_data={"count": len(items), "limit": limit, "offset": offset},
        ip_address=request.client.host if request.client else None,
    )
    db.commit()
    return items


@router.get("/webhook/config", response_model=WebhookConfigOut)
def get_webhook_config(_user: User = Depends(require_admin)):
    config = webhook_config_from_settings(settings)
    return WebhookConfigOut(
        configured=config.enabled,
        timeout_seconds=config.timeout_seconds,
        public_base_url=config.public_base_url,
    )


@router.get("/revenue", response_model=RevenueReportOut)
def get_revenue_report(
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    payment_method: PaymentMethod | None = Query(default=None),
    period: RevenuePeriod = Query(default=RevenuePeriod.month),
):
    range_end = end or datetime.now(timezone.utc).date()
    range_start = start or (range_end - timedelta(days=30))
    try:
        report = revenue_report(
            db,
            clinic_id=user.clinic_id,
            start=range_start,
            end=range_end,
            payment_method=payment_method,
            period=period,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    return RevenueReportOut.model_validate(report)
