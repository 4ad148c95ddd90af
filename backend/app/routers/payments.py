from functools import partial

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from app.core.settings import settings
from app.db.session import get_db
from app.deps import require_billing_staff
from app.models.appointment import AppointmentStatus
from app.models.user import User
from app.schemas.payment import PaymentOut, ProcessPaymentRequest, ProcessPaymentResponse
from app.services.audit import log_event
from app.services.errors import InvalidInputError, PersistenceError
from app.services.notifier import send_appointment_webhook, webhook_config_from_settings
from app.services.payments import (
    get_payment_for_appointment,
    load_appointment_for_update,
    process_payment,
)
from app.services.pdf import build_payment_receipt

router = APIRouter(prefix="/appointments", tags=["payments"])


@router.post("/{appointment_id}/payment", response_model=ProcessPaymentResponse)
def submit_payment(
    appointment_id: int,
    payload: ProcessPaymentRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_billing_staff),
    request_id: str | None = Header(default=None),
):
    appointment = load_appointment_for_update(
        db, clinic_id=user.clinic_id, appointment_id=appointment_id
    )
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    if appointment.status == AppointmentStatus.cancelled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot process payment for a cancelled appointment",
        )

    try:
        outcome = process_payment(
            db,
            actor=user,
            appointment=appointment,
            total_cents=payload.total_amount_cents,
            tenders=payload.tenders(),
            notes=payload.notes,
            request_id=request_id,
            ip_address=request.client.host if request.client else None,
            webhook_base_url=settings.public_base_url,
            utc_offset_hours=settings.clinic_utc_offset_hours,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)

    if outcome.webhook_event is not None:
        background_tasks.add_task(
            partial(
                send_appointment_webhook,
                outcome.webhook_event,
                webhook_config_from_settings(settings),
            )
        )

    return ProcessPaymentResponse(
        message=outcome.message,
        payment=PaymentOut.model_validate(outcome.payment),
    )


@router.get("/{appointment_id}/payment", response_model=PaymentOut)
def get_payment(
    appointment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_billing_staff),
):
    payment = get_payment_for_appointment(
        db, clinic_id=user.clinic_id, appointment_id=appointment_id
    )
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return payment


@router.get("/{appointment_id}/payment/receipt.pdf")
def get_payment_receipt(
    appointment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_billing_staff),
    request_id: str | None = Header(default=None),
):
    payment = get_payment_for_appointment(
        db, clinic_id=user.clinic_id, appointment_id=appointment_id
    )
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    pdf_bytes = build_payment_receipt(payment, utc_offset_hours=settings.clinic_utc_offset_hours)
    log_event(
        db,
        actor=user,
        action="payment.receipt_generated",
        entity_type="payment",
        entity_id=str(payment.id),
        request_id=request_id,
        ip_address=request.client.host if request.client else None,
    )
    db.commit()
    filename = f"receipt-{appointment_id}-{payment.id}.pdf"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)
