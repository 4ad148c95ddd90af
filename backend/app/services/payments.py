from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.appointment import Appointment
from app.models.payment import AppointmentPayment, PaymentTransaction
from app.models.user import User
from app.services.audit import log_event, snapshot_model
from app.services.currency import format_brl
from app.services.errors import PersistenceError
from app.services.notifier import AppointmentWebhookEvent, build_appointment_event
from app.services.reconciliation import (
    PaymentStatus,
    PaymentTender,
    ReconciliationResult,
    reconcile,
)

logger = logging.getLogger("clinic_billing.payments")


@dataclass(frozen=True)
class PaymentOutcome:
    payment: AppointmentPayment
    result: ReconciliationResult
    created: bool
    message: str
    webhook_event: AppointmentWebhookEvent | None = None


def outcome_message(result: ReconciliationResult) -> str:
    if result.status == PaymentStatus.paid:
        if result.change_amount > 0:
            return f"Payment processed successfully! Change: {format_brl(result.change_amount)}"
        return "Payment processed successfully!"
    if result.status == PaymentStatus.partial:
        return "Partial payment recorded!"
    return "Payment recorded!"


def load_appointment_for_update(
    db: Session, *, clinic_id: int, appointment_id: int
) -> Appointment | None:
    # Row lock serializes concurrent submissions for one appointment.
    locked_id = db.scalar(
        select(Appointment.id)
        .where(Appointment.id == appointment_id, Appointment.clinic_id == clinic_id)
        .with_for_update()
    )
    if locked_id is None:
        return None
    return db.get(Appointment, locked_id)


def get_payment_for_appointment(
    db: Session, *, clinic_id: int, appointment_id: int
) -> AppointmentPayment | None:
    return db.scalar(
        select(AppointmentPayment).where(
            AppointmentPayment.appointment_id == appointment_id,
            AppointmentPayment.clinic_id == clinic_id,
        )
    )


def _record_failure(
    db: Session,
    *,
    actor: User,
    appointment_id: int,
    clinic_id: int,
    total_cents: int,
    tenders: Sequence[PaymentTender],
    request_id: str | None,
    ip_address: str | None,
) -> None:
    try:
        log_event(
            db,
            actor=actor,
            action="payment.failed",
            entity_type="payment",
            entity_id=str(appointment_id),
            clinic_id=clinic_id,
            success=False,
            after_data={
                "error": "Payment processing failed",
                "appointment_id": appointment_id,
                "total_amount_cents": total_cents,
                "transactions": [
                    {"method": tender.method.value, "amount_cents": tender.amount}
                    for tender in tenders
                ],
            },
            request_id=request_id,
            ip_address=ip_address,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not write failure audit entry for appointment %s", appointment_id)


def process_payment(
    db: Session,
    *,
    actor: User,
    appointment: Appointment,
    total_cents: int,
    tenders: Sequence[PaymentTender],
    notes: str | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
    webhook_base_url: str | None = None,
    utc_offset_hours: int = -3,
) -> PaymentOutcome:
    """Reconcile tenders for an appointment and persist the result.

    A later submission for the same appointment replaces the stored payment
    and its transaction lines in full. Raises ``InvalidInputError`` before any
    write and ``PersistenceError`` after a rolled-back write.
    """
    result = reconcile(total_cents, tenders)
    now = datetime.now(timezone.utc)
    # Rollback expires loaded rows; the failure path only reads these.
    appointment_id = appointment.id
    clinic_id = appointment.clinic_id

    try:
        payment = db.scalar(
            select(AppointmentPayment).where(AppointmentPayment.appointment_id == appointment.id)
        )
        created = payment is None
        before_data = snapshot_model(payment)
        if payment is None:
            payment = AppointmentPayment(
                clinic_id=appointment.clinic_id,
                appointment_id=appointment.id,
            )
            db.add(payment)
        else:
            payment.transactions.clear()
            db.flush()

        payment.total_cents = total_cents
        payment.paid_cents = result.applied_amount
        payment.remaining_cents = result.remaining_amount
        payment.change_cents = result.change_amount
        payment.status = result.status
        payment.processed_by_user_id = actor.id
        payment.processed_at = now
        payment.notes = notes
        for tender in result.adjusted_tenders:
            payment.transactions.append(
                PaymentTransaction(
                    method=tender.method,
                    amount_cents=tender.amount,
                    reference=tender.reference or None,
                    notes=tender.note or None,
                )
            )
        db.flush()

        log_event(
            db,
            actor=actor,
            action="payment.created" if created else "payment.updated",
            entity_type="payment",
            entity_id=str(payment.id),
            clinic_id=appointment.clinic_id,
            before_data=before_data,
            after_data={
                "appointment_id": appointment.id,
                "total_amount_cents": total_cents,
                "paid_amount_cents": result.applied_amount,
                "client_input_cents": result.total_tendered,
                "change_cents": result.change_amount,
                "status": result.status.value,
                "transactions": len(result.adjusted_tenders),
            },
            request_id=request_id,
            ip_address=ip_address,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Payment processing failed for appointment %s", appointment_id)
        _record_failure(
            db,
            actor=actor,
            appointment_id=appointment_id,
            clinic_id=clinic_id,
            total_cents=total_cents,
            tenders=tenders,
            request_id=request_id,
            ip_address=ip_address,
        )
        raise PersistenceError("Payment processing failed") from exc

    db.refresh(payment)
    logger.info(
        "Payment processed id=%s status=%s paid=%s client_input=%s change=%s",
        payment.id,
        result.status.value,
        result.applied_amount,
        result.total_tendered,
        result.change_amount,
    )

    webhook_event = None
    if result.status == PaymentStatus.paid:
        webhook_event = build_appointment_event(
            appointment,
            PaymentStatus.paid.value,
            base_url=webhook_base_url,
            utc_offset_hours=utc_offset_hours,
        )

    return PaymentOutcome(
        payment=payment,
        result=result,
        created=created,
        message=outcome_message(result),
        webhook_event=webhook_event,
    )
