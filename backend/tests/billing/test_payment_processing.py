import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.db.session import SessionLocal
from app.models.appointment import Appointment
from app.models.audit_log import AuditLog
from app.models.payment import AppointmentPayment
from app.models.user import Role, User
from app.services.errors import ErrorKind, PersistenceError
from app.services.payments import outcome_message, process_payment
from app.services.reconciliation import PaymentMethod, PaymentTender, reconcile


def _admin(session, clinic_id):
    return session.scalar(
        select(User).where(User.clinic_id == clinic_id, User.role == Role.admin).limit(1)
    )


def test_process_payment_returns_outcome_and_event(seed_appointment, admin_clinic_id):
    appointment_id = seed_appointment(price_cents=15000)
    session = SessionLocal()
    try:
        actor = _admin(session, admin_clinic_id)
        appointment = session.get(Appointment, appointment_id)
        outcome = process_payment(
            session,
            actor=actor,
            appointment=appointment,
            total_cents=15000,
            tenders=[PaymentTender(PaymentMethod.cash, 20000)],
            webhook_base_url="https://clinic.example.com",
        )
        assert outcome.created is True
        assert outcome.result.change_amount == 5000
        assert outcome.payment.paid_cents == 15000
        assert outcome.webhook_event is not None
        assert outcome.webhook_event.confirm_url.endswith(f"/api/appointments/{appointment_id}/confirm")
    finally:
        session.close()


def test_persistence_failure_rolls_back_and_is_audited(
    seed_appointment, admin_clinic_id, monkeypatch
):
    appointment_id = seed_appointment(price_cents=5000)
    session = SessionLocal()
    try:
        actor = _admin(session, admin_clinic_id)
        appointment = session.get(Appointment, appointment_id)
        real_commit = session.commit
        calls = []

        def flaky_commit():
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("INSERT", {}, Exception("disk full"))
            real_commit()

        monkeypatch.setattr(session, "commit", flaky_commit)
        with pytest.raises(PersistenceError) as excinfo:
            process_payment(
                session,
                actor=actor,
                appointment=appointment,
                total_cents=5000,
                tenders=[PaymentTender(PaymentMethod.pix, 5000)],
            )
        assert excinfo.value.kind == ErrorKind.persistence
        assert excinfo.value.message == "Payment processing failed"

        stored = session.scalar(
            select(AppointmentPayment).where(AppointmentPayment.appointment_id == appointment_id)
        )
        assert stored is None
        failure = session.scalar(
            select(AuditLog).where(
                AuditLog.action == "payment.failed", AuditLog.entity_id == str(appointment_id)
            )
        )
        assert failure is not None
        assert failure.success is False
        assert failure.after_json["total_amount_cents"] == 5000
    finally:
        session.close()


def test_lost_connection_still_raises_persistence_error(
    seed_appointment, admin_clinic_id, monkeypatch
):
    appointment_id = seed_appointment(price_cents=7000)
    session = SessionLocal()
    try:
        actor = _admin(session, admin_clinic_id)
        appointment = session.get(Appointment, appointment_id)

        def lost_execute(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        def failing_commit():
            monkeypatch.setattr(session, "execute", lost_execute)
            raise OperationalError("INSERT", {}, Exception("connection lost"))

        monkeypatch.setattr(session, "commit", failing_commit)
        with pytest.raises(PersistenceError) as excinfo:
            process_payment(
                session,
                actor=actor,
                appointment=appointment,
                total_cents=7000,
                tenders=[PaymentTender(PaymentMethod.cash, 7000)],
            )
        assert excinfo.value.message == "Payment processing failed"
    finally:
        monkeypatch.undo()
        session.close()

    session = SessionLocal()
    try:
        stored = session.scalar(
            select(AppointmentPayment).where(AppointmentPayment.appointment_id == appointment_id)
        )
        assert stored is None
    finally:
        session.close()


@pytest.mark.parametrize(
    ("target", "amount", "message"),
    [
        (15000, 20000, "Payment processed successfully! Change: R$ 50,00"),
        (15000, 15000, "Payment processed successfully!"),
        (15000, 100, "Partial payment recorded!"),
    ],
)
def test_outcome_messages(target: int, amount: int, message: str):
    result = reconcile(target, [PaymentTender(PaymentMethod.cash, amount)])
    assert outcome_message(result) == message
