from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from app.models.appointment import Appointment, AppointmentStatus
from app.models.payment import AppointmentPayment
from app.services.errors import InvalidInputError
from app.services.reconciliation import PaymentMethod, PaymentStatus


@dataclass(frozen=True)
class BillingStats:
    pending_appointments: int
    payments_today: int
    daily_revenue_cents: int


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _pending_filter(clinic_id: int):
    return and_(
        Appointment.clinic_id == clinic_id,
        Appointment.status != AppointmentStatus.cancelled,
        Appointment.health_insurance_plan.is_(None),
        or_(
            AppointmentPayment.id.is_(None),
            AppointmentPayment.status != PaymentStatus.paid,
        ),
    )


def billing_stats(db: Session, *, clinic_id: int, now: datetime | None = None) -> BillingStats:
    start, end = day_bounds(now or datetime.now(timezone.utc))

    pending = db.scalar(
        select(func.count(Appointment.id))
        .select_from(Appointment)
        .outerjoin(AppointmentPayment, AppointmentPayment.appointment_id == Appointment.id)
        .where(_pending_filter(clinic_id))
    )

    paid_today = and_(
        AppointmentPayment.clinic_id == clinic_id,
        AppointmentPayment.status == PaymentStatus.paid,
        AppointmentPayment.processed_at >= start,
        AppointmentPayment.processed_at < end,
    )
    payments_today, revenue = db.execute(
        select(
            func.count(AppointmentPayment.id),
            func.coalesce(func.sum(AppointmentPayment.paid_cents), 0),
        ).where(paid_today)
    ).one()

    return BillingStats(
        pending_appointments=int(pending or 0),
        payments_today=int(payments_today or 0),
        daily_revenue_cents=int(revenue or 0),
    )


def pending_appointments(
    db: Session, *, clinic_id: int, limit: int = 50, offset: int = 0
) -> list[Appointment]:
    stmt = (
        select(Appointment)
        .outerjoin(AppointmentPayment, AppointmentPayment.appointment_id == Appointment.id)
        .where(_pending_filter(clinic_id))
        .order_by(Appointment.starts_at.desc(), Appointment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt).unique())


class RevenuePeriod(str, enum.Enum):
    day = "day"
    week = "week"
    month = "month"
    year = "year"


@dataclass(frozen=True)
class RevenueBucket:
    period_start: date
    revenue_cents: int
    payment_count: int


@dataclass(frozen=True)
class MethodRevenue:
    method: PaymentMethod
    total_cents: int
    transaction_count: int


@dataclass(frozen=True)
class DoctorRevenue:
    doctor_id: int
    name: str
    specialty: str | None
    revenue_cents: int
    appointments: int


@dataclass(frozen=True)
class RevenueTransaction:
    payment_id: int
    patient_name: str
    doctor_name: str
    method: PaymentMethod
    amount_cents: int
    appointment_starts_at: datetime
    processed_at: datetime


@dataclass(frozen=True)
class RevenueReport:
    start: date
    end: date
    period: RevenuePeriod
    payment_method: PaymentMethod | None
    total_revenue_cents: int
    total_payments: int
    total_patients: int
    total_doctors: int
    average_payment_cents: int
    series: list[RevenueBucket]
    by_method: list[MethodRevenue]
    top_doctors: list[DoctorRevenue]
    recent_transactions: list[RevenueTransaction]


TOP_DOCTORS_LIMIT = 10
RECENT_TRANSACTIONS_LIMIT = 50


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def period_start(day: date, period: RevenuePeriod) -> date:
    if period == RevenuePeriod.week:
        return day - timedelta(days=day.weekday())
    if period == RevenuePeriod.month:
        return day.replace(day=1)
    if period == RevenuePeriod.year:
        return day.replace(month=1, day=1)
    return day


def revenue_report(
    db: Session,
    *,
    clinic_id: int,
    start: date,
    end: date,
    payment_method: PaymentMethod | None = None,
    period: RevenuePeriod = RevenuePeriod.month,
) -> RevenueReport:
    """Revenue from settled payments processed between ``start`` and ``end``.

    Both dates are inclusive UTC days. Revenue is the applied amount of each
    paid payment; with ``payment_method`` set, only that method's adjusted
    transaction lines count and payments without such a line are skipped.
    """
    if start > end:
        raise InvalidInputError("Start date must not be after end date")
    start_dt = datetime.combine(start, time.min, tzinfo=timezone.utc)
    end_dt = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)

    stmt = (
        select(AppointmentPayment)
        .where(
            AppointmentPayment.clinic_id == clinic_id,
            AppointmentPayment.status == PaymentStatus.paid,
            AppointmentPayment.processed_at >= start_dt,
            AppointmentPayment.processed_at < end_dt,
        )
        .order_by(AppointmentPayment.processed_at.desc(), AppointmentPayment.id.desc())
    )

    total_revenue = 0
    total_payments = 0
    patients: set[int] = set()
    buckets: dict[date, list[int]] = {}
    methods: dict[PaymentMethod, list[int]] = {}
    doctors: dict[int, dict] = {}
    recent: list[RevenueTransaction] = []

    for payment in db.scalars(stmt).unique():
        lines = [
            line
            for line in payment.transactions
            if payment_method is None or line.method == payment_method
        ]
        if payment_method is not None and not lines:
            continue
        amount = sum(line.amount_cents for line in lines) if payment_method else payment.paid_cents
        appointment = payment.appointment
        processed_at = _as_utc(payment.processed_at)

        total_revenue += amount
        total_payments += 1
        patients.add(appointment.patient_id)

        bucket = buckets.setdefault(period_start(processed_at.date(), period), [0, 0])
        bucket[0] += amount
        bucket[1] += 1

        doctor = doctors.setdefault(
            appointment.doctor_id,
            {
                "name": appointment.doctor.name,
                "specialty": appointment.doctor.specialty,
                "revenue": 0,
                "appointments": 0,
            },
        )
        doctor["revenue"] += amount
        doctor["appointments"] += 1

        for line in lines:
            entry = methods.setdefault(line.method, [0, 0])
            entry[0] += line.amount_cents
            entry[1] += 1
            if len(recent) < RECENT_TRANSACTIONS_LIMIT:
                recent.append(
                    RevenueTransaction(
                        payment_id=payment.id,
                        patient_name=appointment.patient.name,
                        doctor_name=appointment.doctor.name,
                        method=line.method,
                        amount_cents=line.amount_cents,
                        appointment_starts_at=_as_utc(appointment.starts_at),
                        processed_at=processed_at,
                    )
                )

    top_doctors = sorted(doctors.items(), key=lambda item: (-item[1]["revenue"], item[0]))
    return RevenueReport(
        start=start,
        end=end,
        period=period,
        payment_method=payment_method,
        total_revenue_cents=total_revenue,
        total_payments=total_payments,
        total_patients=len(patients),
        total_doctors=len(doctors),
        average_payment_cents=total_revenue // total_payments if total_payments else 0,
        series=[
            RevenueBucket(period_start=key, revenue_cents=value[0], payment_count=value[1])
            for key, value in sorted(buckets.items())
        ],
        by_method=[
            MethodRevenue(method=method, total_cents=value[0], transaction_count=value[1])
            for method, value in sorted(methods.items(), key=lambda item: (-item[1][0], item[0].value))
        ],
        top_doctors=[
            DoctorRevenue(
                doctor_id=doctor_id,
                name=data["name"],
                specialty=data["specialty"],
                revenue_cents=data["revenue"],
                appointments=data["appointments"],
            )
            for doctor_id, data in top_doctors[:TOP_DOCTORS_LIMIT]
        ],
        recent_transactions=recent,
    )
