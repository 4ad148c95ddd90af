from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.models.appointment import AppointmentStatus
from app.services.billing import RevenuePeriod
from app.services.reconciliation import PaymentMethod, PaymentStatus


class BillingStatsOut(BaseModel):
    pending_appointments: int
    payments_today: int
    daily_revenue_cents: int


class PendingAppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_name: str
    doctor_name: str
    starts_at: datetime
    status: AppointmentStatus
    price_cents: int
    payment_status: PaymentStatus
    paid_cents: int
    remaining_cents: int


class WebhookConfigOut(BaseModel):
    configured: bool
    timeout_seconds: float
    public_base_url: Optional[str] = None


class RevenueBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period_start: date
    revenue_cents: int
    payment_count: int


class MethodRevenueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    method: PaymentMethod
    total_cents: int
    transaction_count: int


class DoctorRevenueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    doctor_id: int
    name: str
    specialty: Optional[str] = None
    revenue_cents: int
    appointments: int


class RevenueTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: int
    patient_name: str
    doctor_name: str
    method: PaymentMethod
    amount_cents: int
    appointment_starts_at: datetime
    processed_at: datetime


class RevenueReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: date
    end: date
    period: RevenuePeriod
    payment_method: Optional[PaymentMethod] = None
    total_revenue_cents: int
    total_payments: int
    total_patients: int
    total_doctors: int
    average_payment_cents: int
    series: list[RevenueBucketOut]
    by_method: list[MethodRevenueOut]
    top_doctors: list[DoctorRevenueOut]
    recent_transactions: list[RevenueTransactionOut]
