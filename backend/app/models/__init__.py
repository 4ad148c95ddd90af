from app.models.base import Base
from app.models.clinic import Clinic
from app.models.user import Role, User
from app.models.audit_log import AuditLog
from app.models.patient import Patient
from app.models.doctor import Doctor
from app.models.appointment import Appointment, AppointmentStatus
from app.models.payment import AppointmentPayment, PaymentTransaction

__all__ = [
    "Base",
    "Clinic",
    "Role",
    "User",
    "AuditLog",
    "Patient",
    "Doctor",
    "Appointment",
    "AppointmentStatus",
    "AppointmentPayment",
    "PaymentTransaction",
]
