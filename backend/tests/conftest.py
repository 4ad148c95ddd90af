import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

_TEST_DB = Path(tempfile.mkdtemp(prefix="clinic-billing-")) / "test.db"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", f"sqlite+pysqlite:///{_TEST_DB}")
os.environ["N8N_WEBHOOK_URL"] = ""

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from app.db.session import SessionLocal  # noqa: E402
from app.main import app  # noqa: E402
from app.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from app.models.clinic import Clinic  # noqa: E402
from app.models.doctor import Doctor  # noqa: E402
from app.models.patient import Patient  # noqa: E402
from app.models.user import Role, User  # noqa: E402
from app.services.users import create_user  # noqa: E402


@pytest.fixture(scope="session")
def admin_credentials():
    email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    password = os.getenv("ADMIN_PASSWORD", "ChangeMe123!")
    return email, password


@pytest.fixture(scope="session")
def api_client():
    with TestClient(app) as client:
        yield client


@pytest.fixture(scope="session")
def auth_headers(api_client, admin_credentials):
    email, password = admin_credentials
    response = api_client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    token = response.json().get("access_token")
    assert token, "Missing access_token in login response"
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="session")
def admin_clinic_id(api_client, admin_credentials):
    email, _ = admin_credentials
    session = SessionLocal()
    try:
        admin = session.scalar(select(User).where(User.email == email.lower()))
        assert admin is not None and admin.clinic_id is not None
        return admin.clinic_id
    finally:
        session.close()


@pytest.fixture(scope="session")
def login_as(api_client):
    def _login(email: str, password: str) -> dict:
        response = api_client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login


@pytest.fixture(scope="session")
def make_user(api_client, login_as):
    created: dict[str, dict] = {}

    def _make(email: str, role: Role, clinic_id: int | None) -> dict:
        if email not in created:
            session = SessionLocal()
            try:
                create_user(
                    session,
                    email=email,
                    password="Front-Desk-Pass-1",
                    clinic_id=clinic_id,
                    full_name=email.split("@", 1)[0],
                    role=role,
                )
            finally:
                session.close()
            created[email] = login_as(email, "Front-Desk-Pass-1")
        return created[email]

    return _make


@pytest.fixture
def seed_appointment(api_client, admin_clinic_id):
    def _seed(
        *,
        price_cents: int = 15000,
        clinic_id: int | None = None,
        status: AppointmentStatus = AppointmentStatus.scheduled,
        health_insurance_plan: str | None = None,
        starts_at: datetime | None = None,
    ) -> int:
        session = SessionLocal()
        try:
            target_clinic = clinic_id or admin_clinic_id
            clinic = session.get(Clinic, target_clinic)
            if clinic.address is None:
                clinic.address = "Rua das Flores, 100"
            patient = Patient(clinic_id=target_clinic, name="Maria Souza", email="maria@example.com")
            doctor = Doctor(clinic_id=target_clinic, name="Dr. Paulo Lima", specialty="Cardiology")
            session.add_all([patient, doctor])
            session.flush()
            appointment = Appointment(
                clinic_id=target_clinic,
                patient_id=patient.id,
                doctor_id=doctor.id,
                starts_at=starts_at or datetime(2026, 3, 10, 17, 30, tzinfo=timezone.utc),
                price_cents=price_cents,
                status=status,
                health_insurance_plan=health_insurance_plan,
            )
            session.add(appointment)
            session.commit()
            return appointment.id
        finally:
            session.close()

    return _seed


@pytest.fixture(scope="session")
def other_clinic_id(api_client):
    session = SessionLocal()
    try:
        clinic = Clinic(name="Outra Clinica", address="Av. Brasil, 500")
        session.add(clinic)
        session.commit()
        return clinic.id
    finally:
        session.close()
