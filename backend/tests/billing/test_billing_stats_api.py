from datetime import datetime, timedelta, timezone

from app.db.session import SessionLocal
from app.models.appointment import AppointmentStatus
from app.models.user import Role
from app.services.billing import billing_stats, day_bounds


def _stats(api_client, headers):
    res = api_client.get("/billing/stats", headers=headers)
    assert res.status_code == 200, res.text
    return res.json()


def _pay(api_client, headers, appointment_id, total, amount, method="cash"):
    res = api_client.post(
        f"/appointments/{appointment_id}/payment",
        json={
            "total_amount_cents": total,
            "transactions": [{"payment_method": method, "amount_cents": amount}],
        },
        headers=headers,
    )
    assert res.status_code == 200, res.text
    return res.json()["payment"]


def test_billing_stats_track_pending_and_daily_revenue(api_client, auth_headers, seed_appointment):
    before = _stats(api_client, auth_headers)

    unpaid_id = seed_appointment(price_cents=10000)
    partial_id = seed_appointment(price_cents=10000)
    paid_id = seed_appointment(price_cents=12000)
    seed_appointment(price_cents=9000, status=AppointmentStatus.cancelled)
    seed_appointment(price_cents=9000, health_insurance_plan="Unimed")

    _pay(api_client, auth_headers, partial_id, 10000, 4000)
    _pay(api_client, auth_headers, paid_id, 12000, 20000, method="pix")

    after = _stats(api_client, auth_headers)
    assert after["pending_appointments"] - before["pending_appointments"] == 2
    assert after["payments_today"] - before["payments_today"] == 1
    assert after["daily_revenue_cents"] - before["daily_revenue_cents"] == 12000

    pending = api_client.get("/billing/pending", params={"limit": 200}, headers=auth_headers)
    assert pending.status_code == 200, pending.text
    by_id = {item["id"]: item for item in pending.json()}
    assert unpaid_id in by_id
    assert partial_id in by_id
    assert paid_id not in by_id
    assert by_id[unpaid_id]["payment_status"] == "unpaid"
    assert by_id[unpaid_id]["remaining_cents"] == 10000
    assert by_id[partial_id]["payment_status"] == "partial"
    assert by_id[partial_id]["paid_cents"] == 4000
    assert by_id[partial_id]["patient_name"] == "Maria Souza"


def test_billing_stats_are_scoped_to_clinic(
    api_client, auth_headers, seed_appointment, other_clinic_id, make_user
):
    other_headers = make_user("admin.other@example.com", Role.admin, other_clinic_id)
    before = _stats(api_client, other_headers)
    seed_appointment(price_cents=5000, clinic_id=other_clinic_id)
    admin_before = _stats(api_client, auth_headers)

    after = _stats(api_client, other_headers)
    assert after["pending_appointments"] - before["pending_appointments"] == 1
    assert _stats(api_client, auth_headers) == admin_before


def test_billing_stats_exclude_payments_from_other_days(api_client, auth_headers, seed_appointment, admin_clinic_id):
    appointment_id = seed_appointment(price_cents=7000)
    _pay(api_client, auth_headers, appointment_id, 7000, 7000)

    session = SessionLocal()
    try:
        today = billing_stats(session, clinic_id=admin_clinic_id)
        tomorrow = billing_stats(
            session, clinic_id=admin_clinic_id, now=datetime.now(timezone.utc) + timedelta(days=1)
        )
    finally:
        session.close()
    assert today.payments_today >= 1
    assert tomorrow.payments_today == 0
    assert tomorrow.daily_revenue_cents == 0


def test_day_bounds_cover_one_utc_day():
    start, end = day_bounds(datetime(2026, 3, 10, 23, 59, tzinfo=timezone(timedelta(hours=-3))))
    assert start == datetime(2026, 3, 11, tzinfo=timezone.utc)
    assert end - start == timedelta(days=1)


def test_billing_endpoints_require_billing_roles(api_client, admin_clinic_id, make_user, auth_headers):
    doctor_headers = make_user("doctor.billing@example.com", Role.doctor, admin_clinic_id)
    assert api_client.get("/billing/stats", headers=doctor_headers).status_code == 403
    assert api_client.get("/billing/pending", headers=doctor_headers).status_code == 403

    desk_headers = make_user("desk.billing@example.com", Role.front_desk, admin_clinic_id)
    assert api_client.get("/billing/webhook/config", headers=desk_headers).status_code == 403

    config = api_client.get("/billing/webhook/config", headers=auth_headers)
    assert config.status_code == 200, config.text
    assert config.json()["configured"] is False
    assert "url" not in config.json()
