from __future__ import annotations

import argparse

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.db.session import SessionLocal
from app.models.payment import AppointmentPayment
from app.services.reconciliation import payment_status


def check_payment(payment) -> list[str]:
    problems: list[str] = []
    total = payment.total_cents
    paid = payment.paid_cents
    lines = list(payment.transactions or [])
    line_sum = sum(line.amount_cents for line in lines)

    if paid < 0 or paid > total:
        problems.append(f"paid {paid} outside 0..{total}")
    if paid + payment.remaining_cents != total:
        problems.append(f"paid {paid} + remaining {payment.remaining_cents} != total {total}")
    if payment.change_cents < 0:
        problems.append(f"negative change {payment.change_cents}")
    if payment.change_cents and payment.remaining_cents:
        problems.append("change recorded on an unsettled payment")
    expected_status = payment_status(paid, total)
    if payment.status != expected_status:
        problems.append(f"status {payment.status.value} expected {expected_status.value}")
    if payment.change_cents:
        if abs(line_sum - paid) > len(lines):
            problems.append(f"transaction lines sum {line_sum} too far from paid {paid}")
    elif line_sum != paid:
        problems.append(f"transaction lines sum {line_sum} != paid {paid}")
    return problems


def main() -> int:
    parser = argparse.ArgumentParser(description="Check stored appointment payments for consistency.")
    parser.add_argument("--clinic-id", type=int, default=None, help="Limit the check to one clinic.")
    parser.add_argument(
        "--fix-status",
        action="store_true",
        help="Recompute and store the status of payments whose status is inconsistent.",
    )
    args = parser.parse_args()

    session = SessionLocal()
    try:
        stmt = select(AppointmentPayment).options(selectinload(AppointmentPayment.transactions))
        if args.clinic_id is not None:
            stmt = stmt.where(AppointmentPayment.clinic_id == args.clinic_id)
        checked = 0
        flagged = 0
        fixed = 0
        for payment in session.scalars(stmt.order_by(AppointmentPayment.id)).unique():
            checked += 1
            problems = check_payment(payment)
            if not problems:
                continue
            flagged += 1
            print(f"payment={payment.id} appointment={payment.appointment_id}: " + "; ".join(problems))
            expected_status = payment_status(payment.paid_cents, payment.total_cents)
            if args.fix_status and payment.status != expected_status:
                payment.status = expected_status
                fixed += 1
        if args.fix_status:
            session.commit()
        print("Payment consistency check")
        print(f"Checked={checked} flagged={flagged} status_fixed={fixed}")
        return 1 if flagged and not args.fix_status else 0
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
