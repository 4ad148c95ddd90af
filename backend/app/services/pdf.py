from __future__ import annotations

from datetime import timedelta, timezone
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from app.models.payment import AppointmentPayment
from app.services.currency import format_brl

METHOD_LABELS = {
    "cash": "Cash",
    "credit_card": "Credit card",
    "debit_card": "Debit card",
    "pix": "PIX",
    "check": "Check",
    "wire_transfer": "Wire transfer",
}


def _draw_header(pdf: canvas.Canvas, clinic_name: str, clinic_address: str | None, title: str) -> None:
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(20 * mm, 280 * mm, clinic_name)
    pdf.setFont("Helvetica", 10)
    if clinic_address:
        pdf.drawString(20 * mm, 274 * mm, clinic_address)
    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawRightString(190 * mm, 280 * mm, title)
    pdf.setStrokeColor(colors.lightgrey)
    pdf.line(20 * mm, 258 * mm, 190 * mm, 258 * mm)


def _draw_transactions(pdf: canvas.Canvas, payment: AppointmentPayment, y: float) -> float:
    rows = [["Method", "Reference", "Amount"]]
    for transaction in payment.transactions:
        rows.append(
            [
                METHOD_LABELS.get(transaction.method.value, transaction.method.value),
                transaction.reference or "",
                format_brl(transaction.amount_cents),
            ]
        )
    table = Table(rows, colWidths=[50 * mm, 80 * mm, 40 * mm])
    table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.grey),
                ("ALIGN", (2, 0), (2, -1), "RIGHT"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
            ]
        )
    )
    _, height = table.wrapOn(pdf, 170 * mm, y)
    table.drawOn(pdf, 20 * mm, y - height)
    return y - height - 10 * mm


def build_payment_receipt(payment: AppointmentPayment, *, utc_offset_hours: int = -3) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    appointment = payment.appointment
    clinic = appointment.clinic
    _draw_header(pdf, clinic.name if clinic else "Clinic", clinic.address if clinic else None, "Payment receipt")

    local_tz = timezone(timedelta(hours=utc_offset_hours))
    starts_at = appointment.starts_at
    if starts_at.tzinfo is None:
        starts_at = starts_at.replace(tzinfo=timezone.utc)
    processed_at = payment.processed_at
    if processed_at.tzinfo is None:
        processed_at = processed_at.replace(tzinfo=timezone.utc)

    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(20 * mm, 245 * mm, "Received from")
    pdf.setFont("Helvetica", 10)
    pdf.drawString(20 * mm, 240 * mm, appointment.patient.name)
    pdf.drawString(20 * mm, 235 * mm, f"Doctor: {appointment.doctor.name}")

    pdf.drawString(120 * mm, 245 * mm, f"Receipt: PAY-{payment.id:06d}")
    pdf.drawString(
        120 * mm, 240 * mm, f"Appointment: {starts_at.astimezone(local_tz).strftime('%d/%m/%Y %H:%M')}"
    )
    pdf.drawString(
        120 * mm, 235 * mm, f"Processed: {processed_at.astimezone(local_tz).strftime('%d/%m/%Y %H:%M')}"
    )

    y = _draw_transactions(pdf, payment, 220 * mm)

    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(20 * mm, y, f"Amount paid: {format_brl(payment.paid_cents)}")
    pdf.setFont("Helvetica", 10)
    pdf.drawString(20 * mm, y - 8 * mm, f"Appointment price: {format_brl(payment.total_cents)}")
    if payment.change_cents:
        pdf.drawString(20 * mm, y - 13 * mm, f"Change returned: {format_brl(payment.change_cents)}")
    pdf.drawString(20 * mm, y - 18 * mm, f"Balance remaining: {format_brl(payment.remaining_cents)}")
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
