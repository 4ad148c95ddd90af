from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.services.reconciliation import PaymentMethod, PaymentStatus, PaymentTender


class PaymentTransactionIn(BaseModel):
    payment_method: PaymentMethod
    amount_cents: int = Field(ge=1)
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None

    def to_tender(self) -> PaymentTender:
        return PaymentTender(
            method=self.payment_method,
            amount=self.amount_cents,
            reference=self.transaction_reference,
            note=self.notes,
        )


class ProcessPaymentRequest(BaseModel):
    total_amount_cents: int = Field(ge=1)
    transactions: list[PaymentTransactionIn] = Field(min_length=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _transactions_sum_positive(self):
        if sum(item.amount_cents for item in self.transactions) <= 0:
            raise ValueError("The sum of transaction amounts must be greater than zero.")
        return self

    def tenders(self) -> list[PaymentTender]:
        return [item.to_tender() for item in self.transactions]


class PaymentTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    method: PaymentMethod
    amount_cents: int
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    total_cents: int
    paid_cents: int
    remaining_cents: int
    change_cents: int
    status: PaymentStatus
    processed_by_user_id: int
    processed_at: datetime
    notes: Optional[str] = None
    transactions: list[PaymentTransactionOut]


class ProcessPaymentResponse(BaseModel):
    success: bool = True
    message: str
    payment: PaymentOut
