"""Fee installments, their embedded payment log, and the payment/link enums."""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel


class InstallmentStatus(str, Enum):
    UPCOMING = "upcoming"
    DUE = "due"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PAID = "paid"


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK = "bank"


class PaymentLinkStatus(str, Enum):
    """Opaque status of an external payment link; display only."""
    ACTIVE = "active"
    EXPIRED = "expired"
    PAID = "paid"
    CANCELLED = "cancelled"


class InstallmentPayment(BaseModel):
    """Append-only payment event. Voiding flags the row; it is never removed."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    amount: int
    payment_mode: PaymentMode
    transaction_ref: Optional[str] = None
    received_at: datetime = Field(default_factory=datetime.utcnow)
    remarks: Optional[str] = None
    received_by: str
    voided: bool = False
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None


class FeeInstallment(Document):
    """One scheduled slice of a student's net fee.

    `paid_amount` and `status` are caches over `payments`; `amount` and
    `due_date` never change after generation.
    """

    student_fee_structure_id: Indexed(str)
    student_id: Indexed(str)
    session_id: str
    batch_id: Optional[str] = None
    installment_number: int
    amount: int
    due_date: date
    paid_amount: int = 0
    status: InstallmentStatus = InstallmentStatus.UPCOMING
    payments: list[InstallmentPayment] = Field(default_factory=list)
    reminder_sent_at: Optional[datetime] = None
    reminder_count: int = 0
    payment_link_status: Optional[PaymentLinkStatus] = None
    version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "fee_installments"
        use_state_management = True
        indexes = [
            IndexModel(
                [("student_fee_structure_id", ASCENDING), ("installment_number", ASCENDING)],
                unique=True,
            ),
        ]

    @property
    def pending_amount(self) -> int:
        return max(0, self.amount - self.paid_amount)


class GenerateInstallmentsBody(BaseModel):
    student_fee_structure_id: str
    emi_template_id: str
    start_date: date


class RecordPaymentBody(BaseModel):
    amount: int
    payment_mode: PaymentMode
    transaction_ref: Optional[str] = None
    remarks: Optional[str] = None


class VoidPaymentBody(BaseModel):
    reason: str = Field(min_length=1)


class PaymentLinkStatusBody(BaseModel):
    status: PaymentLinkStatus
