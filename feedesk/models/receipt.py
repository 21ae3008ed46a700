"""Receipts: immutable records issued per payment with a frozen fee breakdown."""
from datetime import date, datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field

from feedesk.models.installment import InstallmentStatus, PaymentMode
from feedesk.models.student_fee import CustomDiscount, StudentFeeLineItem


class ReceiptInstallmentSnapshot(BaseModel):
    installment_number: int
    amount: int
    due_date: date
    paid_amount: int
    status: InstallmentStatus


class ReceiptSnapshot(BaseModel):
    """Fee breakdown as it stood when the payment was received."""
    line_items: list[StudentFeeLineItem] = Field(default_factory=list)
    gross_amount: int
    scholarship_amount: int
    custom_discount: Optional[CustomDiscount] = None
    net_amount: int
    installment: ReceiptInstallmentSnapshot


class Receipt(Document):
    receipt_number: Indexed(str, unique=True)
    payment_id: Indexed(str, unique=True)
    installment_id: str
    student_fee_structure_id: str
    student_id: Indexed(str)
    session_id: str
    amount: int
    payment_mode: PaymentMode
    transaction_ref: Optional[str] = None
    received_by: str
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    voided: bool = False
    snapshot: ReceiptSnapshot

    class Settings:
        name = "receipts"
        use_state_management = True
