"""Student-specific fee structures: copied from a batch default or fully custom."""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel


class FeeStructureSource(str, Enum):
    BATCH_DEFAULT = "batch_default"
    CUSTOM = "custom"


class CustomDiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class CustomDiscountInput(BaseModel):
    type: CustomDiscountType
    value: float
    remarks: Optional[str] = None


class CustomDiscount(BaseModel):
    """Resolved discount: `amount` is what was actually deducted from the gross."""
    type: CustomDiscountType
    value: float
    amount: int
    remarks: Optional[str] = None


class StudentFeeLineItem(BaseModel):
    fee_component_id: str
    component_name: str = ""
    component_type: str = ""
    original_amount: int
    adjusted_amount: int
    waived: bool = False
    waiver_reason: Optional[str] = None


class StudentFeeStructure(Document):
    """One per (student, session). Frozen once installments are generated."""

    org_id: str
    student_id: Indexed(str)
    session_id: Indexed(str)
    batch_id: Optional[str] = None
    source: FeeStructureSource
    batch_fee_structure_id: Optional[str] = None
    line_items: list[StudentFeeLineItem] = Field(default_factory=list)
    gross_amount: int = 0
    manual_scholarship_amount: int = 0
    scholarship_amount: int = 0  # manual amount plus assigned scholarships, capped at gross
    custom_discount: Optional[CustomDiscount] = None
    net_amount: int = 0
    remarks: Optional[str] = None

    installments_generated: bool = False
    emi_plan_name: Optional[str] = None  # name only; templates are not linked after generation
    schedule_start_date: Optional[date] = None
    version: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "student_fee_structures"
        use_state_management = True
        indexes = [
            IndexModel([("student_id", ASCENDING), ("session_id", ASCENDING)], unique=True),
        ]


class StudentFeeLineItemInput(BaseModel):
    fee_component_id: str
    original_amount: int = Field(ge=0)
    adjusted_amount: Optional[int] = Field(default=None, ge=0)
    waived: bool = False
    waiver_reason: Optional[str] = None


class StudentFeeStructureCreate(BaseModel):
    student_id: str
    session_id: str
    source: FeeStructureSource = FeeStructureSource.CUSTOM
    batch_fee_structure_id: Optional[str] = None
    batch_id: Optional[str] = None
    line_items: list[StudentFeeLineItemInput] = Field(default_factory=list)
    scholarship_amount: int = Field(default=0, ge=0)
    custom_discount: Optional[CustomDiscountInput] = None
    remarks: Optional[str] = None


class WaiveLineItemBody(BaseModel):
    waiver_reason: str = Field(min_length=1)
    adjusted_amount: int = Field(default=0, ge=0)


class AdjustLineItemBody(BaseModel):
    adjusted_amount: int = Field(ge=0)
    allow_increase: bool = False


class UpdateDiscountsBody(BaseModel):
    scholarship_amount: Optional[int] = Field(default=None, ge=0)
    custom_discount: Optional[CustomDiscountInput] = None
    clear_custom_discount: bool = False
