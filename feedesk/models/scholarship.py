"""Named scholarships and their per-student, per-session assignments."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel


class ScholarshipType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    COMPONENT_WAIVER = "component_waiver"


class ScholarshipBasis(str, Enum):
    MERIT = "merit"
    NEED_BASED = "need_based"
    SPORTS = "sports"
    SIBLING = "sibling"
    STAFF_WARD = "staff_ward"
    GOVERNMENT = "government"
    CUSTOM = "custom"


class Scholarship(Document):
    """`value` is a percentage (0-100) or a fixed amount; a component waiver ignores it."""

    org_id: Indexed(str)
    name: str
    type: ScholarshipType
    basis: ScholarshipBasis
    value: float = 0
    component_id: Optional[str] = None
    max_amount: Optional[int] = None
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "scholarships"
        use_state_management = True


class StudentScholarship(Document):
    """Removal flips is_active; discount_amount is refreshed whenever the structure is recomputed."""

    student_id: Indexed(str)
    scholarship_id: str
    session_id: str
    discount_amount: int = 0
    approved_by: str
    approved_at: datetime = Field(default_factory=datetime.utcnow)
    remarks: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "student_scholarships"
        use_state_management = True
        indexes = [
            IndexModel(
                [("student_id", ASCENDING), ("session_id", ASCENDING), ("scholarship_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"is_active": True},
            ),
        ]


class ScholarshipCreate(BaseModel):
    name: str = Field(min_length=1)
    type: ScholarshipType
    basis: ScholarshipBasis = ScholarshipBasis.CUSTOM
    value: float = Field(default=0, ge=0)
    component_id: Optional[str] = None
    max_amount: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class ScholarshipUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    value: Optional[float] = Field(default=None, ge=0)
    max_amount: Optional[int] = Field(default=None, ge=0)
    clear_max_amount: bool = False
    description: Optional[str] = None
    is_active: Optional[bool] = None


class AssignScholarshipBody(BaseModel):
    student_id: str
    scholarship_id: str
    session_id: str
    remarks: Optional[str] = None
