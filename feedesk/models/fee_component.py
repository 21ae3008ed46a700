"""Named, typed fee line items reusable across batches."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class FeeComponentType(str, Enum):
    TUITION = "tuition"
    ADMISSION = "admission"
    TRANSPORT = "transport"
    LAB = "lab"
    LIBRARY = "library"
    SPORTS = "sports"
    EXAM = "exam"
    UNIFORM = "uniform"
    MISC = "misc"


class FeeComponent(Document):
    """Fee component. Deactivated, never deleted: historical structures reference it."""

    org_id: Indexed(str)
    name: str
    type: FeeComponentType
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "fee_components"
        use_state_management = True


class FeeComponentCreate(BaseModel):
    name: str = Field(min_length=1)
    type: FeeComponentType
    description: Optional[str] = None


class FeeComponentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_active: Optional[bool] = None
