"""Reusable EMI plan templates: ordered percentage splits with day offsets."""
from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field


class EMISplit(BaseModel):
    percent: float = Field(gt=0, le=100)
    due_days_from_start: int = Field(ge=0)


class EMIPlanTemplate(Document):
    """Read-only input to schedule generation; edits never reach existing installments."""

    org_id: str
    name: str
    installment_count: int
    split_config: list[EMISplit] = Field(default_factory=list)
    is_default: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "emi_plan_templates"
        use_state_management = True


class EMIPlanTemplateCreate(BaseModel):
    name: str = Field(min_length=1)
    installment_count: Optional[int] = Field(default=None, ge=1)
    split_config: list[EMISplit] = Field(min_length=1)
    is_default: bool = False


class EMIPlanTemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    split_config: Optional[list[EMISplit]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
