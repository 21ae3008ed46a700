"""Batch default fee structures: component + amount templates per batch and session."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel


class BatchFeeLineItem(BaseModel):
    fee_component_id: str
    amount: int = Field(ge=0)


class BatchFeeStructure(Document):
    """Superseded rather than edited, so students anchored to it keep their amounts."""

    org_id: str
    batch_id: Indexed(str)
    session_id: Indexed(str)
    name: str
    line_items: list[BatchFeeLineItem] = Field(default_factory=list)
    total_amount: int = 0
    is_active: bool = True
    superseded_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "batch_fee_structures"
        use_state_management = True
        indexes = [
            IndexModel(
                [("batch_id", ASCENDING), ("session_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"is_active": True},
            ),
        ]


class BatchFeeStructureCreate(BaseModel):
    batch_id: str
    session_id: str
    name: str = Field(min_length=1)
    line_items: list[BatchFeeLineItem] = Field(min_length=1)


class BatchFeeStructureRevise(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    line_items: list[BatchFeeLineItem] = Field(min_length=1)


class ApplyBatchFeeStructureBody(BaseModel):
    student_ids: list[str] = Field(min_length=1)
    overwrite_existing: bool = False
