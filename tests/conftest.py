import os
from datetime import date

os.environ.setdefault("DEBUG", "true")

import pytest
from mongomock_motor import AsyncMongoMockClient

from feedesk.db import init_db
from feedesk.models import (
    CustomDiscountInput,
    CustomDiscountType,
    EMISplit,
    FeeComponentCreate,
    FeeComponentType,
    StudentFeeStructureCreate,
)
from feedesk.models.emi_template import EMIPlanTemplateCreate
from feedesk.models.student_fee import StudentFeeLineItemInput
from feedesk.services import emi_templates, fee_components, ledger, student_fees

TODAY = date(2024, 4, 1)


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    await init_db(client["feedesk_test"])
    yield client["feedesk_test"]


@pytest.fixture
def today(monkeypatch):
    """Pin the organization's calendar date."""
    monkeypatch.setattr(ledger, "today", lambda: TODAY)
    return TODAY


@pytest.fixture
async def components(db):
    tuition = await fee_components.create_component(
        FeeComponentCreate(name="Tuition", type=FeeComponentType.TUITION)
    )
    lab = await fee_components.create_component(FeeComponentCreate(name="Lab", type=FeeComponentType.LAB))
    return {"tuition": tuition, "lab": lab}


@pytest.fixture
async def structure(components):
    """Gross 10000, scholarship 1000, 10% discount: net 8100."""
    return await student_fees.build_structure(
        StudentFeeStructureCreate(
            student_id="stu-1",
            session_id="2024-25",
            batch_id="grade-5",
            line_items=[
                StudentFeeLineItemInput(fee_component_id=str(components["tuition"].id), original_amount=8000),
                StudentFeeLineItemInput(fee_component_id=str(components["lab"].id), original_amount=2000),
            ],
            scholarship_amount=1000,
            custom_discount=CustomDiscountInput(type=CustomDiscountType.PERCENTAGE, value=10),
        )
    )


@pytest.fixture
async def three_way_template(db):
    return await emi_templates.create_template(
        EMIPlanTemplateCreate(
            name="Three-way",
            split_config=[
                EMISplit(percent=40, due_days_from_start=0),
                EMISplit(percent=30, due_days_from_start=30),
                EMISplit(percent=30, due_days_from_start=60),
            ],
        )
    )
