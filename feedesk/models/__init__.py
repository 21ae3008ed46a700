"""Beanie document models and Pydantic schemas."""
from feedesk.models.fee_component import FeeComponent, FeeComponentType, FeeComponentCreate, FeeComponentUpdate
from feedesk.models.batch_fee import (
    BatchFeeStructure,
    BatchFeeLineItem,
    BatchFeeStructureCreate,
    BatchFeeStructureRevise,
    ApplyBatchFeeStructureBody,
)
from feedesk.models.student_fee import (
    StudentFeeStructure,
    StudentFeeLineItem,
    StudentFeeLineItemInput,
    StudentFeeStructureCreate,
    FeeStructureSource,
    CustomDiscount,
    CustomDiscountInput,
    CustomDiscountType,
)
from feedesk.models.emi_template import EMIPlanTemplate, EMISplit, EMIPlanTemplateCreate, EMIPlanTemplateUpdate
from feedesk.models.installment import (
    FeeInstallment,
    InstallmentPayment,
    InstallmentStatus,
    PaymentMode,
    PaymentLinkStatus,
)
from feedesk.models.receipt import Receipt, ReceiptSnapshot
from feedesk.models.scholarship import (
    Scholarship,
    ScholarshipBasis,
    ScholarshipType,
    ScholarshipCreate,
    ScholarshipUpdate,
    StudentScholarship,
    AssignScholarshipBody,
)

DOCUMENT_MODELS = [
    FeeComponent,
    BatchFeeStructure,
    StudentFeeStructure,
    EMIPlanTemplate,
    FeeInstallment,
    Receipt,
    Scholarship,
    StudentScholarship,
]

__all__ = [
    "FeeComponent",
    "FeeComponentType",
    "FeeComponentCreate",
    "FeeComponentUpdate",
    "BatchFeeStructure",
    "BatchFeeLineItem",
    "BatchFeeStructureCreate",
    "BatchFeeStructureRevise",
    "ApplyBatchFeeStructureBody",
    "StudentFeeStructure",
    "StudentFeeLineItem",
    "StudentFeeLineItemInput",
    "StudentFeeStructureCreate",
    "FeeStructureSource",
    "CustomDiscount",
    "CustomDiscountInput",
    "CustomDiscountType",
    "EMIPlanTemplate",
    "EMISplit",
    "EMIPlanTemplateCreate",
    "EMIPlanTemplateUpdate",
    "FeeInstallment",
    "InstallmentPayment",
    "InstallmentStatus",
    "PaymentMode",
    "PaymentLinkStatus",
    "Receipt",
    "ReceiptSnapshot",
    "Scholarship",
    "ScholarshipBasis",
    "ScholarshipType",
    "ScholarshipCreate",
    "ScholarshipUpdate",
    "StudentScholarship",
    "AssignScholarshipBody",
    "DOCUMENT_MODELS",
]
