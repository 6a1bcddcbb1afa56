from fee_engine.core.models.fee_component import FeeComponent
from fee_engine.core.models.scholarship import Scholarship, StudentScholarship
from fee_engine.core.models.batch_fee_structure import BatchFeeLineItem, BatchFeeStructure
from fee_engine.core.models.student_fee_structure import (
    StudentFeeLineItem,
    StudentFeeStructure,
    StudentScholarshipDiscount,
)
from fee_engine.core.models.emi_plan_template import EMIPlanTemplate
from fee_engine.core.models.fee_installment import FeeInstallment
from fee_engine.core.models.installment_payment import InstallmentPayment
from fee_engine.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "FeeComponent",
    "Scholarship",
    "StudentScholarship",
    "BatchFeeStructure",
    "BatchFeeLineItem",
    "StudentFeeStructure",
    "StudentFeeLineItem",
    "StudentScholarshipDiscount",
    "EMIPlanTemplate",
    "FeeInstallment",
    "InstallmentPayment",
    "FeeAuditLog",
]
