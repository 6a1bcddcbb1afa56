from enum import Enum


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


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    COMPONENT_WAIVER = "component_waiver"


class CustomDiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class ScholarshipBasis(str, Enum):
    MERIT = "merit"
    NEED_BASED = "need_based"
    SPORTS = "sports"
    SIBLING = "sibling"
    STAFF_WARD = "staff_ward"
    GOVERNMENT = "government"
    CUSTOM = "custom"


class FeeStructureSource(str, Enum):
    BATCH_DEFAULT = "batch_default"
    CUSTOM = "custom"


class InstallmentStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    overdue = "overdue"


OUTSTANDING_STATUSES = frozenset(
    {InstallmentStatus.pending, InstallmentStatus.partial, InstallmentStatus.overdue}
)


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK = "bank"
    CARD = "card"
    CHEQUE = "cheque"
