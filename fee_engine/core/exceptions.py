from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def code(self) -> str:
        return type(self).__name__


# --- Taxonomy ---
class ValidationError(ServiceError):
    """Malformed input rejected before anything is persisted."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    """Existing state blocks the operation; caller must override or clean up first."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


# --- Not found ---
class FeeComponentNotFound(NotFoundError):
    pass


class ScholarshipNotFound(NotFoundError):
    pass


class FeeStructureNotFound(NotFoundError):
    pass


class TemplateNotFound(NotFoundError):
    pass


class InstallmentNotFound(NotFoundError):
    pass


class PaymentNotFound(NotFoundError):
    pass


# --- Conflicts ---
class DuplicateName(ConflictError):
    pass


class DuplicateStructure(ConflictError):
    pass


class DuplicateScholarshipAssignment(ConflictError):
    pass


class InstallmentsAlreadyExist(ConflictError):
    pass


class PaymentsExist(ConflictError):
    pass


# --- Business rules ---
class OverpaymentNotAllowed(BusinessRuleError):
    pass


class DiscountExceedsGross(BusinessRuleError):
    pass


class InvalidScholarship(BusinessRuleError):
    pass


class InactiveReference(BusinessRuleError):
    pass
