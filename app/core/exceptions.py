from dataclasses import dataclass
from typing import List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StructuralError(ServiceError):
    """The submitted payload is not a parseable list or table. Rejects the whole request."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ReconciliationError(ServiceError):
    """The pre-batch consistency sweep failed; no row may be processed."""

    def __init__(self, message: str = "Could not reconcile parent/child assignments") -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


# ----- Row-level failures (never abort sibling rows) -----
class EnrollmentError(Exception):
    """Base exception for a failure confined to a single batch row."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class FieldError:
    """One field/format/policy violation found before touching the store."""

    field: str
    reason: str

    def __str__(self) -> str:
        return self.reason


class FieldValidationError(EnrollmentError):
    def __init__(self, errors: List[FieldError]) -> None:
        super().__init__("; ".join(e.reason for e in errors))
        self.errors = errors


class DuplicateError(EnrollmentError):
    """Identity collision on email or username, pre-checked or raised by a unique index."""

    def __init__(self, field: str, value: Optional[str] = None, message: Optional[str] = None) -> None:
        if message is None:
            label = field.capitalize()
            message = f"{label} {value} already exists" if value else f"{label} already exists"
        super().__init__(message)
        self.field = field
        self.value = value


class PersistenceError(EnrollmentError):
    def __init__(self, cause: BaseException, message: Optional[str] = None) -> None:
        super().__init__(message or f"Could not save row: {cause}")
        self.cause = cause


class DanglingReferenceError(Exception):
    """A stored account id that no longer resolves to a correctly-roled account.

    Only produced by the reconciler, which repairs the reference instead of raising.
    """

    def __init__(self, dangling_id: str, owner_id: str) -> None:
        super().__init__(f"Account {owner_id} references missing account {dangling_id}")
        self.dangling_id = dangling_id
        self.owner_id = owner_id
