from enum import Enum


class AccountRole(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    TUTOR = "tutor"
    PARENT = "parent"
    STUDENT = "student"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class CandidateKind(str, Enum):
    TUTOR = "tutor"
    PARENT_STUDENT_PAIR = "parent_student_pair"


class RowState(str, Enum):
    """Per-record enrollment state. REJECTED, COMMITTED and ROLLED_BACK are terminal."""

    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    REJECTED = "REJECTED"
    PARENT_RESOLVED = "PARENT_RESOLVED"
    STUDENT_CREATING = "STUDENT_CREATING"
    LINKING = "LINKING"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"
