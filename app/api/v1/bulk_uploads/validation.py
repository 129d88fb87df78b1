"""
Per-record field, format and policy checks. Pure: never touches the store.

The ``normalize_*`` helpers are shared with account building, which only runs
on records that already passed ``validate``.
"""

import re
from datetime import datetime
from typing import Any, Dict, List

from email_validator import EmailNotValidError, validate_email

from app.core.enums import CandidateKind
from app.core.exceptions import FieldError

from .fields import required_fields
from .ingest import CandidateRecord


PASSWORD_SYMBOLS = "@$!%*?&"
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_POLICY = (
    "must be at least 8 characters and include uppercase, lowercase, number, "
    f"and special character ({PASSWORD_SYMBOLS})"
)
PHONE_RE = re.compile(r"^\+?[\d\s-]{10,}$")
DATE_RE = re.compile(r"^\d{2}-\d{2}-\d{4}$")
DATE_FORMAT = "%d-%m-%Y"

GRADE_RE = re.compile(r"^(?:grade\s*)?(\d{1,2})(?:st|nd|rd|th)?$", re.IGNORECASE)
NAMED_GRADES = ("Pre-K", "Kindergarten", "College", "Graduate")
MIN_GRADE, MAX_GRADE = 1, 12


def is_valid_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def is_valid_password(value: str) -> bool:
    return bool(PASSWORD_RE.match(value or ""))


def normalize_date(value: str) -> str:
    """DD-MM-YYYY -> ISO YYYY-MM-DD. Raises ValueError for shapes or dates that do not exist."""
    text = str(value or "").strip()
    if not DATE_RE.match(text):
        raise ValueError(f"'{value}' is not in DD-MM-YYYY format")
    return datetime.strptime(text, DATE_FORMAT).date().isoformat()


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def normalize_grade(value: str) -> str:
    """Canonical ordinal grade: 10, 10th and Grade 10 all become 10th.

    Raises ValueError outside 1-12 and the named grades.
    """
    text = str(value or "").strip()
    for name in NAMED_GRADES:
        if text.lower() == name.lower():
            return name
    match = GRADE_RE.match(text)
    if match:
        number = int(match.group(1))
        if MIN_GRADE <= number <= MAX_GRADE:
            return _ordinal(number)
    raise ValueError(f"Invalid grade '{value}'")


def _is_number(value: str, whole: bool = False) -> bool:
    try:
        number = int(value) if whole else float(value)
    except (TypeError, ValueError):
        return False
    return number >= 0


def _check_identity(values: Dict[str, Any], prefix: str, who: str, errors: List[FieldError]) -> None:
    """Email, password and phone checks for one person in the row ("parent_", "student_" or "")."""
    email = values.get(f"{prefix}email")
    if email and not is_valid_email(email):
        errors.append(FieldError(f"{prefix}email", f"Invalid {who}email format"))
    password = values.get(f"{prefix}password")
    if password and not is_valid_password(password):
        label = f"{who}password".strip().capitalize()
        errors.append(FieldError(f"{prefix}password", f"{label} {PASSWORD_POLICY}"))
    phone_key = f"{prefix}phone"
    phone = values.get(phone_key)
    if phone and not PHONE_RE.match(phone):
        errors.append(FieldError(phone_key, f"Invalid {who}phone number format"))


def _check_date(values: Dict[str, Any], key: str, label: str, errors: List[FieldError]) -> None:
    raw = values.get(key)
    if not raw:
        return
    try:
        normalize_date(raw)
    except ValueError:
        errors.append(FieldError(key, f"Invalid {label} (DD-MM-YYYY)"))


def _check_pair(values: Dict[str, Any], errors: List[FieldError]) -> None:
    _check_identity(values, "parent_", "parent ", errors)
    _check_identity(values, "student_", "student ", errors)

    parent_email = (values.get("parent_email") or "").lower()
    student_email = (values.get("student_email") or "").lower()
    if parent_email and parent_email == student_email:
        errors.append(FieldError("student_email", "Student email must be different from parent email"))

    _check_date(values, "student_date_of_birth", "student date of birth", errors)

    grade = values.get("student_grade")
    if grade:
        try:
            normalize_grade(grade)
        except ValueError:
            errors.append(FieldError(
                "student_grade",
                f"Invalid student grade '{grade}'. Use 1-12 (e.g. 10, 10th, Grade 10) or one of: "
                + ", ".join(NAMED_GRADES),
            ))

    rate = values.get("student_hourly_rate")
    if rate and not _is_number(rate):
        errors.append(FieldError("student_hourly_rate", "Student hourly rate must be a non-negative number"))


def _check_tutor(values: Dict[str, Any], errors: List[FieldError]) -> None:
    _check_identity(values, "", "", errors)
    _check_date(values, "date_of_birth", "date of birth", errors)

    rate = values.get("hourly_rate")
    if rate and not _is_number(rate):
        errors.append(FieldError("hourly_rate", "Hourly rate must be a non-negative number"))
    years = values.get("experience_years")
    if years and not _is_number(years, whole=True):
        errors.append(FieldError("experience_years", "Years of experience must be a whole number"))

    certifications = values.get("certifications") or []
    if not isinstance(certifications, list):
        errors.append(FieldError("certifications", "Certifications must be a list"))
        return
    for position, cert in enumerate(certifications, start=1):
        if not isinstance(cert, dict):
            errors.append(FieldError("certifications", f"Certification {position} must be an object"))
            continue
        for key, label in (("issueDate", "issue date"), ("expiryDate", "expiry date")):
            if cert.get(key):
                _check_date(cert, key, f"certification {position} {label}", errors)


def validate(record: CandidateRecord) -> List[FieldError]:
    """All field errors for one record; an empty list means the record may be persisted."""
    if record.parse_error:
        return [FieldError("row", record.parse_error)]

    values = record.values
    errors = [
        FieldError(spec.key, f"Missing required field: {spec.label}")
        for spec in required_fields(record.kind)
        if not str(values.get(spec.key) or "").strip()
    ]
    if record.kind == CandidateKind.TUTOR:
        _check_tutor(values, errors)
    else:
        _check_pair(values, errors)
    return errors
