"""Turn validated row values into new Account rows with typed profiles."""

from datetime import date
from typing import Any, Dict, List, Optional

from app.auth.models import Account, generate_account_id
from app.auth.profiles import (
    WEEKDAYS,
    Address,
    Certification,
    DayAvailability,
    Education,
    MedicalInfo,
    NotificationSettings,
    ParentAssignments,
    ParentContact,
    ParentPreferences,
    ParentProfile,
    Rating,
    StudentProfile,
    TutorProfile,
    dump_profile,
)
from app.auth.security import hash_password
from app.core.enums import AccountRole, AccountStatus

from .validation import normalize_date, normalize_grade


TRUTHY = {"true", "yes", "y", "1"}


def split_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value or "").split(",") if part.strip()]


def is_truthy(value: Any) -> bool:
    return str(value or "").strip().lower() in TRUTHY


def _number(value: Any, default: float = 0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _iso_date(value: Optional[str]) -> Optional[str]:
    return normalize_date(value) if value else None


def _address(data: Any) -> Address:
    if not isinstance(data, dict):
        return Address()
    return Address(
        street=str(data.get("street") or ""),
        city=str(data.get("city") or ""),
        state=str(data.get("state") or ""),
        zip_code=str(data.get("zipCode") or data.get("zip_code") or ""),
        country=str(data.get("country") or ""),
    )


def _new_account(
    values: Dict[str, Any],
    prefix: str,
    role: AccountRole,
    center_id: Optional[str],
    profile: Dict[str, Any],
) -> Account:
    """Common identity columns. The id is assigned up front so a student can point at
    a parent that has not been flushed yet. The plaintext password is hashed here."""
    email = values[f"{prefix}email"].strip().lower()
    dob = _iso_date(values.get(f"{prefix}date_of_birth"))
    return Account(
        id=generate_account_id(),
        email=email,
        username=(values.get(f"{prefix}username") or email.split("@")[0]).strip(),
        password_hash=hash_password(values[f"{prefix}password"]),
        role=role.value,
        center_id=center_id,
        first_name=values[f"{prefix}first_name"],
        last_name=values[f"{prefix}last_name"],
        phone_number=values.get(f"{prefix}phone") or None,
        date_of_birth=date.fromisoformat(dob) if dob else None,
        time_zone=values.get(f"{prefix}time_zone") or "UTC",
        is_active=True,
        account_status=AccountStatus.ACTIVE.value,
        profile=profile,
    )


def build_parent(values: Dict[str, Any], center_id: Optional[str]) -> Account:
    phone = values.get("parent_phone") or None
    contacts = values.get("parent_emergency_contacts")
    profile = ParentProfile(
        assignments=ParentAssignments(center=center_id),
        address=_address(values.get("parent_address")),
        emergency_contacts=contacts if isinstance(contacts, list) else [],
        preferences=ParentPreferences(
            currency=values.get("parent_currency") or "USD",
            notification_settings=NotificationSettings(email=True, sms=bool(phone)),
        ),
    )
    return _new_account(values, "parent_", AccountRole.PARENT, center_id, dump_profile(profile))


def build_student(values: Dict[str, Any], parent: Account, center_id: Optional[str]) -> Account:
    profile = StudentProfile(
        parent_id=parent.id,
        grade=normalize_grade(values["student_grade"]),
        school=values["student_school"],
        subjects=split_list(values.get("student_subjects")),
        date_of_birth=_iso_date(values.get("student_date_of_birth")),
        currency=values.get("student_currency") or "USD",
        hourly_rate=_number(values.get("student_hourly_rate")),
        learning_goals=values.get("student_learning_goals") or "",
        additional_notes=values.get("student_additional_notes") or "",
        learning_style=values.get("student_learning_style") or "",
        struggling_subjects=split_list(values.get("student_struggling_subjects")),
        address=Address(
            street=values.get("student_street") or "",
            city=values.get("student_city") or "",
            state=values.get("student_state") or "",
            zip_code=values.get("student_zip_code") or "",
            country=values.get("student_country") or "",
        ),
        medical_info=MedicalInfo(
            allergies=values.get("student_allergies") or "",
            conditions=values.get("student_medical_conditions") or "",
            medications=values.get("student_medications") or "",
            doctor_contact=values.get("student_doctor_contact") or "",
            emergency_info=values.get("student_emergency_contact") or "",
        ),
        parent_contact=ParentContact(
            name=f"{parent.first_name} {parent.last_name}".strip(),
            email=parent.email,
            phone=parent.phone_number or "",
        ),
        availability={
            day: DayAvailability(available=is_truthy(values.get(f"student_{day}_available")))
            for day in WEEKDAYS
        },
    )
    return _new_account(values, "student_", AccountRole.STUDENT, center_id, dump_profile(profile))


def _education(items: Any) -> List[Education]:
    if not isinstance(items, list):
        return []
    return [
        Education(
            degree=str(e.get("degree") or ""),
            institution=str(e.get("institution") or ""),
            year=str(e["year"]) if e.get("year") else None,
            field_of_study=str(e.get("fieldOfStudy") or ""),
        )
        for e in items
        if isinstance(e, dict)
    ]


def _certifications(items: Any) -> List[Certification]:
    if not isinstance(items, list):
        return []
    return [
        Certification(
            name=str(c.get("name") or ""),
            issued_by=str(c.get("issuedBy") or ""),
            issue_date=_iso_date(c.get("issueDate")),
            expiry_date=_iso_date(c.get("expiryDate")),
            credential_id=str(c.get("credentialId") or ""),
        )
        for c in items
        if isinstance(c, dict)
    ]


def _tutor_availability(data: Any) -> Dict[str, DayAvailability]:
    data = data if isinstance(data, dict) else {}
    availability = {}
    for day in WEEKDAYS:
        slot = data.get(day) if isinstance(data.get(day), dict) else {}
        availability[day] = DayAvailability(
            available=bool(slot.get("available")),
            time_slots=[str(s) for s in slot.get("timeSlots") or []],
            time_slots_zones=[str(s) for s in slot.get("timeSlotsZones") or []],
        )
    return availability


def build_tutor(values: Dict[str, Any], center_id: Optional[str]) -> Account:
    profile = TutorProfile(
        subjects=split_list(values.get("subjects")),
        hourly_rate=_number(values.get("hourly_rate")),
        currency=values.get("currency") or "USD",
        languages_spoken=split_list(values.get("languages_spoken")),
        specializations=split_list(values.get("specializations")),
        education=_education(values.get("education")),
        certifications=_certifications(values.get("certifications")),
        availability=_tutor_availability(values.get("availability")),
        rating=Rating(experience=int(_number(values.get("experience_years")))),
        address=_address(values.get("address")),
        bio=values.get("bio") or "",
    )
    return _new_account(values, "", AccountRole.TUTOR, center_id, dump_profile(profile))
