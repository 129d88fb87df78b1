"""
Role-specific profile documents stored in ``accounts.profile``.

The JSON column is schema-less in the database; these models are the only
shapes the application writes, selected by ``Account.role``. A parent's
``assignments.children`` is an application-maintained index of student ids
and is only authoritative right after a reconciler pass.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from app.core.enums import AccountRole


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class Address(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class DayAvailability(BaseModel):
    available: bool = False
    time_slots: List[str] = Field(default_factory=list)
    time_slots_zones: List[str] = Field(default_factory=list)


def default_availability() -> Dict[str, DayAvailability]:
    return {day: DayAvailability() for day in WEEKDAYS}


# ----- Parent -----
class ParentAssignments(BaseModel):
    center: Optional[str] = None
    classes: List[str] = Field(default_factory=list)
    children: List[str] = Field(default_factory=list)


class NotificationSettings(BaseModel):
    email: bool = True
    sms: bool = False


class ParentPreferences(BaseModel):
    currency: str = "USD"
    language: str = "en"
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)


class ParentProfile(BaseModel):
    assignments: ParentAssignments = Field(default_factory=ParentAssignments)
    address: Address = Field(default_factory=Address)
    emergency_contacts: List[Dict[str, Any]] = Field(default_factory=list)
    preferences: ParentPreferences = Field(default_factory=ParentPreferences)
    verification_status: str = "pending"

    class Config:
        extra = "allow"


# ----- Student -----
class MedicalInfo(BaseModel):
    allergies: str = ""
    conditions: str = ""
    medications: str = ""
    doctor_contact: str = ""
    emergency_info: str = ""


class ParentContact(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class StudentProfile(BaseModel):
    parent_id: Optional[str] = None
    grade: Optional[str] = None
    school: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)
    date_of_birth: Optional[str] = None  # ISO YYYY-MM-DD
    currency: str = "USD"
    hourly_rate: float = 0
    learning_goals: str = ""
    additional_notes: str = ""
    learning_style: str = ""
    struggling_subjects: List[str] = Field(default_factory=list)
    address: Address = Field(default_factory=Address)
    medical_info: MedicalInfo = Field(default_factory=MedicalInfo)
    parent_contact: ParentContact = Field(default_factory=ParentContact)
    availability: Dict[str, DayAvailability] = Field(default_factory=default_availability)
    status: str = "enrolled"
    verification_status: str = "pending"
    enrollment_date: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    class Config:
        extra = "allow"


# ----- Tutor -----
class Rating(BaseModel):
    average: float = 0
    count: int = 0
    experience: int = 0


class Education(BaseModel):
    degree: str = ""
    institution: str = ""
    year: Optional[str] = None
    field_of_study: str = ""


class Certification(BaseModel):
    name: str = ""
    issued_by: str = ""
    issue_date: Optional[str] = None  # ISO YYYY-MM-DD
    expiry_date: Optional[str] = None  # ISO YYYY-MM-DD
    credential_id: str = ""


class TutorProfile(BaseModel):
    subjects: List[str] = Field(default_factory=list)
    hourly_rate: float = 0
    currency: str = "USD"
    languages_spoken: List[str] = Field(default_factory=list)
    specializations: List[str] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)
    availability: Dict[str, DayAvailability] = Field(default_factory=default_availability)
    rating: Rating = Field(default_factory=Rating)
    address: Address = Field(default_factory=Address)
    bio: str = ""
    verification_status: str = "pending"

    class Config:
        extra = "allow"


Profile = Union[ParentProfile, StudentProfile, TutorProfile]

_PROFILE_BY_ROLE = {
    AccountRole.PARENT.value: ParentProfile,
    AccountRole.STUDENT.value: StudentProfile,
    AccountRole.TUTOR.value: TutorProfile,
}


def load_profile(role: str, data: Optional[Dict[str, Any]]) -> Optional[Profile]:
    """Typed view of a stored profile document. Admin roles carry no profile."""
    model = _PROFILE_BY_ROLE.get(role)
    if model is None:
        return None
    return model.model_validate(data or {})


def dump_profile(profile: Profile) -> Dict[str, Any]:
    return profile.model_dump(mode="json")


def _assignments(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    value = (data or {}).get("assignments")
    return value if isinstance(value, dict) else {}


def children_of(data: Optional[Dict[str, Any]]) -> List[str]:
    """Stored ``assignments.children`` of a parent profile document, as strings.

    Non-object assignments or a non-list children value read as no children.
    """
    children = _assignments(data).get("children")
    if not isinstance(children, list):
        return []
    return [str(c) for c in children if c]


def with_children(data: Optional[Dict[str, Any]], children: List[str]) -> Dict[str, Any]:
    """Copy of a parent profile document with only ``assignments.children`` replaced.

    A new dict is returned so the JSON column is seen as changed on flush.
    """
    updated = dict(data or {})
    assignments = dict(_assignments(updated))
    assignments["children"] = list(children)
    updated["assignments"] = assignments
    return updated


def parent_of(data: Optional[Dict[str, Any]]) -> Optional[str]:
    value = (data or {}).get("parent_id")
    return str(value) if value else None


def with_parent(data: Optional[Dict[str, Any]], parent_id: Optional[str]) -> Dict[str, Any]:
    updated = dict(data or {})
    updated["parent_id"] = parent_id
    return updated
