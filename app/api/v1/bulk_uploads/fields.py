"""
Logical fields of a bulk enrollment row.

Each field has a spreadsheet label (matched against sheet headers, see
``ingest.resolve_headers``) and the paths where it can be found in a JSON
entry. Structured fields (lists/dicts such as tutor education) only exist in
JSON batches and are not part of the tabular headers.
"""

from typing import List, NamedTuple, Tuple

from app.auth.profiles import WEEKDAYS
from app.core.enums import CandidateKind


class FieldSpec(NamedTuple):
    key: str
    label: str
    json_paths: Tuple[Tuple[str, ...], ...] = ()
    required: bool = False
    structured: bool = False


def _field(key: str, label: str, *paths: Tuple[str, ...], required: bool = False, structured: bool = False) -> FieldSpec:
    return FieldSpec(key, label, tuple(paths), required, structured)


_SP = ("student", "studentProfile")

PARENT_STUDENT_FIELDS: List[FieldSpec] = [
    _field("parent_first_name", "Parent First Name", ("parent", "firstName"), required=True),
    _field("parent_last_name", "Parent Last Name", ("parent", "lastName"), required=True),
    _field("parent_email", "Parent Email", ("parent", "email"), required=True),
    _field("parent_password", "Parent Password", ("parent", "password"), required=True),
    _field("parent_username", "Parent Username", ("parent", "username")),
    _field("parent_phone", "Parent Phone", ("parent", "phoneNumber")),
    _field("parent_time_zone", "Parent Time Zone", ("parent", "timeZone")),
    _field("parent_currency", "Parent Currency", ("parent", "currency")),
    _field("student_first_name", "Student First Name", ("student", "firstName"), required=True),
    _field("student_last_name", "Student Last Name", ("student", "lastName"), required=True),
    _field("student_email", "Student Email", ("student", "email"), required=True),
    _field("student_username", "Student Username", ("student", "username"), required=True),
    _field("student_password", "Student Password", ("student", "password"), required=True),
    _field("student_phone", "Student Phone Number", ("student", "phoneNumber")),
    _field(
        "student_date_of_birth", "Student Date of Birth",
        ("student", "dateOfBirth"), _SP + ("dateOfBirth",), required=True,
    ),
    _field("student_time_zone", "Student Time Zone", ("student", "timeZone"), required=True),
    _field("student_currency", "Student Currency", _SP + ("currency",)),
    _field("student_grade", "Student Grade", _SP + ("grade",), required=True),
    _field("student_school", "Student School", _SP + ("school",), required=True),
    _field("student_subjects", "Student Subjects of Interest", _SP + ("subjects",), required=True),
    _field("student_learning_goals", "Student Learning Goals", _SP + ("learningGoals",)),
    _field("student_additional_notes", "Student Additional Notes", _SP + ("additionalNotes",)),
    _field("student_learning_style", "Student Learning Style", _SP + ("learningStyle",)),
    _field("student_struggling_subjects", "Student Struggling Subjects", _SP + ("strugglingSubjects",)),
    _field("student_hourly_rate", "Student Hourly Rate", _SP + ("hourlyRate",)),
    _field("student_street", "Student Street", ("student", "address", "street")),
    _field("student_city", "Student City", ("student", "address", "city")),
    _field("student_state", "Student State", ("student", "address", "state")),
    _field("student_zip_code", "Student ZIP Code", ("student", "address", "zipCode")),
    _field("student_country", "Student Country", ("student", "address", "country")),
    _field("student_allergies", "Student Allergies", _SP + ("medicalInformation", "allergies")),
    _field("student_medical_conditions", "Student Medical Conditions", _SP + ("medicalInformation", "medicalConditions")),
    _field("student_medications", "Student Medications", _SP + ("medicalInformation", "currentMedications")),
    _field("student_doctor_contact", "Doctor Contact", _SP + ("medicalInformation", "doctorContact")),
    _field("student_emergency_contact", "Emergency Contact", _SP + ("emergencyContact", "name")),
] + [
    _field(
        f"student_{day}_available", f"Student {day.capitalize()} Available",
        _SP + ("availability", day, "available"), _SP + (day, "available"),
    )
    for day in WEEKDAYS
] + [
    _field("parent_address", "Parent Address", ("parent", "address"), structured=True),
    _field("parent_emergency_contacts", "Parent Emergency Contacts", ("parent", "emergencyContacts"), structured=True),
]

_TP = ("profile", "teaching")

TUTOR_FIELDS: List[FieldSpec] = [
    _field("first_name", "First Name", ("user", "firstName"), required=True),
    _field("last_name", "Last Name", ("user", "lastName"), required=True),
    _field("email", "Email", ("user", "email"), required=True),
    _field("username", "Username", ("user", "username"), required=True),
    _field("password", "Password", ("user", "password"), required=True),
    _field("time_zone", "Time Zone", ("user", "timeZone"), required=True),
    _field("phone", "Phone Number", ("user", "phoneNumber")),
    _field("date_of_birth", "Date of Birth", ("user", "dateOfBirth")),
    _field("subjects", "Subjects to Teach", _TP + ("subjects",), ("profile", "subjects")),
    _field("hourly_rate", "Hourly Rate", _TP + ("preferences", "hourlyRate"), ("profile", "hourlyRate")),
    _field("currency", "Currency", _TP + ("preferences", "currency"), ("profile", "currency")),
    _field("languages_spoken", "Languages Spoken", _TP + ("languagesSpoken",)),
    _field("specializations", "Specializations", _TP + ("specializations",)),
    _field("experience_years", "Years of Experience", ("profile", "experience", "years")),
    _field("bio", "Bio", ("profile", "bio")),
    _field("address", "Address", ("user", "address"), structured=True),
    _field("education", "Education", ("profile", "education"), structured=True),
    _field("certifications", "Certifications", ("profile", "certifications"), structured=True),
    _field("availability", "Availability", ("profile", "availability"), structured=True),
]

_FIELDS_BY_KIND = {
    CandidateKind.TUTOR: TUTOR_FIELDS,
    CandidateKind.PARENT_STUDENT_PAIR: PARENT_STUDENT_FIELDS,
}


def fields_for(kind: CandidateKind) -> List[FieldSpec]:
    return _FIELDS_BY_KIND[kind]


def tabular_fields(kind: CandidateKind) -> List[FieldSpec]:
    """Fields that can appear as sheet columns (everything but structured JSON values)."""
    return [f for f in fields_for(kind) if not f.structured]


def required_fields(kind: CandidateKind) -> List[FieldSpec]:
    return [f for f in fields_for(kind) if f.required]
