"""Pick the well-known certificate fields out of a stored record's free-form data."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from certificate_portal.services.certificate_store import StoredRecord
from certificate_portal.services.record_normalizer import ORIGINAL_ROW_KEY

# Canonical field -> keys to try, mapped name first, then spreadsheet spellings.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "studentName": ("studentName", "STUDENT NAME", "Student Name"),
    "registrationNo": ("registrationNo", "REGISTRATION NO", "Registration No"),
    "fatherName": ("fatherName", "FATHERS NAME", "Father's Name"),
    "courseName": ("courseName", "COURSE NAME", "Course Name"),
    "startDate": ("startDate", "STARTING DATE", "Start Date"),
    "endDate": ("endDate", "END DATE", "End Date"),
    "issueDate": ("issueDate", "ISSUE DATE", "Issue Date"),
    "grade": ("grade", "GRADE", "Grade"),
}

_KNOWN_KEYS = frozenset(key for aliases in FIELD_ALIASES.values() for key in aliases) | {ORIGINAL_ROW_KEY}


@dataclass
class CertificateFields:
    fields: Dict[str, str]
    additional_fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.fields, "additionalFields": self.additional_fields}


def _first_value(data: Dict[str, Any], aliases: Tuple[str, ...]) -> str:
    for key in aliases:
        value = data.get(key)
        if value not in (None, ''):
            return str(value)
    return ''


def extract_certificate_fields(record: StoredRecord) -> CertificateFields:
    data = record.data or {}
    fields = {name: _first_value(data, aliases) for name, aliases in FIELD_ALIASES.items()}
    fields["registrationNo"] = record.registration_no or fields["registrationNo"]

    original = data.get(ORIGINAL_ROW_KEY)
    source = original if isinstance(original, dict) else data
    additional = {key: value for key, value in source.items() if key not in _KNOWN_KEYS}
    return CertificateFields(fields=fields, additional_fields=additional)
