"""Turn parsed spreadsheet rows into records keyed by registration number."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from certificate_portal.services.column_resolver import REGISTRATION_FIELD

logger = logging.getLogger(__name__)

ORIGINAL_ROW_KEY = "_original"
HEADER_ROW_OFFSET = 2
MISSING_REGISTRATION = "Missing registration number"
MISSING_REGISTRATION_MAPPING = "Registration number column mapping is required"


@dataclass
class NormalizedRecord:
    registration_no: str
    data: Dict[str, Any]


@dataclass
class RowError:
    row: int
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "error": self.error}


@dataclass
class NormalizedBatch:
    records: List[NormalizedRecord] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)


def _clean_registration(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _auto_registration(row: Mapping[str, Any], index: int, column: str, headers: Sequence[str]) -> Any:
    # Fall through only on absent keys; an empty cell is kept and rejected later.
    value = row.get(column)
    if value is None and headers:
        value = row.get(headers[0])
    if value is None:
        value = f"ROW_{index}"
    return value


def _mapped_data(row: Mapping[str, Any], column_mapping: Mapping[str, str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for target_field, source_column in column_mapping.items():
        if source_column and source_column in row:
            data[target_field] = row[source_column]
    data[ORIGINAL_ROW_KEY] = dict(row)
    return data


def normalize_rows(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    registration_column: Optional[str] = None,
    column_mapping: Optional[Mapping[str, str]] = None,
) -> NormalizedBatch:
    """Normalize ``rows`` in auto mode (``registration_column``) or mapped mode (``column_mapping``).

    Mapped mode wins when both are given. Rejected rows are reported with their
    spreadsheet line number (data rows start at line 2) and never stop the batch.
    """
    batch = NormalizedBatch()
    mapped = column_mapping is not None

    for index, row in enumerate(rows):
        if mapped:
            source_column = column_mapping.get(REGISTRATION_FIELD)
            if not source_column:
                batch.errors.append(RowError(row=index + HEADER_ROW_OFFSET, error=MISSING_REGISTRATION_MAPPING))
                continue
            registration_no = _clean_registration(row.get(source_column))
        else:
            registration_no = _clean_registration(
                _auto_registration(row, index, registration_column, headers)
            )

        if not registration_no:
            logger.debug("Row %d rejected: %s", index + HEADER_ROW_OFFSET, MISSING_REGISTRATION)
            batch.errors.append(RowError(row=index + HEADER_ROW_OFFSET, error=MISSING_REGISTRATION))
            continue

        data = _mapped_data(row, column_mapping) if mapped else dict(row)
        batch.records.append(NormalizedRecord(registration_no=registration_no, data=data))

    return batch
