"""Locate the registration-number column in an uploaded header row."""
from __future__ import annotations

import re
from typing import Optional, Pattern, Sequence, Tuple

REGISTRATION_FIELD = "registrationNo"

# Highest priority first. A pattern that matches any header wins over every
# pattern after it, regardless of where the header sits in the row.
REGISTRATION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\s*registration[\s_.-]*(no|number)\.?\s*$", re.IGNORECASE),
    re.compile(r"registration.?no", re.IGNORECASE),
    re.compile(r"reg.?no", re.IGNORECASE),
    re.compile(r"registration", re.IGNORECASE),
    re.compile(r"reg.?number", re.IGNORECASE),
)


def resolve_registration_column(
    headers: Sequence[str],
    patterns: Sequence[Pattern[str]] = REGISTRATION_PATTERNS,
) -> Optional[str]:
    """Return the header holding registration numbers, or ``None`` if no header looks like one."""
    for pattern in patterns:
        for header in headers:
            if pattern.search(str(header)):
                return header
    return None
