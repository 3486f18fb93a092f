"""Value types shared by the session and UI layers.

None of these are persisted; they live for the duration of a test run.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import NewType, Optional
from urllib.parse import urlparse


RecordIdentifier = NewType("RecordIdentifier", str)

# Record ids are 15 (case-sensitive) or 18 (case-insensitive) characters.
RECORD_ID_SEGMENT = re.compile(r"^[A-Za-z0-9]{15,18}$")


@dataclass(frozen=True)
class Credential:
    """Access token plus the instance it is valid for."""

    access_token: str = field(repr=False)
    instance_url: str

    @property
    def masked_token(self) -> str:
        if len(self.access_token) <= 8:
            return "***"
        return f"{self.access_token[:8]}..."


class InteractionKind(str, Enum):
    PLAIN_TEXT = "text"
    SINGLE_SELECT = "combobox"
    RELATIONSHIP_LOOKUP = "lookup"
    DATE = "date"
    CURRENCY_AMOUNT = "currency"


@dataclass(frozen=True)
class FieldDescriptor:
    """Human-readable label plus how the control behaves."""

    label: str
    kind: InteractionKind = InteractionKind.PLAIN_TEXT


class Severity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# Lightning has shipped several naming conventions for toast themes.
_SEVERITY_CLASS_PATTERNS = {
    severity: re.compile(
        rf"(?:^|\s)(?:slds-notify--{severity.value}|slds-theme--{severity.value}"
        rf"|slds-theme_{severity.value}|forceToastMessage--{severity.value})(?:\s|$)"
    )
    for severity in Severity
}


def classify_severity(class_attr: Optional[str]) -> Optional[Severity]:
    """Map a banner's class attribute to a severity, or None if unrecognised."""
    if not class_attr:
        return None
    for severity, pattern in _SEVERITY_CLASS_PATTERNS.items():
        if pattern.search(class_attr):
            return severity
    return None


@dataclass
class NotificationCapture:
    message: str
    severity: Optional[Severity]


def parse_record_identifier(url: str) -> RecordIdentifier:
    """Return the first 15-18 character alphanumeric path segment of ``url``.

    Returns an empty identifier when nothing matches; never raises.
    """
    try:
        path = urlparse(url or "").path
    except ValueError:
        return RecordIdentifier("")
    for segment in path.split("/"):
        if RECORD_ID_SEGMENT.match(segment):
            return RecordIdentifier(segment)
    return RecordIdentifier("")
