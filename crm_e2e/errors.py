"""Error taxonomy for the session and UI layers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class CrmE2eError(Exception):
    """Base class for every error raised by this package."""


class SessionError(CrmE2eError):
    """Raised when a browser session cannot be bootstrapped."""


class CredentialSourceError(SessionError):
    """The credential provider failed or returned unparsable output."""


class CredentialUnavailable(SessionError):
    """The provider answered but the response carries no access token."""


class SessionEstablishmentFailed(SessionError):
    """Token injection was rejected or the application shell never rendered."""


@dataclass(eq=False)
class ToolError(CrmE2eError):
    """Raised when a browser operation fails."""

    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    message: str = ""

    def __str__(self) -> str:
        return f"{self.name} failed ({self.message}) with payload={self.payload}"


class FieldNotFound(ToolError):
    """No structural strategy found a visible input for the label."""


class ButtonNotFound(ToolError):
    """No structural strategy found a visible, enabled control for the label."""


class FieldValueNotFound(ToolError):
    """No read-only rendering of the label was found."""


class SeverityMismatch(ToolError):
    """A notification was shown, but with a different severity than expected."""


class WaitTimeout(ToolError):
    """A bounded wait that the caller depends on expired."""


class NotificationTimeout(WaitTimeout):
    """No notification banner appeared in time."""


class CrmApiError(CrmE2eError):
    """Exception raised for REST or SOAP API errors."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body
