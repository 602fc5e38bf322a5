"""Ingestion failure taxonomy.

Connectivity problems and data-shape problems need different fixes from the
person looking at the dashboard (grant access / retry vs. fix the sheet
layout), so they are separate types carrying the raw message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

PERMISSION_STATUS_CODES = {401, 403}


class IngestError(RuntimeError):
    kind = "IngestError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "type": self.kind}


class SourceUnavailable(IngestError):
    """Network failure, non-2xx response, timeout or auth rejection from the source."""

    kind = "SourceUnavailable"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def permission_denied(self) -> bool:
        return self.status_code in PERMISSION_STATUS_CODES

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        payload["permission_denied"] = self.permission_denied
        return payload


class MalformedSource(IngestError):
    """Header row not detectable, or no usable data rows after normalization."""

    kind = "MalformedSource"


class SourceNotConfigured(IngestError):
    """Deployment settings are missing or invalid (source mode, spreadsheet id, rule file)."""

    kind = "SourceNotConfigured"
