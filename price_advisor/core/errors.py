"""
Error hierarchy for the price-advice pipeline.

Every error carries an HTTP status for the adapter layer and a stable code
for clients. Evidence-gathering failures never appear here; the search layer
absorbs them.
"""
import re
from typing import Any, Dict, List, Optional


class AdvisorError(Exception):
    """Base error; subclasses set `code` and `status_code`."""

    code = "ADVISOR_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": False, "error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(AdvisorError):
    """A required listing field is missing or blank."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message, {"missing": missing} if missing else None)
        self.missing = missing or []


class ConfigurationError(AdvisorError):
    code = "MISSING_CREDENTIALS"
    status_code = 503


class UpstreamError(AdvisorError):
    """The generation provider answered with a non-success status."""

    code = "UPSTREAM_ERROR"
    status_code = 502

    def __init__(self, upstream_status: Optional[int], message: str):
        super().__init__(message, {"upstream_status": upstream_status})
        self.upstream_status = upstream_status


class QuotaExceeded(UpstreamError):
    code = "QUOTA_EXCEEDED"
    status_code = 429


class ParseError(AdvisorError):
    """The provider reply could not be turned into a usable price record."""

    code = "PARSE_ERROR"
    status_code = 422


_QUOTA_PATTERN = re.compile(
    r"insufficient[_ ]quota|quota|billing|rate[_ ]?limit|too many requests|exceeded your",
    re.IGNORECASE,
)


def upstream_error(status: Optional[int], message: str) -> UpstreamError:
    """Build the right UpstreamError flavour for a provider failure."""
    if status == 429 or _QUOTA_PATTERN.search(message or ""):
        return QuotaExceeded(status, message)
    return UpstreamError(status, message)
