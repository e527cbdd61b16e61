from __future__ import annotations

from typing import Any, Dict, List, Optional


class VerifierError(Exception):
    """Hard failure surfaced to the caller with a stable reason code."""

    reason = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str = "", extra: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.reason)
        self.message = message or self.reason
        self.extra: Dict[str, Any] = dict(extra or {})

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"schema": "api.error.v1", "error": self.reason, "message": self.message}
        d.update(self.extra)
        return d


class BadRequest(VerifierError):
    reason = "BAD_REQUEST"
    http_status = 400


class CapacityExceeded(VerifierError):
    reason = "CAPACITY_EXCEEDED"
    http_status = 413


class ValidationFailure(VerifierError):
    reason = "VALIDATION_FAILURE"
    http_status = 400


class IncompleteCandidate(VerifierError):
    reason = "INCOMPLETE_CANDIDATE"
    http_status = 400


class VerificationTransportFailure(VerifierError):
    reason = "VERIFICATION_TRANSPORT_FAILURE"
    http_status = 502


class NotFound(VerifierError):
    reason = "NOT_FOUND"
    http_status = 404


def describe_incomplete(name: str, paths: List[str]) -> str:
    return f"{name} ({', '.join(paths)})"
