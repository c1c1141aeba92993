# FILE: ascready/services/errors.py
from __future__ import annotations

from typing import Any, Optional


class ReadinessError(RuntimeError):
    """
    Base for every engine failure the caller can act on.
    `code` is stable and safe to show to the UI; `status_code` is the HTTP mapping.
    """
    code = "READINESS_ERROR"
    status_code = 400

    def __init__(self, msg: str = "", *, details: Optional[Any] = None):
        super().__init__(msg or self.code)
        self.msg = msg or self.code
        self.details = details


# ---------- validation / lookup ----------
class NotFound(ReadinessError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationFailed(ReadinessError):
    code = "VALIDATION_ERROR"
    status_code = 400


class VoidReasonRequired(ValidationFailed):
    code = "VOID_REASON_REQUIRED"


class RequirementResolutionError(ReadinessError):
    code = "REQUIREMENTS_UNRESOLVABLE"
    status_code = 422


class AcknowledgmentNotRequired(ValidationFailed):
    code = "ACKNOWLEDGMENT_NOT_REQUIRED"


# ---------- state conflicts ----------
class AlreadyAttested(ReadinessError):
    code = "ALREADY_ATTESTED"
    status_code = 409


class AlreadyVoided(ReadinessError):
    code = "ALREADY_VOIDED"
    status_code = 409


class InstanceNotEligible(ReadinessError):
    code = "INSTANCE_NOT_ELIGIBLE"
    status_code = 409


class AlreadyReservedForOtherCase(ReadinessError):
    code = "ALREADY_RESERVED_FOR_OTHER_CASE"
    status_code = 409
