# FILE: ascready/schemas/attestation.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ascready.models.attestation import AttestationType
from ascready.schemas.common import CamelOut


class AttestIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    case_id: int
    type: AttestationType = AttestationType.CASE_READINESS
    notes: Optional[str] = None


class VoidIn(BaseModel):
    # optional here so a missing reason is reported as VOID_REASON_REQUIRED
    reason: Optional[str] = None


class AttestationOut(CamelOut):
    id: int
    case_id: int
    type: str
    attested_by_user_id: int
    attested_by_name: Optional[str] = None
    readiness_state_at_time: str
    notes: Optional[str] = None
    created_at: datetime
    voided_at: Optional[datetime] = None
    voided_by_user_id: Optional[int] = None
    void_reason: Optional[str] = None
    is_active: bool = True
    is_stale: bool = False


class VoidOut(CamelOut):
    success: bool = True
    attestation_id: int
    voided_at: datetime
    voided_by_user_id: int
    voided_by_name: Optional[str] = None
    reason: Optional[str] = None
