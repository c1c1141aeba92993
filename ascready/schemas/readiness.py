# FILE: ascready/schemas/readiness.py
from __future__ import annotations

from datetime import date, datetime, time
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ascready.schemas.common import CamelOut

ReadinessStateLit = Literal["GREEN", "ORANGE", "RED"]


class MissingItemOut(CamelOut):
    catalog_id: int
    catalog_name: Optional[str] = None
    criticality: Optional[str] = None
    required_quantity: int
    available_quantity: int
    reason: str


class CaseReadinessOut(CamelOut):
    case_id: int
    case_number: Optional[str] = None
    facility_id: int
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    procedure_name: str
    surgeon_id: Optional[int] = None
    surgeon_name: Optional[str] = None
    status: str
    is_active: bool
    is_cancelled: bool

    readiness_state: ReadinessStateLit
    missing_items: List[MissingItemOut] = Field(default_factory=list)
    total_required_items: int
    total_verified_items: int
    as_of: Optional[datetime] = None

    has_attestation: bool = False
    attestation_id: Optional[int] = None
    attested_at: Optional[datetime] = None
    attested_by_name: Optional[str] = None
    attestation_state: Optional[ReadinessStateLit] = None
    is_attestation_stale: bool = False
    has_surgeon_acknowledgment: bool = False
    surgeon_acknowledgment_id: Optional[int] = None
    surgeon_acknowledged_at: Optional[datetime] = None


class CaseErrorOut(CamelOut):
    case_id: int
    error: Dict[str, str]


class DayBeforeSummaryOut(CamelOut):
    total: int
    green: int
    orange: int
    red: int
    attested: int
    failed: int = 0


class DayBeforeOut(CamelOut):
    facility_id: int
    facility_name: Optional[str] = None
    target_date: date
    cases: List[CaseReadinessOut]
    errors: List[CaseErrorOut] = Field(default_factory=list)
    summary: DayBeforeSummaryOut
    from_cache: bool = False


class RefreshIn(BaseModel):
    target_date: date


class CalendarDayOut(CamelOut):
    date: str
    case_count: int
    green_count: int
    orange_count: int
    red_count: int
