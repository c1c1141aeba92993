# FILE: ascready/services/readiness_types.py
"""
Plain value types shared by the readiness engine.

Nothing here touches the database: the engine modules (matcher, risk queue,
calculator) take these plus ORM rows (or any object with the same attributes)
and return these.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ReadinessState(str, Enum):
    GREEN = "GREEN"
    ORANGE = "ORANGE"
    RED = "RED"


class MissingReason(str, Enum):
    INSUFFICIENT_QUANTITY = "INSUFFICIENT_QUANTITY"
    STERILITY_UNAVAILABLE = "STERILITY_UNAVAILABLE"
    TRACKING_DATA_MISSING = "TRACKING_DATA_MISSING"


class Rejection(str, Enum):
    """Why the matcher turned a same-catalog candidate down (first failing check)."""
    NOT_AVAILABLE = "NOT_AVAILABLE"
    NOT_LOCATABLE = "NOT_LOCATABLE"
    MISSING_LOT = "MISSING_LOT"
    MISSING_SERIAL = "MISSING_SERIAL"
    NOT_STERILE = "NOT_STERILE"
    STERILITY_EXPIRED = "STERILITY_EXPIRED"


TRACKING_REJECTIONS = frozenset({Rejection.MISSING_LOT, Rejection.MISSING_SERIAL})
STERILITY_REJECTIONS = frozenset({Rejection.NOT_STERILE, Rejection.STERILITY_EXPIRED})


class VerificationMode(str, Enum):
    BINDING = "BINDING"
    FRESHNESS = "FRESHNESS"


@dataclass(frozen=True)
class ReadinessPolicy:
    verification: VerificationMode = VerificationMode.BINDING
    freshness_hours: int = 72
    display_cap: int = 99
    require_location: bool = False


@dataclass(frozen=True)
class Requirement:
    catalog_id: int
    required_quantity: int
    requires_sterility: bool = False


@dataclass(frozen=True)
class MatchResult:
    requirement: Requirement
    available_count: int
    display_count: int
    suitable_instances: Tuple[Any, ...]
    # (instance, reason) for each same-catalog candidate that was turned down
    rejections: Tuple[Tuple[Any, Rejection], ...] = ()

    @property
    def satisfied(self) -> bool:
        return self.available_count >= self.requirement.required_quantity

    def rejection_counts(self) -> Dict[Rejection, int]:
        out: Dict[Rejection, int] = {}
        for _inst, reason in self.rejections:
            out[reason] = out.get(reason, 0) + 1
        return out


@dataclass(frozen=True)
class MissingItem:
    catalog_id: int
    catalog_name: str
    criticality: Optional[str]
    required_quantity: int
    available_quantity: int
    reason: MissingReason

    def as_dict(self) -> Dict[str, Any]:
        return {
            "catalogId": self.catalog_id,
            "catalogName": self.catalog_name,
            "criticality": self.criticality,
            "requiredQuantity": self.required_quantity,
            "availableQuantity": self.available_quantity,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class RequirementStatus:
    """Per-requirement line of a snapshot (what the verification screen shows)."""
    catalog_id: int
    required_quantity: int
    available_count: int
    verified_count: int
    satisfied: bool
    critical: bool


@dataclass(frozen=True)
class CaseReadinessSnapshot:
    case_id: int
    readiness_state: ReadinessState
    missing_items: Tuple[MissingItem, ...]
    total_required_items: int
    total_verified_items: int
    as_of: datetime
    lines: Tuple[RequirementStatus, ...] = ()


@dataclass
class CaseError:
    """Error marker for one case inside a batch."""
    case_id: int
    code: str
    msg: str


@dataclass
class DayBeforeResult:
    facility_id: int
    target_date: Any
    cases: List[Dict[str, Any]]
    errors: List[CaseError]
    summary: Dict[str, int]
    from_cache: bool = False
