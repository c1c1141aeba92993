# FILE: ascready/services/readiness_cache.py
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ascready.models.readiness_cache import CaseReadinessCache
from ascready.services.readiness_types import (
    CaseReadinessSnapshot,
    MissingItem,
    MissingReason,
    ReadinessPolicy,
    ReadinessState,
    VerificationMode,
)
from ascready.utils.timezone import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Watermarks:
    """What a cached row was built against; any difference means stale."""
    inventory_event_id: int
    case_revision: int
    requirements_fingerprint: str
    attestation_id: Optional[int]
    surgeon_acknowledgment_id: Optional[int]
    context_fingerprint: str = ""


# catalog columns calculate() reads
CATALOG_FIELDS = (
    "name",
    "criticality",
    "is_active",
    "requires_sterility",
    "requires_lot_tracking",
    "requires_serial_tracking",
)


def context_fingerprint(catalog_ids: Iterable[int], catalog: Dict[int, Any],
                        policy: ReadinessPolicy) -> str:
    """Hash of the catalog rows and facility policy a snapshot was computed under."""
    items = []
    for cid in sorted(set(catalog_ids)):
        item = catalog.get(cid)
        items.append([cid, None if item is None
                      else [getattr(item, f, None) for f in CATALOG_FIELDS]])
    blob = json.dumps(
        {
            "catalog": items,
            "policy": [policy.verification.value, policy.freshness_hours,
                       policy.display_cap, policy.require_location],
        },
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


def load_rows(db: Session, case_ids: Iterable[int]) -> Dict[int, CaseReadinessCache]:
    ids = sorted(set(case_ids))
    if not ids:
        return {}
    rows = db.query(CaseReadinessCache).filter(CaseReadinessCache.case_id.in_(ids)).all()
    return {r.case_id: r for r in rows}


def _time_boundary_crossed(pool, since: datetime, until: datetime,
                           policy: ReadinessPolicy) -> bool:
    """
    True when the clock alone changed the answer between two as_of values:
    a sterility expiry (or, under FRESHNESS, a verification window end) falls
    inside (since, until].
    """
    if until <= since:
        return False
    window = timedelta(hours=policy.freshness_hours)
    for inst in pool:
        exp = inst.sterility_expires_at
        if exp is not None and since <= exp < until:
            return True
        if policy.verification == VerificationMode.FRESHNESS and inst.last_verified_at:
            edge = inst.last_verified_at + window
            if since <= edge < until:
                return True
    return False


def is_fresh(
    row: Optional[CaseReadinessCache],
    marks: Watermarks,
    *,
    as_of: datetime,
    pool=(),
    policy: ReadinessPolicy = ReadinessPolicy(),
) -> bool:
    if row is None:
        return False
    if row.inventory_event_watermark != marks.inventory_event_id:
        return False
    if row.case_revision != marks.case_revision:
        return False
    if row.requirements_fingerprint != marks.requirements_fingerprint:
        return False
    if row.attestation_id != marks.attestation_id:
        return False
    if row.surgeon_acknowledgment_id != marks.surgeon_acknowledgment_id:
        return False
    if (row.context_fingerprint or "") != marks.context_fingerprint:
        return False
    if row.as_of != as_of and _time_boundary_crossed(
            pool, min(row.as_of, as_of), max(row.as_of, as_of), policy):
        return False
    return True


def row_to_snapshot(row: CaseReadinessCache) -> CaseReadinessSnapshot:
    missing = tuple(
        MissingItem(
            catalog_id=m["catalogId"],
            catalog_name=m.get("catalogName") or "",
            criticality=m.get("criticality"),
            required_quantity=m["requiredQuantity"],
            available_quantity=m["availableQuantity"],
            reason=MissingReason(m["reason"]),
        )
        for m in (row.missing_items or [])
    )
    return CaseReadinessSnapshot(
        case_id=row.case_id,
        readiness_state=ReadinessState(row.readiness_state),
        missing_items=missing,
        total_required_items=row.total_required_items,
        total_verified_items=row.total_verified_items,
        as_of=row.as_of,
    )


def store(
    db: Session,
    *,
    case,
    snapshot: CaseReadinessSnapshot,
    marks: Watermarks,
    catalog_ids: Iterable[int],
    now: Optional[datetime] = None,
) -> CaseReadinessCache:
    """Upsert the cache row for one case. Caller commits."""
    row = db.get(CaseReadinessCache, case.id)
    if row is None:
        row = CaseReadinessCache(case_id=case.id)
        db.add(row)

    row.facility_id = case.facility_id
    row.scheduled_date = case.scheduled_date
    row.readiness_state = snapshot.readiness_state.value
    row.missing_items = [m.as_dict() for m in snapshot.missing_items]
    row.total_required_items = snapshot.total_required_items
    row.total_verified_items = snapshot.total_verified_items
    row.inventory_event_watermark = marks.inventory_event_id
    row.case_revision = marks.case_revision
    row.requirements_fingerprint = marks.requirements_fingerprint
    row.catalog_ids = sorted(set(catalog_ids))
    row.attestation_id = marks.attestation_id
    row.surgeon_acknowledgment_id = marks.surgeon_acknowledgment_id
    row.context_fingerprint = marks.context_fingerprint
    row.as_of = snapshot.as_of
    row.computed_at = now or utcnow()
    return row
