# FILE: ascready/services/readiness_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ascready.core.config import settings
from ascready.models.attestation import Attestation, AttestationType
from ascready.models.catalog import CatalogItem
from ascready.models.facility import Facility
from ascready.models.inventory import InventoryInstance
from ascready.models.surgical_case import SurgicalCase
from ascready.services.case_requirements import (
    load_catalog,
    requirements_fingerprint,
    resolve_requirements,
)
from ascready.services.errors import NotFound
from ascready.services.inventory_events import list_instances
from ascready.services.readiness_calculator import calculate
from ascready.services.readiness_types import (
    CaseReadinessSnapshot,
    ReadinessPolicy,
    Requirement,
    VerificationMode,
)
from ascready.utils.timezone import utcnow

logger = logging.getLogger(__name__)


def policy_for_facility(facility: Optional[Facility]) -> ReadinessPolicy:
    mode = settings.DEFAULT_VERIFICATION_POLICY
    hours = settings.DEFAULT_VERIFICATION_FRESHNESS_HOURS
    if facility is not None:
        mode = facility.verification_policy or mode
        if facility.verification_freshness_hours:
            hours = facility.verification_freshness_hours
    try:
        verification = VerificationMode(str(mode).upper())
    except ValueError:
        logger.warning("Unknown verification policy %r, using BINDING", mode)
        verification = VerificationMode.BINDING
    return ReadinessPolicy(
        verification=verification,
        freshness_hours=int(hours),
        display_cap=settings.AVAILABLE_COUNT_DISPLAY_CAP,
    )


def get_case(db: Session, facility_id: int, case_id: int,
             *, for_update: bool = False) -> SurgicalCase:
    q = db.query(SurgicalCase).filter(
        SurgicalCase.id == case_id,
        SurgicalCase.facility_id == facility_id,
    )
    if for_update:
        q = q.with_for_update()
    case = q.first()
    if not case:
        raise NotFound(f"Case {case_id} not found")
    return case


@dataclass
class CaseInputs:
    """Everything calculate() needs for one case, loaded up front."""
    case: SurgicalCase
    requirements: List[Requirement]
    fingerprint: str
    catalog: Dict[int, CatalogItem]
    pool: List[InventoryInstance]

    @property
    def catalog_ids(self) -> List[int]:
        return [r.catalog_id for r in self.requirements]


def load_case_inputs(db: Session, case: SurgicalCase) -> CaseInputs:
    reqs = resolve_requirements(db, case)
    ids = [r.catalog_id for r in reqs]
    return CaseInputs(
        case=case,
        requirements=reqs,
        fingerprint=requirements_fingerprint(reqs),
        catalog=load_catalog(db, ids),
        pool=list_instances(db, case.facility_id, ids),
    )


def evaluate_inputs(inputs: CaseInputs, as_of: datetime,
                    policy: ReadinessPolicy) -> CaseReadinessSnapshot:
    return calculate(
        inputs.case.id,
        inputs.requirements,
        inputs.pool,
        as_of,
        catalog=inputs.catalog,
        policy=policy,
    )


def compute_case_readiness(
    db: Session,
    case: SurgicalCase,
    as_of: Optional[datetime] = None,
    *,
    policy: Optional[ReadinessPolicy] = None,
) -> CaseReadinessSnapshot:
    """Always fresh: resolves requirements and reads the current pool."""
    as_of = as_of or utcnow()
    if policy is None:
        policy = policy_for_facility(db.get(Facility, case.facility_id))
    snap = evaluate_inputs(load_case_inputs(db, case), as_of, policy)
    logger.debug("Case %s readiness %s (%d/%d verified)", case.id,
                 snap.readiness_state.value, snap.total_verified_items,
                 snap.total_required_items)
    return snap


def active_attestations(
    db: Session,
    case_ids: Iterable[int],
) -> Dict[int, Dict[str, Attestation]]:
    """case_id -> {type: active attestation}."""
    ids = sorted(set(case_ids))
    out: Dict[int, Dict[str, Attestation]] = {}
    if not ids:
        return out
    rows = (db.query(Attestation)
            .filter(Attestation.case_id.in_(ids), Attestation.voided_at.is_(None))
            .order_by(Attestation.id.asc())
            .all())
    for a in rows:
        out.setdefault(a.case_id, {})[a.type] = a
    return out


def _iso(v: Any) -> Optional[str]:
    return v.isoformat() if v is not None else None


def attestation_overlay(
    active: Dict[str, Attestation],
    current_state: Optional[str],
) -> Dict[str, Any]:
    att = active.get(AttestationType.CASE_READINESS.value)
    ack = active.get(AttestationType.SURGEON_ACKNOWLEDGMENT.value)
    return {
        "hasAttestation": att is not None,
        "attestationId": att.id if att else None,
        "attestedAt": _iso(att.created_at) if att else None,
        "attestedByName": att.attested_by.name if att and att.attested_by else None,
        "attestationState": att.readiness_state_at_time if att else None,
        # frozen state vs. what the case looks like now
        "isAttestationStale": bool(att and current_state
                                   and att.readiness_state_at_time != current_state),
        "hasSurgeonAcknowledgment": ack is not None,
        "surgeonAcknowledgmentId": ack.id if ack else None,
        "surgeonAcknowledgedAt": _iso(ack.created_at) if ack else None,
    }


def case_header(case: SurgicalCase) -> Dict[str, Any]:
    return {
        "caseId": case.id,
        "caseNumber": case.case_number,
        "facilityId": case.facility_id,
        "scheduledDate": _iso(case.scheduled_date),
        "scheduledTime": _iso(case.scheduled_time),
        "procedureName": case.procedure_name,
        "surgeonId": case.surgeon_user_id,
        "surgeonName": case.surgeon.name if case.surgeon else None,
        "status": case.status,
        "isActive": bool(case.is_active),
        "isCancelled": case.is_cancelled,
    }


def snapshot_body(snap: CaseReadinessSnapshot) -> Dict[str, Any]:
    return {
        "readinessState": snap.readiness_state.value,
        "missingItems": [m.as_dict() for m in snap.missing_items],
        "totalRequiredItems": snap.total_required_items,
        "totalVerifiedItems": snap.total_verified_items,
        "asOf": _iso(snap.as_of),
    }


def case_view(
    case: SurgicalCase,
    snap: CaseReadinessSnapshot,
    active: Dict[str, Attestation],
) -> Dict[str, Any]:
    out = case_header(case)
    out.update(snapshot_body(snap))
    out.update(attestation_overlay(active, snap.readiness_state.value))
    return out


def readiness_for_case(db: Session, facility_id: int, case_id: int,
                       *, now: Optional[datetime] = None) -> Dict[str, Any]:
    case = get_case(db, facility_id, case_id)
    snap = compute_case_readiness(db, case, now or utcnow())
    active = active_attestations(db, [case.id]).get(case.id, {})
    return case_view(case, snap, active)
