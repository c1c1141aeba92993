# FILE: ascready/services/verification_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ascready.models.catalog import CatalogItem
from ascready.models.facility import Facility
from ascready.models.inventory import (
    AvailabilityStatus,
    InventoryEventType,
    InventoryInstance,
)
from ascready.services.audit_logger import log_audit
from ascready.services.case_requirements import resolve_requirements
from ascready.services.errors import (
    AlreadyReservedForOtherCase,
    InstanceNotEligible,
    ValidationFailed,
)
from ascready.services.inventory_events import append_event, get_instance, record_event
from ascready.services.inventory_matcher import is_eligible, match_requirement
from ascready.services.readiness_calculator import is_verified
from ascready.services.readiness_service import (
    evaluate_inputs,
    get_case,
    load_case_inputs,
    policy_for_facility,
)
from ascready.utils.timezone import utcnow

logger = logging.getLogger(__name__)

_BINDABLE = [AvailabilityStatus.AVAILABLE.value, AvailabilityStatus.RESERVED.value]


def verify(
    db: Session,
    case_id: int,
    requirement_catalog_id: int,
    inventory_instance_id: int,
    user_id: int,
    *,
    facility_id: int,
    now: Optional[datetime] = None,
) -> InventoryInstance:
    """
    Bind one physical unit to one of the case's requirements and stamp it verified.
    The reservation itself is a single guarded UPDATE, so two users can never
    book the same unit for different cases.
    """
    now = now or utcnow()
    case = get_case(db, facility_id, case_id, for_update=True)
    if not case.is_open:
        raise ValidationFailed(f"Case {case_id} is cancelled or closed")

    req = next((r for r in resolve_requirements(db, case)
                if r.catalog_id == requirement_catalog_id), None)
    if req is None:
        raise ValidationFailed(
            f"Catalog item {requirement_catalog_id} is not a requirement of case {case_id}")

    inst = get_instance(db, facility_id, inventory_instance_id)
    if inst.catalog_id != req.catalog_id:
        raise InstanceNotEligible(
            f"Instance {inst.id} is not a unit of catalog item {req.catalog_id}",
            details={"reason": "CATALOG_MISMATCH"})
    if inst.reserved_for_case_id is not None and inst.reserved_for_case_id != case.id:
        raise AlreadyReservedForOtherCase(
            f"Instance {inst.id} is already reserved for another case",
            details={"reservedForCaseId": inst.reserved_for_case_id})

    policy = policy_for_facility(db.get(Facility, facility_id))
    ok, reason = is_eligible(
        inst, req, db.get(CatalogItem, req.catalog_id),
        case_id=case.id, as_of=now, require_location=policy.require_location,
    )
    if not ok:
        raise InstanceNotEligible(
            f"Instance {inst.id} is not eligible: {reason.value if reason else 'unknown'}",
            details={"reason": reason.value if reason else None})

    res = db.execute(
        update(InventoryInstance)
        .where(
            InventoryInstance.id == inst.id,
            or_(InventoryInstance.reserved_for_case_id.is_(None),
                InventoryInstance.reserved_for_case_id == case.id),
            InventoryInstance.availability_status.in_(_BINDABLE),
        )
        .values(
            availability_status=AvailabilityStatus.RESERVED.value,
            reserved_for_case_id=case.id,
            last_verified_at=now,
            last_verified_by_user_id=user_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        raise AlreadyReservedForOtherCase(
            f"Instance {inventory_instance_id} was reserved by another case")

    db.expire(inst)
    append_event(db, instance=inst, event_type=InventoryEventType.VERIFIED,
                 user_id=user_id, case_id=case.id, occurred_at=now,
                 payload={"requirementCatalogId": req.catalog_id})
    log_audit(
        db,
        user_id=user_id,
        action="VERIFY",
        table_name="inventory_instances",
        record_id=inst.id,
        new_values={"caseId": case.id, "catalogId": req.catalog_id},
    )
    db.commit()
    db.refresh(inst)

    logger.info("Instance %s verified for case %s by user %s", inst.id, case.id, user_id)
    return inst


def unverify(
    db: Session,
    case_id: int,
    inventory_instance_id: int,
    user_id: Optional[int],
    *,
    facility_id: int,
) -> InventoryInstance:
    """Release one binding. A unit not reserved for this case is left untouched."""
    inst = get_instance(db, facility_id, inventory_instance_id, for_update=True)
    if inst.reserved_for_case_id != case_id:
        return inst

    record_event(db, instance=inst, event_type=InventoryEventType.RELEASED,
                 user_id=user_id, case_id=case_id, notes="unverified")
    log_audit(db, user_id=user_id, action="UNVERIFY", table_name="inventory_instances",
              record_id=inst.id, old_values={"caseId": case_id})
    db.commit()
    db.refresh(inst)
    return inst


def release_case_reservations(
    db: Session,
    case_id: int,
    user_id: Optional[int],
    *,
    commit: bool = True,
) -> int:
    """Release every unit reserved for the case. Returns how many were released."""
    rows = (db.query(InventoryInstance)
            .filter(InventoryInstance.reserved_for_case_id == case_id)
            .order_by(InventoryInstance.id.asc())
            .with_for_update()
            .all())
    for inst in rows:
        record_event(db, instance=inst, event_type=InventoryEventType.RELEASED,
                     user_id=user_id, case_id=case_id, notes="case reservations released")
    if rows:
        log_audit(db, user_id=user_id, action="RELEASE", table_name="surgical_cases",
                  record_id=case_id, old_values={"instanceIds": [i.id for i in rows]})
    if commit:
        db.commit()
    if rows:
        logger.info("Released %d reservation(s) for case %s", len(rows), case_id)
    return len(rows)


def _unit(inst: InventoryInstance, case_id: int, as_of: datetime, policy) -> Dict[str, Any]:
    return {
        "inventoryInstanceId": inst.id,
        "identifier": inst.identifier,
        "lotNumber": inst.lot_number,
        "serialNumber": inst.serial_number,
        "locationId": inst.location_id,
        "locationName": inst.location.name if inst.location else None,
        "sterilityStatus": inst.sterility_status,
        "sterilityExpiresAt": inst.sterility_expires_at.isoformat() if inst.sterility_expires_at else None,
        "availabilityStatus": inst.availability_status,
        "reservedForThisCase": inst.reserved_for_case_id == case_id,
        "lastVerifiedAt": inst.last_verified_at.isoformat() if inst.last_verified_at else None,
        "isVerified": is_verified(inst, case_id, as_of, policy),
    }


def verification_detail(
    db: Session,
    facility_id: int,
    case_id: int,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Per-requirement view for the verification screen: candidates and why others failed."""
    now = now or utcnow()
    case = get_case(db, facility_id, case_id)
    policy = policy_for_facility(db.get(Facility, facility_id))
    inputs = load_case_inputs(db, case)
    snap = evaluate_inputs(inputs, now, policy)

    lines = {ln.catalog_id: ln for ln in snap.lines}
    requirements: List[Dict[str, Any]] = []
    for req in inputs.requirements:
        item = inputs.catalog.get(req.catalog_id)
        match = match_requirement(
            req, inputs.pool, catalog_item=item, as_of=now, case_id=case.id,
            display_cap=policy.display_cap, require_location=policy.require_location,
        )
        ln = lines.get(req.catalog_id)
        requirements.append({
            "catalogId": req.catalog_id,
            "catalogName": item.name if item else None,
            "criticality": item.criticality if item else None,
            "requiresSterility": req.requires_sterility,
            "requiredQuantity": req.required_quantity,
            "availableCount": match.display_count,
            "verifiedCount": ln.verified_count if ln else 0,
            "satisfied": match.satisfied,
            "candidates": [_unit(i, case.id, now, policy) for i in match.suitable_instances],
            "rejections": {r.value: n for r, n in sorted(match.rejection_counts().items(),
                                                          key=lambda kv: kv[0].value)},
        })

    return {
        "caseId": case.id,
        "verificationPolicy": policy.verification.value,
        "readinessState": snap.readiness_state.value,
        "totalRequiredItems": snap.total_required_items,
        "totalVerifiedItems": snap.total_verified_items,
        "requirements": requirements,
    }
