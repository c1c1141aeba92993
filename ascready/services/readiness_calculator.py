# FILE: ascready/services/readiness_calculator.py
"""
Case readiness calculator.

`calculate()` folds the matcher's output for every requirement of one case into a
CaseReadinessSnapshot. It never reads the clock or the database; the DB bridge in
readiness_service.py loads the inputs and calls it.

State derivation (first match wins):
  RED    - a requirement has zero suitable units, or a CRITICAL one is unsatisfied
  ORANGE - something is short or not yet verified
  GREEN  - everything satisfied and verified per the facility policy
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Sequence

from ascready.models.catalog import Criticality
from ascready.services.inventory_matcher import match_requirement
from ascready.services.readiness_types import (
    STERILITY_REJECTIONS,
    TRACKING_REJECTIONS,
    CaseReadinessSnapshot,
    MatchResult,
    MissingItem,
    MissingReason,
    ReadinessPolicy,
    ReadinessState,
    Requirement,
    RequirementStatus,
    VerificationMode,
)


def is_verified(instance: Any, case_id: int, as_of: datetime, policy: ReadinessPolicy) -> bool:
    """Verified-count rule for one suitable unit under the facility's policy."""
    stamped = instance.last_verified_at
    if stamped is None:
        return False
    if policy.verification == VerificationMode.FRESHNESS:
        return stamped >= as_of - timedelta(hours=policy.freshness_hours)
    return instance.reserved_for_case_id == case_id


def missing_reason(match: MatchResult) -> MissingReason:
    if match.available_count > 0:
        return MissingReason.INSUFFICIENT_QUANTITY
    reasons = {r for _inst, r in match.rejections}
    if reasons & STERILITY_REJECTIONS:
        return MissingReason.STERILITY_UNAVAILABLE
    if reasons & TRACKING_REJECTIONS:
        return MissingReason.TRACKING_DATA_MISSING
    return MissingReason.INSUFFICIENT_QUANTITY


def _is_critical(catalog_item: Any) -> bool:
    return (catalog_item is not None
            and catalog_item.criticality == Criticality.CRITICAL.value)


def derive_state(lines: Sequence[RequirementStatus]) -> ReadinessState:
    if any(ln.available_count == 0 for ln in lines):
        return ReadinessState.RED
    if any(ln.critical and not ln.satisfied for ln in lines):
        return ReadinessState.RED
    if any(not ln.satisfied or ln.verified_count < ln.required_quantity for ln in lines):
        return ReadinessState.ORANGE
    return ReadinessState.GREEN


def calculate(
    case_id: int,
    requirements: Iterable[Requirement],
    inventory_pool: Iterable[Any],
    as_of: datetime,
    *,
    catalog: Dict[int, Any],
    policy: ReadinessPolicy = ReadinessPolicy(),
) -> CaseReadinessSnapshot:
    pool = list(inventory_pool)
    reqs = sorted(requirements, key=lambda r: r.catalog_id)

    lines: List[RequirementStatus] = []
    missing: List[MissingItem] = []
    total_required = 0
    total_verified = 0

    for req in reqs:
        if req.required_quantity <= 0:
            continue
        item = catalog.get(req.catalog_id)
        match = match_requirement(
            req,
            pool,
            catalog_item=item,
            as_of=as_of,
            case_id=case_id,
            display_cap=policy.display_cap,
            require_location=policy.require_location,
        )
        verified = sum(1 for inst in match.suitable_instances
                       if is_verified(inst, case_id, as_of, policy))
        counted = min(verified, req.required_quantity)

        total_required += req.required_quantity
        total_verified += counted

        lines.append(RequirementStatus(
            catalog_id=req.catalog_id,
            required_quantity=req.required_quantity,
            available_count=match.available_count,
            verified_count=counted,
            satisfied=match.satisfied,
            critical=_is_critical(item),
        ))

        if not match.satisfied:
            missing.append(MissingItem(
                catalog_id=req.catalog_id,
                catalog_name=item.name if item is not None else f"Catalog item #{req.catalog_id}",
                criticality=item.criticality if item is not None else None,
                required_quantity=req.required_quantity,
                available_quantity=match.available_count,
                reason=missing_reason(match),
            ))

    return CaseReadinessSnapshot(
        case_id=case_id,
        readiness_state=derive_state(lines),
        missing_items=tuple(missing),
        total_required_items=total_required,
        total_verified_items=total_verified,
        as_of=as_of,
        lines=tuple(lines),
    )
