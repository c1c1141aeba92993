# FILE: ascready/services/inventory_matcher.py
"""
Inventory matcher: which physical units can satisfy one requirement.

Pure functions of (requirement, catalog item, candidate pool, as_of). No session,
no clock: callers pass `as_of` so the same inputs always give the same answer.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

from ascready.models.inventory import AvailabilityStatus, SterilityStatus
from ascready.services.readiness_types import MatchResult, Rejection, Requirement

_FAR_FUTURE = datetime.max


def is_available_for_case(instance: Any, case_id: Optional[int]) -> bool:
    """AVAILABLE, or already RESERVED for this very case."""
    status = instance.availability_status
    if status == AvailabilityStatus.AVAILABLE.value:
        return True
    if (status == AvailabilityStatus.RESERVED.value and case_id is not None
            and instance.reserved_for_case_id == case_id):
        return True
    return False


def is_sterile_as_of(instance: Any, as_of: datetime) -> bool:
    if instance.sterility_status != SterilityStatus.STERILE.value:
        return False
    expires = instance.sterility_expires_at
    if expires is not None and expires < as_of:
        return False
    return True


def rejection_for(
    instance: Any,
    requirement: Requirement,
    catalog_item: Any,
    *,
    case_id: Optional[int],
    as_of: datetime,
    require_location: bool = False,
) -> Optional[Rejection]:
    """
    First failing eligibility check for a same-catalog candidate, or None when
    the unit is eligible.
    """
    if not is_available_for_case(instance, case_id):
        return Rejection.NOT_AVAILABLE
    if require_location and instance.location_id is None:
        return Rejection.NOT_LOCATABLE

    # missing tracking data makes the unit ineligible (it shows up in the risk queue)
    if catalog_item is not None:
        if catalog_item.requires_lot_tracking and not instance.lot_number:
            return Rejection.MISSING_LOT
        if catalog_item.requires_serial_tracking and not instance.serial_number:
            return Rejection.MISSING_SERIAL

    if requirement.requires_sterility:
        if instance.sterility_status != SterilityStatus.STERILE.value:
            return Rejection.NOT_STERILE
        if not is_sterile_as_of(instance, as_of):
            return Rejection.STERILITY_EXPIRED
    return None


def _suitable_sort_key(instance: Any) -> Tuple[datetime, int]:
    # soonest-expiring first so FEFO-minded callers pick those
    expires = instance.sterility_expires_at or _FAR_FUTURE
    return (expires, instance.id or 0)


def match_requirement(
    requirement: Requirement,
    pool: Iterable[Any],
    *,
    catalog_item: Any,
    as_of: datetime,
    case_id: Optional[int] = None,
    display_cap: int = 99,
    require_location: bool = False,
) -> MatchResult:
    """
    Count the eligible units of `requirement.catalog_id` in `pool`.

    - Units of other catalog ids are ignored (not counted as rejections).
    - If the catalog item is unknown/deactivated nothing is eligible.
    - `available_count` is exact; `display_count` is capped for the UI.
    """
    suitable: List[Any] = []
    rejected: List[Tuple[Any, Rejection]] = []

    for inst in pool:
        if inst.catalog_id != requirement.catalog_id:
            continue
        if catalog_item is None or not getattr(catalog_item, "is_active", True):
            rejected.append((inst, Rejection.NOT_AVAILABLE))
            continue
        reason = rejection_for(
            inst,
            requirement,
            catalog_item,
            case_id=case_id,
            as_of=as_of,
            require_location=require_location,
        )
        if reason is None:
            suitable.append(inst)
        else:
            rejected.append((inst, reason))

    suitable.sort(key=_suitable_sort_key)
    rejected.sort(key=lambda pair: pair[0].id or 0)
    count = len(suitable)
    return MatchResult(
        requirement=requirement,
        available_count=count,
        display_count=min(count, display_cap) if display_cap > 0 else count,
        suitable_instances=tuple(suitable),
        rejections=tuple(rejected),
    )


def is_eligible(
    instance: Any,
    requirement: Requirement,
    catalog_item: Any,
    *,
    case_id: Optional[int],
    as_of: datetime,
    require_location: bool = False,
) -> Tuple[bool, Optional[Rejection]]:
    """Single-unit form of the matcher, used by the verification binder."""
    if instance.catalog_id != requirement.catalog_id:
        return False, None
    if catalog_item is None or not getattr(catalog_item, "is_active", True):
        return False, Rejection.NOT_AVAILABLE
    reason = rejection_for(
        instance,
        requirement,
        catalog_item,
        case_id=case_id,
        as_of=as_of,
        require_location=require_location,
    )
    return reason is None, reason
