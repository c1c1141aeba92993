# FILE: ascready/services/inventory_events.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ascready.models.catalog import CatalogItem
from ascready.models.inventory import (
    AvailabilityStatus,
    InventoryEvent,
    InventoryEventType,
    InventoryInstance,
    SterilityStatus,
    TERMINAL_STATUSES,
)
from ascready.services.errors import AlreadyReservedForOtherCase, NotFound, ValidationFailed
from ascready.utils.timezone import to_db_utc_naive, utcnow

logger = logging.getLogger(__name__)

E = InventoryEventType
A = AvailabilityStatus

# availability an event may start from; absent means any non-terminal status
ALLOWED_FROM = {
    E.RESERVED: frozenset({A.AVAILABLE.value, A.RESERVED.value}),
    E.RELEASED: frozenset({A.RESERVED.value}),
    E.FOUND: frozenset({A.MISSING.value}),
}


def check_transition(inst: InventoryInstance, event_type: InventoryEventType) -> None:
    status = inst.availability_status
    if event_type == E.ADJUSTED:
        return
    if status in TERMINAL_STATUSES:
        raise ValidationFailed(
            f"Instance {inst.id} is {status}; only ADJUSTED events are accepted",
            details={"availabilityStatus": status, "eventType": event_type.value})
    allowed = ALLOWED_FROM.get(event_type)
    if allowed is not None and status not in allowed:
        raise ValidationFailed(
            f"{event_type.value} is not valid for an instance that is {status}",
            details={"availabilityStatus": status, "eventType": event_type.value})


def _release(inst: InventoryInstance, to_status: str) -> None:
    inst.availability_status = to_status
    inst.reserved_for_case_id = None


def apply_event(
    inst: InventoryInstance,
    event_type: InventoryEventType,
    *,
    user_id: Optional[int],
    case_id: Optional[int] = None,
    location_id: Optional[int] = None,
    sterility_status: Optional[str] = None,
    sterility_expires_at: Optional[datetime] = None,
    occurred_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Mutate the instance the way `event_type` says; returns the before/after
    diff stored as the event payload.
    """
    before = {
        "availabilityStatus": inst.availability_status,
        "sterilityStatus": inst.sterility_status,
        "reservedForCaseId": inst.reserved_for_case_id,
        "locationId": inst.location_id,
    }
    check_transition(inst, event_type)
    at = occurred_at or utcnow()

    if event_type == E.VERIFIED:
        inst.last_verified_at = at
        inst.last_verified_by_user_id = user_id
    elif event_type == E.RESERVED:
        if case_id is None:
            raise ValidationFailed("RESERVED event requires case_id")
        if inst.reserved_for_case_id not in (None, case_id):
            raise AlreadyReservedForOtherCase(
                f"Instance {inst.id} is already reserved for case {inst.reserved_for_case_id}")
        inst.availability_status = A.RESERVED.value
        inst.reserved_for_case_id = case_id
    elif event_type == E.RELEASED:
        _release(inst, A.AVAILABLE.value)
    elif event_type == E.CONSUMED:
        _release(inst, A.IN_USE.value)
    elif event_type == E.MISSING:
        _release(inst, A.MISSING.value)
    elif event_type == E.FOUND:
        inst.availability_status = A.AVAILABLE.value
    elif event_type == E.EXPIRED:
        inst.sterility_status = SterilityStatus.EXPIRED.value
    elif event_type == E.DISPOSED:
        _release(inst, A.DISPOSED.value)
    elif event_type == E.LOCATION_CHANGED:
        if location_id is None:
            raise ValidationFailed("LOCATION_CHANGED event requires location_id")
        inst.location_id = location_id
    elif event_type == E.RECEIVED:
        inst.availability_status = A.AVAILABLE.value
        if sterility_status:
            inst.sterility_status = sterility_status
        if sterility_expires_at is not None:
            inst.sterility_expires_at = to_db_utc_naive(sterility_expires_at)
        if location_id is not None:
            inst.location_id = location_id
    # ADJUSTED: notes only

    after = {
        "availabilityStatus": inst.availability_status,
        "sterilityStatus": inst.sterility_status,
        "reservedForCaseId": inst.reserved_for_case_id,
        "locationId": inst.location_id,
    }
    return {k: {"from": before[k], "to": after[k]} for k in after if before[k] != after[k]}


def record_event(
    db: Session,
    *,
    instance: InventoryInstance,
    event_type: InventoryEventType | str,
    user_id: Optional[int] = None,
    case_id: Optional[int] = None,
    location_id: Optional[int] = None,
    sterility_status: Optional[str] = None,
    sterility_expires_at: Optional[datetime] = None,
    notes: str = "",
    payload: Optional[Dict[str, Any]] = None,
) -> InventoryEvent:
    """
    Central creator for InventoryEvent – every instance mutation goes through
    here so the event log (and the cache watermark) never misses a change.
    Does not commit.
    """
    try:
        et = InventoryEventType(str(getattr(event_type, "value", event_type)).upper())
    except ValueError:
        raise ValidationFailed(f"Unknown inventory event type: {event_type}")

    now = utcnow()
    diff = apply_event(
        instance,
        et,
        user_id=user_id,
        case_id=case_id,
        location_id=location_id,
        sterility_status=sterility_status,
        sterility_expires_at=sterility_expires_at,
        occurred_at=now,
    )
    body = dict(payload or {})
    if diff:
        body["changes"] = diff
    return append_event(db, instance=instance, event_type=et, user_id=user_id,
                        case_id=case_id, payload=body, notes=notes, occurred_at=now)


def append_event(
    db: Session,
    *,
    instance: InventoryInstance,
    event_type: InventoryEventType,
    user_id: Optional[int] = None,
    case_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    notes: str = "",
    occurred_at: Optional[datetime] = None,
) -> InventoryEvent:
    """
    Log row only, for callers that already changed the instance with their own
    guarded UPDATE.
    """
    ev = InventoryEvent(
        facility_id=instance.facility_id,
        inventory_instance_id=instance.id,
        catalog_id=instance.catalog_id,
        case_id=case_id if case_id is not None else instance.reserved_for_case_id,
        event_type=event_type.value,
        user_id=user_id,
        payload=payload or None,
        notes=notes or None,
        occurred_at=occurred_at or utcnow(),
    )
    db.add(ev)
    db.flush()
    logger.info("Inventory event %s on instance %s (event id %s)",
                event_type.value, instance.id, ev.id)
    return ev


def receive_instance(
    db: Session,
    *,
    facility_id: int,
    catalog_id: int,
    user_id: Optional[int] = None,
    location_id: Optional[int] = None,
    lot_number: Optional[str] = None,
    serial_number: Optional[str] = None,
    barcode: Optional[str] = None,
    sterility_status: str = SterilityStatus.UNKNOWN.value,
    sterility_expires_at: Optional[datetime] = None,
) -> InventoryInstance:
    """Create a new physical unit and log its RECEIVED event."""
    cat = db.get(CatalogItem, catalog_id)
    if cat is None or cat.facility_id != facility_id:
        raise NotFound(f"Catalog item {catalog_id} not found")

    inst = InventoryInstance(
        facility_id=facility_id,
        catalog_id=catalog_id,
        location_id=location_id,
        lot_number=lot_number,
        serial_number=serial_number,
        barcode=barcode,
        sterility_status=sterility_status,
        sterility_expires_at=to_db_utc_naive(sterility_expires_at),
        availability_status=AvailabilityStatus.AVAILABLE.value,
    )
    db.add(inst)
    db.flush()
    record_event(db, instance=inst, event_type=E.RECEIVED, user_id=user_id,
                 location_id=location_id, sterility_status=sterility_status,
                 sterility_expires_at=sterility_expires_at)
    return inst


def get_instance(db: Session, facility_id: int, instance_id: int,
                 *, for_update: bool = False) -> InventoryInstance:
    q = db.query(InventoryInstance).filter(
        InventoryInstance.id == instance_id,
        InventoryInstance.facility_id == facility_id,
    )
    if for_update:
        q = q.with_for_update()
    inst = q.first()
    if not inst:
        raise NotFound(f"Inventory instance {instance_id} not found")
    return inst


def list_instances(
    db: Session,
    facility_id: int,
    catalog_ids: Optional[Iterable[int]] = None,
) -> List[InventoryInstance]:
    q = db.query(InventoryInstance).filter(InventoryInstance.facility_id == facility_id)
    if catalog_ids is not None:
        ids = sorted(set(catalog_ids))
        if not ids:
            return []
        q = q.filter(InventoryInstance.catalog_id.in_(ids))
    return q.order_by(InventoryInstance.id.asc()).all()


def latest_event_id(
    db: Session,
    facility_id: int,
    catalog_ids: Optional[Iterable[int]] = None,
) -> int:
    """Highest event id for the facility (optionally only these catalog ids); 0 if none."""
    q = db.query(func.max(InventoryEvent.id)).filter(InventoryEvent.facility_id == facility_id)
    if catalog_ids is not None:
        ids = sorted(set(catalog_ids))
        if not ids:
            return 0
        q = q.filter(InventoryEvent.catalog_id.in_(ids))
    return int(q.scalar() or 0)


def list_events(
    db: Session,
    facility_id: int,
    *,
    instance_id: Optional[int] = None,
    case_id: Optional[int] = None,
    limit: int = 200,
) -> List[InventoryEvent]:
    q = db.query(InventoryEvent).filter(InventoryEvent.facility_id == facility_id)
    if instance_id is not None:
        q = q.filter(InventoryEvent.inventory_instance_id == instance_id)
    if case_id is not None:
        q = q.filter(InventoryEvent.case_id == case_id)
    return q.order_by(InventoryEvent.id.desc()).limit(limit).all()
