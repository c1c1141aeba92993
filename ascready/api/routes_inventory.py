# FILE: ascready/api/routes_inventory.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ascready.api.deps import RequestContext, current_context
from ascready.api.exception_handlers import safe_err
from ascready.api.response import ok
from ascready.core.rbac import Capability, require_any
from ascready.db.session import get_db
from ascready.schemas.inventory import (
    InventoryEventIn,
    InventoryEventOut,
    InventoryInstanceOut,
    RiskItemOut,
    RiskQueueOut,
)
from ascready.services.errors import ValidationFailed
from ascready.services.inventory_events import get_instance, list_events, list_instances, record_event
from ascready.services.risk_queue import RiskQueueEntry, RiskRule, RiskSeverity, build_risk_queue
from ascready.utils.timezone import utcnow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/inventory", tags=["inventory"])

P_VIEW = [Capability.INVENTORY_VIEW]
P_EVENTS = [Capability.INVENTORY_EVENTS]


def _risk_item(e: RiskQueueEntry) -> RiskItemOut:
    return RiskItemOut(
        rule=e.rule.value,
        severity=e.severity.value,
        inventory_instance_id=e.inventory_instance_id,
        catalog_id=e.catalog_id,
        catalog_name=e.catalog_name,
        identifier=e.identifier,
        days_to_expire=e.days_to_expire,
        expires_at=e.expires_at,
        missing_fields=list(e.missing_fields),
        explain=e.explanation,
        debug=e.debug,
    )


@router.get("/risk-queue")
def risk_queue(
    rule: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        try:
            rule_f = RiskRule(rule.upper()) if rule else None
            sev_f = RiskSeverity(severity.upper()) if severity else None
        except ValueError:
            raise ValidationFailed("Unknown rule or severity filter")
        entries = build_risk_queue(db, ctx.facility_id, utcnow(), rule=rule_f, severity=sev_f)
        return ok(RiskQueueOut(risk_items=[_risk_item(e) for e in entries]).wire())
    except Exception as e:
        return safe_err(e)


@router.get("/instances")
def instances(
    catalog_id: Optional[List[int]] = Query(None),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        rows = list_instances(db, ctx.facility_id, catalog_id)
        return ok([InventoryInstanceOut.model_validate(x).wire() for x in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/instances/{instance_id}/events")
def instance_events(
    instance_id: int,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        get_instance(db, ctx.facility_id, instance_id)
        rows = list_events(db, ctx.facility_id, instance_id=instance_id, limit=limit)
        return ok([InventoryEventOut.model_validate(x).wire() for x in rows])
    except Exception as e:
        return safe_err(e)


@router.post("/events")
def create_event(
    payload: InventoryEventIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_EVENTS)
        inst = get_instance(db, ctx.facility_id, payload.inventory_instance_id, for_update=True)
        ev = record_event(
            db,
            instance=inst,
            event_type=payload.event_type,
            user_id=ctx.user_id,
            case_id=payload.case_id,
            location_id=payload.location_id,
            sterility_status=payload.sterility_status,
            sterility_expires_at=payload.sterility_expires_at,
            notes=payload.notes,
        )
        db.commit()
        db.refresh(ev)
        return ok(InventoryEventOut.model_validate(ev).wire(), status_code=201)
    except Exception as e:
        db.rollback()
        return safe_err(e)
