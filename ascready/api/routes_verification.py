# FILE: ascready/api/routes_verification.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ascready.api.deps import RequestContext, current_context
from ascready.api.exception_handlers import safe_err
from ascready.api.response import ok
from ascready.core.rbac import Capability, require_any
from ascready.db.session import get_db
from ascready.schemas.inventory import InventoryInstanceOut
from ascready.schemas.verification import UnverifyIn, VerifyIn
from ascready.services import verification_service

router = APIRouter(prefix="/readiness", tags=["verification"])

P_VIEW = [Capability.READINESS_VIEW, Capability.VERIFY_ITEMS]
P_VERIFY = [Capability.VERIFY_ITEMS]


@router.get("/cases/{case_id}/verification")
def get_verification(
    case_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        return ok(verification_service.verification_detail(db, ctx.facility_id, case_id))
    except Exception as e:
        return safe_err(e)


@router.post("/cases/{case_id}/verify")
def verify_item(
    case_id: int,
    payload: VerifyIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VERIFY)
        inst = verification_service.verify(
            db,
            case_id,
            payload.requirement_catalog_id,
            payload.inventory_instance_id,
            ctx.user_id,
            facility_id=ctx.facility_id,
        )
        return ok(InventoryInstanceOut.model_validate(inst).wire())
    except Exception as e:
        return safe_err(e)


@router.post("/cases/{case_id}/unverify")
def unverify_item(
    case_id: int,
    payload: UnverifyIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VERIFY)
        inst = verification_service.unverify(
            db,
            case_id,
            payload.inventory_instance_id,
            ctx.user_id,
            facility_id=ctx.facility_id,
        )
        return ok(InventoryInstanceOut.model_validate(inst).wire())
    except Exception as e:
        return safe_err(e)
