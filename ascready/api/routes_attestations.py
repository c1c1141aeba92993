# FILE: ascready/api/routes_attestations.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ascready.api.deps import RequestContext, current_context
from ascready.api.exception_handlers import safe_err
from ascready.api.response import ok
from ascready.core.rbac import Capability, require_any
from ascready.db.session import get_db
from ascready.models.attestation import Attestation, AttestationType
from ascready.schemas.attestation import AttestIn, AttestationOut, VoidIn, VoidOut
from ascready.services import attestation_service
from ascready.services.readiness_service import compute_case_readiness, get_case

router = APIRouter(prefix="/readiness", tags=["attestations"])

P_VIEW = [Capability.READINESS_VIEW]
P_ATTEST_CASE = [Capability.ATTEST_CASE]
P_ATTEST_SURGEON = [Capability.ATTEST_SURGEON]
P_VOID = [Capability.ATTEST_CASE, Capability.ATTEST_SURGEON]


def _out(att: Attestation, current_state: Optional[str] = None) -> dict:
    return AttestationOut(
        id=att.id,
        case_id=att.case_id,
        type=att.type,
        attested_by_user_id=att.attested_by_user_id,
        attested_by_name=att.attested_by.name if att.attested_by else None,
        readiness_state_at_time=att.readiness_state_at_time,
        notes=att.notes,
        created_at=att.created_at,
        voided_at=att.voided_at,
        voided_by_user_id=att.voided_by_user_id,
        void_reason=att.void_reason,
        is_active=att.is_active,
        is_stale=bool(att.is_active and current_state
                      and current_state != att.readiness_state_at_time),
    ).wire()


@router.post("/attestations")
def create_attestation(
    payload: AttestIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        if payload.type == AttestationType.SURGEON_ACKNOWLEDGMENT:
            require_any(ctx, P_ATTEST_SURGEON)
        else:
            require_any(ctx, P_ATTEST_CASE)
        att = attestation_service.attest(
            db,
            payload.case_id,
            payload.type,
            ctx.user_id,
            payload.notes,
            facility_id=ctx.facility_id,
        )
        return ok(_out(att), status_code=201)
    except Exception as e:
        return safe_err(e)


@router.post("/attestations/{attestation_id}/void")
def void_attestation(
    attestation_id: int,
    payload: VoidIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VOID)
        att = attestation_service.void(
            db,
            attestation_id,
            ctx.user_id,
            payload.reason,
            facility_id=ctx.facility_id,
        )
        return ok(VoidOut(
            attestation_id=att.id,
            voided_at=att.voided_at,
            voided_by_user_id=att.voided_by_user_id,
            voided_by_name=att.voided_by.name if att.voided_by else None,
            reason=att.void_reason,
        ).wire())
    except Exception as e:
        return safe_err(e)


@router.get("/cases/{case_id}/attestations")
def case_attestations(
    case_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        rows = attestation_service.list_attestations(db, ctx.facility_id, case_id)
        current = None
        if any(a.is_active for a in rows):
            case = get_case(db, ctx.facility_id, case_id)
            current = compute_case_readiness(db, case).readiness_state.value
        return ok([_out(a, current) for a in rows])
    except Exception as e:
        return safe_err(e)
