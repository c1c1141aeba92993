# FILE: ascready/api/routes_cases.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ascready.api.deps import RequestContext, current_context
from ascready.api.exception_handlers import safe_err
from ascready.api.response import ok
from ascready.core.rbac import Capability, require_any
from ascready.db.session import get_db
from ascready.schemas.verification import CancelCaseIn
from ascready.services.case_status import cancel_case

router = APIRouter(prefix="/cases", tags=["cases"])

P_CANCEL = [Capability.CASES_CANCEL]


@router.post("/{case_id}/cancel")
def cancel(
    case_id: int,
    payload: CancelCaseIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_CANCEL)
        case = cancel_case(db, ctx.facility_id, case_id, ctx.user_id, payload.reason)
        return ok({"caseId": case.id, "status": case.status, "isActive": bool(case.is_active)})
    except Exception as e:
        return safe_err(e)
