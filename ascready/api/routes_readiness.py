# FILE: ascready/api/routes_readiness.py
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ascready.api.deps import RequestContext, current_context
from ascready.api.exception_handlers import safe_err
from ascready.api.response import ok
from ascready.core.rbac import Capability, require_any
from ascready.db.session import get_db
from ascready.models.facility import Facility
from ascready.schemas.readiness import (
    CalendarDayOut,
    CaseErrorOut,
    CaseReadinessOut,
    DayBeforeOut,
    RefreshIn,
)
from ascready.services.day_before import aggregate, calendar_summary
from ascready.services.readiness_service import readiness_for_case
from ascready.services.readiness_types import DayBeforeResult
from ascready.utils.timezone import facility_today

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/readiness", tags=["readiness"])

P_VIEW = [Capability.READINESS_VIEW]
P_REFRESH = [Capability.READINESS_REFRESH]


def _day_before_out(db: Session, result: DayBeforeResult) -> dict:
    facility = db.get(Facility, result.facility_id)
    return DayBeforeOut(
        facility_id=result.facility_id,
        facility_name=facility.name if facility else None,
        target_date=result.target_date,
        cases=[CaseReadinessOut.model_validate(c) for c in result.cases],
        errors=[
            CaseErrorOut(case_id=e.case_id, error={"code": e.code, "msg": e.msg})
            for e in result.errors
        ],
        summary=result.summary,
        from_cache=result.from_cache,
    ).wire()


def _default_target(db: Session, facility_id: int) -> date:
    facility = db.get(Facility, facility_id)
    return facility_today(facility.timezone if facility else None) + timedelta(days=1)


@router.get("/day-before")
def day_before(
    target_date: Optional[date] = Query(None, alias="date"),
    refresh: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        if refresh:
            require_any(ctx, P_REFRESH)
        d = target_date or _default_target(db, ctx.facility_id)
        result = aggregate(db, ctx.facility_id, d, refresh=refresh)
        return ok(_day_before_out(db, result))
    except Exception as e:
        return safe_err(e)


@router.post("/refresh")
def refresh_day(
    payload: RefreshIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_REFRESH)
        result = aggregate(db, ctx.facility_id, payload.target_date, refresh=True)
        logger.info("Readiness refresh for %s requested by user %s",
                    payload.target_date, ctx.user_id)
        return ok(_day_before_out(db, result))
    except Exception as e:
        return safe_err(e)


@router.get("/calendar-summary")
def get_calendar_summary(
    start_date: date = Query(...),
    end_date: date = Query(...),
    granularity: str = Query("day"),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        data = calendar_summary(db, ctx.facility_id, start_date, end_date, granularity)
        if "days" in data:
            data = {"days": [CalendarDayOut.model_validate(d).wire() for d in data["days"]]}
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.get("/cases/{case_id}")
def get_case_readiness(
    case_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(current_context),
):
    try:
        require_any(ctx, P_VIEW)
        view = readiness_for_case(db, ctx.facility_id, case_id)
        return ok(CaseReadinessOut.model_validate(view).wire())
    except Exception as e:
        return safe_err(e)
