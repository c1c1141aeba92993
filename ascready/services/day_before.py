# FILE: ascready/services/day_before.py
"""
Day-before rollup: readiness of every open case scheduled at a facility on one date.

Requirement resolution and all database reads run on the calling thread (one
Session is never shared across threads). Only the pure calculate() step fans
out to a thread pool. A case that fails at either stage becomes an error marker;
the rest of the batch still comes back.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ascready.core.config import settings
from ascready.models.attestation import AttestationType
from ascready.models.facility import Facility
from ascready.models.readiness_cache import CaseReadinessCache
from ascready.models.surgical_case import CLOSED_CASE_STATUSES, SurgicalCase
from ascready.services import readiness_cache as cache
from ascready.services.errors import NotFound, ReadinessError, ValidationFailed
from ascready.services.inventory_events import latest_event_id
from ascready.services.readiness_service import (
    CaseInputs,
    active_attestations,
    case_header,
    case_view,
    evaluate_inputs,
    load_case_inputs,
    policy_for_facility,
)
from ascready.services.readiness_types import (
    CaseError,
    CaseReadinessSnapshot,
    DayBeforeResult,
    ReadinessState,
)
from ascready.utils.timezone import start_of_day_utc, utcnow

logger = logging.getLogger(__name__)


def _get_facility(db: Session, facility_id: int) -> Facility:
    facility = db.get(Facility, facility_id)
    if not facility or not facility.is_active:
        raise NotFound(f"Facility {facility_id} not found")
    return facility


def cases_for_date(db: Session, facility_id: int, target_date: date) -> List[SurgicalCase]:
    return (
        db.query(SurgicalCase)
        .filter(
            SurgicalCase.facility_id == facility_id,
            SurgicalCase.scheduled_date == target_date,
            SurgicalCase.is_active.is_(True),
            SurgicalCase.status.notin_(list(CLOSED_CASE_STATUSES)),
        )
        # MySQL-safe NULLS LAST for unscheduled times
        .order_by(SurgicalCase.scheduled_time.is_(None),
                  SurgicalCase.scheduled_time.asc(),
                  SurgicalCase.id.asc())
        .all()
    )


def sterility_cutoff(target_date: date, tz_name: Optional[str], now: datetime) -> datetime:
    """Units must still be sterile at the start of the surgery day (or now, if later)."""
    return max(now, start_of_day_utc(target_date, tz_name))


def _summarize(states: List[str], attested: int, failed: int) -> Dict[str, int]:
    return {
        "total": len(states),
        "green": states.count(ReadinessState.GREEN.value),
        "orange": states.count(ReadinessState.ORANGE.value),
        "red": states.count(ReadinessState.RED.value),
        "attested": attested,
        "failed": failed,
    }


def _marker(case_id: int, exc: BaseException) -> CaseError:
    if isinstance(exc, ReadinessError):
        return CaseError(case_id=case_id, code=exc.code, msg=exc.msg)
    return CaseError(case_id=case_id, code="CALCULATION_FAILED", msg=str(exc) or type(exc).__name__)


def _compute_parallel(
    jobs: List[CaseInputs],
    as_of: datetime,
    policy,
) -> Tuple[Dict[int, CaseReadinessSnapshot], Dict[int, CaseError]]:
    done: Dict[int, CaseReadinessSnapshot] = {}
    failed: Dict[int, CaseError] = {}
    if not jobs:
        return done, failed

    workers = max(1, min(settings.DAY_BEFORE_MAX_WORKERS, len(jobs)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="readiness") as pool:
        futures = {pool.submit(evaluate_inputs, job, as_of, policy): job.case.id for job in jobs}
        for fut, case_id in futures.items():
            try:
                done[case_id] = fut.result()
            except Exception as e:
                logger.exception("Readiness calculation failed for case %s", case_id)
                failed[case_id] = _marker(case_id, e)
    return done, failed


def aggregate(
    db: Session,
    facility_id: int,
    target_date: date,
    refresh: bool = False,
    *,
    now: Optional[datetime] = None,
) -> DayBeforeResult:
    """
    refresh=False reuses cache rows whose watermarks still match and recomputes
    the rest; refresh=True recomputes every case. Computed rows are written back.
    """
    if target_date is None:
        raise ValidationFailed("target_date is required")

    facility = _get_facility(db, facility_id)
    now = now or utcnow()
    as_of = sterility_cutoff(target_date, facility.timezone, now)
    policy = policy_for_facility(facility)

    cases = cases_for_date(db, facility_id, target_date)
    active = active_attestations(db, [c.id for c in cases])
    rows = {} if refresh else cache.load_rows(db, [c.id for c in cases])

    errors: Dict[int, CaseError] = {}
    inputs: Dict[int, CaseInputs] = {}
    marks: Dict[int, cache.Watermarks] = {}
    snapshots: Dict[int, CaseReadinessSnapshot] = {}
    to_compute: List[CaseInputs] = []

    for case in cases:
        try:
            ci = load_case_inputs(db, case)
        except Exception as e:
            logger.warning("Case %s skipped in day-before rollup: %s", case.id, e)
            errors[case.id] = _marker(case.id, e)
            continue

        types = active.get(case.id, {})
        att = types.get(AttestationType.CASE_READINESS.value)
        ack = types.get(AttestationType.SURGEON_ACKNOWLEDGMENT.value)
        inputs[case.id] = ci
        marks[case.id] = cache.Watermarks(
            inventory_event_id=latest_event_id(db, facility_id, ci.catalog_ids),
            case_revision=case.revision,
            requirements_fingerprint=ci.fingerprint,
            attestation_id=att.id if att else None,
            surgeon_acknowledgment_id=ack.id if ack else None,
            context_fingerprint=cache.context_fingerprint(ci.catalog_ids, ci.catalog, policy),
        )

        row = rows.get(case.id)
        if cache.is_fresh(row, marks[case.id], as_of=as_of, pool=ci.pool, policy=policy):
            snapshots[case.id] = cache.row_to_snapshot(row)
        else:
            to_compute.append(ci)

    computed, failed = _compute_parallel(to_compute, as_of, policy)
    errors.update(failed)
    snapshots.update(computed)

    for case_id, snap in computed.items():
        ci = inputs[case_id]
        cache.store(db, case=ci.case, snapshot=snap, marks=marks[case_id],
                    catalog_ids=ci.catalog_ids, now=now)
    if computed:
        db.commit()

    out: List[Dict[str, Any]] = []
    states: List[str] = []
    attested = 0
    for case in cases:
        snap = snapshots.get(case.id)
        if snap is None:
            continue
        types = active.get(case.id, {})
        out.append(case_view(case, snap, types))
        states.append(snap.readiness_state.value)
        if AttestationType.CASE_READINESS.value in types:
            attested += 1

    ordered_errors = [errors[c.id] for c in cases if c.id in errors]
    logger.info(
        "Day-before %s facility=%s: %d case(s), %d recomputed, %d failed (refresh=%s)",
        target_date, facility_id, len(cases), len(computed), len(ordered_errors), refresh)

    return DayBeforeResult(
        facility_id=facility_id,
        target_date=target_date,
        cases=out,
        errors=ordered_errors,
        summary=_summarize(states, attested, len(ordered_errors)),
        from_cache=bool(cases) and not computed and not ordered_errors,
    )


def calendar_summary(
    db: Session,
    facility_id: int,
    start_date: date,
    end_date: date,
    granularity: str = "day",
) -> Dict[str, Any]:
    """
    Month/week view straight from the cache; a case with no cache row counts ORANGE.
    """
    if start_date is None or end_date is None:
        raise ValidationFailed("start_date and end_date are required")
    if end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date")
    if granularity not in ("day", "case"):
        raise ValidationFailed('granularity must be "day" or "case"')

    _get_facility(db, facility_id)

    state = func.coalesce(CaseReadinessCache.readiness_state, ReadinessState.ORANGE.value)
    base = (
        db.query(SurgicalCase, state.label("state"))
        .outerjoin(CaseReadinessCache, CaseReadinessCache.case_id == SurgicalCase.id)
        .filter(
            SurgicalCase.facility_id == facility_id,
            SurgicalCase.scheduled_date >= start_date,
            SurgicalCase.scheduled_date <= end_date,
            SurgicalCase.is_active.is_(True),
            SurgicalCase.status.notin_(list(CLOSED_CASE_STATUSES)),
        )
        .order_by(SurgicalCase.scheduled_date.asc(),
                  SurgicalCase.scheduled_time.is_(None),
                  SurgicalCase.scheduled_time.asc(),
                  SurgicalCase.id.asc())
    )

    if granularity == "case":
        cases = []
        for case, st in base.all():
            row = case_header(case)
            row["readinessState"] = st
            cases.append(row)
        return {"cases": cases}

    days: Dict[date, Dict[str, Any]] = {}
    for case, st in base.all():
        d = days.setdefault(case.scheduled_date, {
            "date": case.scheduled_date.isoformat(),
            "caseCount": 0,
            "greenCount": 0,
            "orangeCount": 0,
            "redCount": 0,
        })
        d["caseCount"] += 1
        d[f"{st.lower()}Count"] += 1
    return {"days": [days[k] for k in sorted(days)]}
