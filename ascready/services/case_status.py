# FILE: ascready/services/case_status.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ascready.models.surgical_case import CaseStatus, CaseStatusEvent, SurgicalCase
from ascready.services.audit_logger import log_audit
from ascready.services.errors import ValidationFailed
from ascready.services.readiness_service import get_case
from ascready.services.verification_service import release_case_reservations

logger = logging.getLogger(__name__)


def cancel_case(
    db: Session,
    facility_id: int,
    case_id: int,
    user_id: Optional[int],
    reason: Optional[str] = None,
) -> SurgicalCase:
    """
    Move a case to CANCELLED and release every unit bound to it.
    Cancelling an already cancelled case only re-runs the (idempotent) release.
    """
    case = get_case(db, facility_id, case_id, for_update=True)
    if case.status == CaseStatus.COMPLETED.value:
        raise ValidationFailed(f"Case {case_id} is already completed")

    if case.status != CaseStatus.CANCELLED.value:
        prev = case.status
        case.status = CaseStatus.CANCELLED.value
        db.add(CaseStatusEvent(
            case_id=case.id,
            from_status=prev,
            to_status=CaseStatus.CANCELLED.value,
            reason=(reason or "").strip() or None,
            user_id=user_id,
        ))
        log_audit(db, user_id=user_id, action="CANCEL", table_name="surgical_cases",
                  record_id=case.id, old_values={"status": prev},
                  new_values={"status": CaseStatus.CANCELLED.value, "reason": reason})
        logger.info("Case %s cancelled by user %s", case.id, user_id)

    release_case_reservations(db, case.id, user_id, commit=False)
    db.commit()
    db.refresh(case)
    return case
