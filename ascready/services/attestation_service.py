# FILE: ascready/services/attestation_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ascready.models.attestation import Attestation, AttestationType, AttestationVoid
from ascready.services.audit_logger import log_audit
from ascready.services.errors import (
    AcknowledgmentNotRequired,
    AlreadyAttested,
    AlreadyVoided,
    NotFound,
    ValidationFailed,
    VoidReasonRequired,
)
from ascready.services.readiness_service import compute_case_readiness, get_case
from ascready.services.readiness_types import ReadinessState
from ascready.utils.timezone import utcnow

logger = logging.getLogger(__name__)


def _attestation_type(value) -> AttestationType:
    try:
        return AttestationType(str(getattr(value, "value", value)).upper())
    except ValueError:
        raise ValidationFailed(f"Unknown attestation type: {value}")


def _active(db: Session, case_id: int, att_type: AttestationType) -> Optional[Attestation]:
    return (db.query(Attestation)
            .filter(Attestation.case_id == case_id,
                    Attestation.type == att_type.value,
                    Attestation.voided_at.is_(None))
            .first())


def attest(
    db: Session,
    case_id: int,
    att_type,
    user_id: int,
    notes: Optional[str] = None,
    *,
    facility_id: int,
    now: Optional[datetime] = None,
) -> Attestation:
    """
    NONE -> ATTESTED for (case, type). The case row is locked for the
    check-then-write; the partial unique index catches anything that slips by.
    The current readiness state is frozen into the record.
    """
    t = _attestation_type(att_type)
    now = now or utcnow()

    case = get_case(db, facility_id, case_id, for_update=True)
    if not case.is_open:
        raise ValidationFailed(f"Case {case_id} is not open for attestation")

    existing = _active(db, case.id, t)
    if existing:
        raise AlreadyAttested(
            f"Case {case_id} already has an active {t.value} attestation",
            details={"attestationId": existing.id},
        )

    snap = compute_case_readiness(db, case, now)
    state = snap.readiness_state

    if t == AttestationType.SURGEON_ACKNOWLEDGMENT and state != ReadinessState.RED:
        raise AcknowledgmentNotRequired(
            f"Surgeon acknowledgment is only accepted while the case is RED (now {state.value})")

    att = Attestation(
        facility_id=case.facility_id,
        case_id=case.id,
        type=t.value,
        attested_by_user_id=user_id,
        readiness_state_at_time=state.value,
        notes=(notes or "").strip() or None,
        created_at=now,
    )
    db.add(att)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise AlreadyAttested(
            f"Case {case_id} already has an active {t.value} attestation") from e

    log_audit(
        db,
        user_id=user_id,
        action="ATTEST",
        table_name="attestations",
        record_id=att.id,
        new_values={
            "caseId": case.id,
            "type": t.value,
            "readinessStateAtTime": state.value,
        },
    )
    db.commit()
    db.refresh(att)

    logger.info("Case %s attested (%s) by user %s at state %s",
                case.id, t.value, user_id, state.value)
    return att


def void(
    db: Session,
    attestation_id: int,
    user_id: int,
    reason: Optional[str],
    *,
    facility_id: int,
    now: Optional[datetime] = None,
) -> Attestation:
    """ATTESTED -> VOIDED. A non-blank reason is mandatory."""
    if reason is None or not str(reason).strip():
        raise VoidReasonRequired("A reason is required to void an attestation")
    reason = str(reason).strip()
    now = now or utcnow()

    att = (db.query(Attestation)
           .filter(Attestation.id == attestation_id,
                   Attestation.facility_id == facility_id)
           .first())
    if not att:
        raise NotFound(f"Attestation {attestation_id} not found")
    if att.voided_at is not None:
        raise AlreadyVoided(f"Attestation {attestation_id} is already voided")

    # compare-and-set on voided_at; a concurrent void leaves rowcount 0
    res = db.execute(
        update(Attestation)
        .where(Attestation.id == att.id, Attestation.voided_at.is_(None))
        .values(voided_at=now, voided_by_user_id=user_id, void_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        raise AlreadyVoided(f"Attestation {attestation_id} is already voided")

    db.add(AttestationVoid(
        attestation_id=att.id,
        voided_by_user_id=user_id,
        reason=reason,
        created_at=now,
    ))
    log_audit(
        db,
        user_id=user_id,
        action="VOID",
        table_name="attestations",
        record_id=att.id,
        old_values={"voidedAt": None},
        new_values={"voidedAt": now.isoformat(), "reason": reason},
    )
    db.commit()
    db.refresh(att)

    logger.info("Attestation %s voided by user %s", att.id, user_id)
    return att


def list_attestations(db: Session, facility_id: int, case_id: int) -> List[Attestation]:
    get_case(db, facility_id, case_id)
    return (db.query(Attestation)
            .filter(Attestation.case_id == case_id)
            .order_by(Attestation.created_at.asc(), Attestation.id.asc())
            .all())
