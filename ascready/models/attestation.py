# FILE: ascready/models/attestation.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Text,
    Index,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import relationship

from ascready.db.base import Base


class AttestationType(str, enum.Enum):
    CASE_READINESS = "CASE_READINESS"
    SURGEON_ACKNOWLEDGMENT = "SURGEON_ACKNOWLEDGMENT"


class Attestation(Base):
    """
    Signed statement that a case's readiness was reviewed.
    Append-only: the only permitted change is the one-time void stamp.
    """
    __tablename__ = "attestations"
    __table_args__ = (
        # at most one active attestation per case + type
        Index(
            "uq_attestation_active_case_type",
            "case_id",
            "type",
            unique=True,
            sqlite_where=text("voided_at IS NULL"),
            postgresql_where=text("voided_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    case_id = Column(Integer, ForeignKey("surgical_cases.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    attested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # frozen copy of the readiness state when signed
    readiness_state_at_time = Column(String(10), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    voided_at = Column(DateTime, nullable=True)
    voided_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    void_reason = Column(Text, nullable=True)

    attested_by = relationship("User", foreign_keys=[attested_by_user_id])
    voided_by = relationship("User", foreign_keys=[voided_by_user_id])
    void_record = relationship("AttestationVoid",
                               back_populates="attestation",
                               uselist=False)

    @property
    def is_active(self) -> bool:
        return self.voided_at is None


class AttestationVoid(Base):
    """Append-only void record referencing the attestation it voids."""
    __tablename__ = "attestation_voids"

    id = Column(Integer, primary_key=True)
    attestation_id = Column(Integer,
                            ForeignKey("attestations.id"),
                            nullable=False,
                            unique=True)
    voided_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    attestation = relationship("Attestation", back_populates="void_record")


class AttestationImmutableError(RuntimeError):
    pass


_VOID_COLUMNS = frozenset({"voided_at", "voided_by_user_id", "void_reason"})


@event.listens_for(Attestation, "before_update")
def _attestation_allow_void_only(mapper, connection, target):
    state = inspect(target)
    for attr in state.mapper.column_attrs:
        hist = state.attrs[attr.key].history
        if not hist.has_changes():
            continue
        if attr.key not in _VOID_COLUMNS:
            raise AttestationImmutableError(
                f"Attestation {target.id}: field '{attr.key}' cannot be modified")
        if hist.deleted and hist.deleted[0] is not None:
            raise AttestationImmutableError(
                f"Attestation {target.id} is already voided")


@event.listens_for(Attestation, "before_delete")
def _attestation_no_delete(mapper, connection, target):
    raise AttestationImmutableError(f"Attestation {target.id} cannot be deleted")
