# FILE: ascready/models/surgical_case.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Time,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from ascready.db.base import Base

# ============================================================
#  PREFERENCE CARDS
# ============================================================


class PreferenceCard(Base):
    """
    Surgeon's template of required items for a procedure.
    Content lives in versions; current_version_id points at the one in force.
    """
    __tablename__ = "preference_cards"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False, index=True)
    surgeon_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    procedure_name = Column(String(255), nullable=False)
    current_version_id = Column(
        Integer,
        ForeignKey("preference_card_versions.id", use_alter=True,
                   name="fk_card_current_version"),
        nullable=True,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    # soft delete; a deleted card no longer resolves
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    versions = relationship(
        "PreferenceCardVersion",
        back_populates="card",
        foreign_keys="PreferenceCardVersion.card_id",
        order_by="PreferenceCardVersion.version_no",
    )
    current_version = relationship(
        "PreferenceCardVersion",
        foreign_keys=[current_version_id],
        post_update=True,
    )


class PreferenceCardVersion(Base):
    __tablename__ = "preference_card_versions"
    __table_args__ = (
        UniqueConstraint("card_id", "version_no", name="uq_card_version_no"),
    )

    id = Column(Integer, primary_key=True, index=True)
    card_id = Column(Integer, ForeignKey("preference_cards.id"), nullable=False)
    version_no = Column(Integer, nullable=False)
    # {"sections": [{"kind": "implants", "items": [{"catalog_id": 1, "quantity": 2}]}]}
    sections = Column(JSON, nullable=False, default=dict)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    card = relationship("PreferenceCard",
                        back_populates="versions",
                        foreign_keys=[card_id])


# ============================================================
#  CASES
# ============================================================


class CaseStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    REQUESTED = "REQUESTED"
    SCHEDULED = "SCHEDULED"
    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


# cases in these states never appear on the day-before screen
CLOSED_CASE_STATUSES = frozenset({
    CaseStatus.CANCELLED.value,
    CaseStatus.COMPLETED.value,
    CaseStatus.REJECTED.value,
})


class SurgicalCase(Base):
    __tablename__ = "surgical_cases"
    __table_args__ = (
        Index("ix_case_facility_date", "facility_id", "scheduled_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    case_number = Column(String(50), nullable=True)

    scheduled_date = Column(Date, nullable=True)
    scheduled_time = Column(Time, nullable=True)
    procedure_name = Column(String(255), nullable=False)
    surgeon_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    status = Column(String(20), default=CaseStatus.SCHEDULED.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    preference_card_id = Column(Integer,
                                ForeignKey("preference_cards.id"),
                                nullable=True)

    # bumped on every UPDATE of the row (optimistic concurrency + cache staleness)
    revision = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": revision}

    surgeon = relationship("User", foreign_keys=[surgeon_user_id])
    preference_card = relationship("PreferenceCard")
    overrides = relationship(
        "CaseRequirementOverride",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseRequirementOverride.catalog_id",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == CaseStatus.CANCELLED.value

    @property
    def is_open(self) -> bool:
        return bool(self.is_active) and self.status not in CLOSED_CASE_STATUSES


class CaseRequirementOverride(Base):
    """
    Case-specific change to the card: quantity 0 removes the item,
    any other quantity replaces (or adds) it.
    """
    __tablename__ = "case_requirement_overrides"
    __table_args__ = (
        UniqueConstraint("case_id", "catalog_id", name="uq_case_override_catalog"),
    )

    id = Column(Integer, primary_key=True)
    case_id = Column(Integer, ForeignKey("surgical_cases.id"), nullable=False)
    catalog_id = Column(Integer, ForeignKey("catalog_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    requires_sterility = Column(Boolean, nullable=True)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    case = relationship("SurgicalCase", back_populates="overrides")


class CaseStatusEvent(Base):
    """Append-only history of case status transitions."""
    __tablename__ = "case_status_events"

    id = Column(Integer, primary_key=True)
    case_id = Column(Integer, ForeignKey("surgical_cases.id"), nullable=False, index=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    context = Column(JSON, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
