# FILE: ascready/models/readiness_cache.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Index,
)

from ascready.db.base import Base


class CaseReadinessCache(Base):
    """
    Advisory copy of the last computed snapshot for a case.
    Never authoritative: the watermark columns decide whether it can be reused.
    """
    __tablename__ = "case_readiness_cache"
    __table_args__ = (
        Index("ix_readiness_cache_facility_date", "facility_id", "scheduled_date"),
    )

    case_id = Column(Integer, ForeignKey("surgical_cases.id"), primary_key=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    scheduled_date = Column(Date, nullable=True)

    readiness_state = Column(String(10), nullable=False)
    missing_items = Column(JSON, nullable=False, default=list)
    total_required_items = Column(Integer, nullable=False, default=0)
    total_verified_items = Column(Integer, nullable=False, default=0)

    # --- staleness watermarks captured at build time ---
    inventory_event_watermark = Column(Integer, nullable=False, default=0)
    case_revision = Column(Integer, nullable=False, default=0)
    requirements_fingerprint = Column(String(64), nullable=False, default="")
    context_fingerprint = Column(String(64), nullable=False, default="")
    catalog_ids = Column(JSON, nullable=False, default=list)
    attestation_id = Column(Integer, nullable=True)
    surgeon_acknowledgment_id = Column(Integer, nullable=True)
    as_of = Column(DateTime, nullable=False)

    computed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
