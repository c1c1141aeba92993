# FILE: ascready/models/catalog.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    Index,
)
from sqlalchemy.orm import relationship

from ascready.db.base import Base


class ItemCategory(str, enum.Enum):
    IMPLANT = "IMPLANT"
    INSTRUMENT = "INSTRUMENT"
    EQUIPMENT = "EQUIPMENT"
    MEDICATION = "MEDICATION"
    CONSUMABLE = "CONSUMABLE"
    PPE = "PPE"


class Criticality(str, enum.Enum):
    CRITICAL = "CRITICAL"
    IMPORTANT = "IMPORTANT"
    ROUTINE = "ROUTINE"


class CatalogItem(Base):
    """
    A type of supply / instrument / implant.
    Never hard-deleted while instances reference it: deactivate with is_active=False.
    """
    __tablename__ = "catalog_items"
    __table_args__ = (
        Index("ix_catalog_facility_criticality", "facility_id", "criticality"),
    )

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    catalog_number = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    category = Column(String(30), default=ItemCategory.INSTRUMENT.value, nullable=False)
    criticality = Column(String(20), default=Criticality.ROUTINE.value, nullable=False)

    requires_sterility = Column(Boolean, default=False, nullable=False)
    requires_lot_tracking = Column(Boolean, default=False, nullable=False)
    requires_serial_tracking = Column(Boolean, default=False, nullable=False)
    requires_expiration_tracking = Column(Boolean, default=False, nullable=False)
    # null = facility default
    expiration_warning_days = Column(Integer, nullable=True)
    readiness_required = Column(Boolean, default=True, nullable=False)
    substitutable = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    instances = relationship("InventoryInstance", back_populates="catalog_item")

    @property
    def is_critical(self) -> bool:
        return self.criticality == Criticality.CRITICAL.value
