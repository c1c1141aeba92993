# FILE: ascready/models/inventory.py
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
    JSON,
    Index,
)
from sqlalchemy.orm import relationship

from ascready.db.base import Base


class SterilityStatus(str, enum.Enum):
    STERILE = "STERILE"
    NON_STERILE = "NON_STERILE"
    EXPIRED = "EXPIRED"
    UNKNOWN = "UNKNOWN"


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    IN_USE = "IN_USE"
    UNAVAILABLE = "UNAVAILABLE"
    MISSING = "MISSING"
    DISPOSED = "DISPOSED"


# never come back into circulation; skipped by the risk sweep
TERMINAL_STATUSES = frozenset({
    AvailabilityStatus.IN_USE.value,
    AvailabilityStatus.DISPOSED.value,
})


class InventoryEventType(str, enum.Enum):
    RECEIVED = "RECEIVED"
    VERIFIED = "VERIFIED"
    LOCATION_CHANGED = "LOCATION_CHANGED"
    RESERVED = "RESERVED"
    RELEASED = "RELEASED"
    CONSUMED = "CONSUMED"
    EXPIRED = "EXPIRED"
    MISSING = "MISSING"
    FOUND = "FOUND"
    DISPOSED = "DISPOSED"
    ADJUSTED = "ADJUSTED"


class InventoryInstance(Base):
    """
    One physical unit of a catalog item. Never deleted, only moved to a
    terminal availability status.
    """
    __tablename__ = "inventory_instances"
    __table_args__ = (
        Index("ix_inv_instance_facility_catalog", "facility_id", "catalog_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    catalog_id = Column(Integer, ForeignKey("catalog_items.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)

    lot_number = Column(String(255), nullable=True)
    serial_number = Column(String(255), nullable=True)
    barcode = Column(String(255), nullable=True, index=True)

    sterility_status = Column(String(20),
                              default=SterilityStatus.UNKNOWN.value,
                              nullable=False)
    sterility_expires_at = Column(DateTime, nullable=True)
    availability_status = Column(String(20),
                                 default=AvailabilityStatus.AVAILABLE.value,
                                 nullable=False)

    reserved_for_case_id = Column(Integer,
                                  ForeignKey("surgical_cases.id"),
                                  nullable=True,
                                  index=True)
    last_verified_at = Column(DateTime, nullable=True)
    last_verified_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    catalog_item = relationship("CatalogItem", back_populates="instances")
    location = relationship("Location")
    events = relationship("InventoryEvent",
                          back_populates="instance",
                          order_by="InventoryEvent.id")

    @property
    def identifier(self) -> str | None:
        return self.serial_number or self.lot_number or self.barcode


class InventoryEvent(Base):
    """
    Append-only log of every instance mutation. The autoincrement id is the
    watermark the readiness cache compares against.
    """
    __tablename__ = "inventory_events"
    __table_args__ = (
        Index("ix_inv_event_facility_catalog", "facility_id", "catalog_id", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    inventory_instance_id = Column(Integer,
                                   ForeignKey("inventory_instances.id"),
                                   nullable=False,
                                   index=True)
    catalog_id = Column(Integer, ForeignKey("catalog_items.id"), nullable=False)
    case_id = Column(Integer, ForeignKey("surgical_cases.id"), nullable=True)
    event_type = Column(String(30), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    payload = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    instance = relationship("InventoryInstance", back_populates="events")
