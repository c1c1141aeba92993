# FILE: ascready/models/facility.py
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
    JSON,
)
from sqlalchemy.orm import relationship

from ascready.db.base import Base


class VerificationPolicy(str, enum.Enum):
    # verified = explicitly bound to the case through the verification workflow
    BINDING = "BINDING"
    # verified = last_verified_at falls inside the facility freshness window
    FRESHNESS = "FRESHNESS"


class Facility(Base):
    """
    One ambulatory surgery center. Carries the readiness configuration
    that is passed explicitly into every engine call.
    """
    __tablename__ = "facilities"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), default="UTC", nullable=False)

    verification_policy = Column(String(20),
                                 default=VerificationPolicy.BINDING.value,
                                 nullable=False)
    verification_freshness_hours = Column(Integer, nullable=True)
    # null = use settings.DEFAULT_EXPIRATION_WARNING_DAYS
    expiration_warning_days = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    locations = relationship("Location", back_populates="facility")
    users = relationship("User", back_populates="facility")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True, nullable=True)
    # role codes, e.g. ["CIRCULATOR", "INVENTORY_TECH"]
    roles = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)

    facility = relationship("Facility", back_populates="users")


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    facility = relationship("Facility", back_populates="locations")
