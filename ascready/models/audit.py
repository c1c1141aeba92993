from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    JSON,
)

from ascready.db.base import Base


class AuditLog(Base):
    """
    Facility audit log.
    Every attestation, void, verification and reservation release writes here.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, nullable=True)  # system jobs may be null
    action = Column(String(40), nullable=False)  # ATTEST / VOID / VERIFY / ...

    table_name = Column(String(255), nullable=False)
    record_id = Column(String(100),
                       nullable=False)  # generic pk, stored as string

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
