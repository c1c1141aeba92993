# FILE: ascready/services/audit_logger.py
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ascready.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    db: Session,
    *,
    user_id: Optional[int],
    action: str,  # "ATTEST" | "VOID" | "VERIFY" | "UNVERIFY" | "RELEASE" | ...
    table_name: str,
    record_id: Any,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage one audit row in the caller's transaction.
    The caller commits; a failed business write therefore leaves no audit trace.
    """
    log = AuditLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=str(record_id),
        old_values=old_values,
        new_values=new_values,
    )
    db.add(log)
    logger.debug("audit %s %s#%s by user=%s", action, table_name, record_id, user_id)
    return log
