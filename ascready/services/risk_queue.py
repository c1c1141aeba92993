# FILE: ascready/services/risk_queue.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ascready.core.config import settings
from ascready.models.catalog import CatalogItem
from ascready.models.facility import Facility
from ascready.models.inventory import InventoryInstance, TERMINAL_STATUSES


class RiskRule(str, Enum):
    MISSING_LOT = "MISSING_LOT"
    MISSING_SERIAL = "MISSING_SERIAL"
    MISSING_EXPIRATION = "MISSING_EXPIRATION"
    EXPIRED = "EXPIRED"
    EXPIRING_SOON = "EXPIRING_SOON"


class RiskSeverity(str, Enum):
    RED = "RED"
    ORANGE = "ORANGE"
    YELLOW = "YELLOW"


SEVERITY_RANK = {
    RiskSeverity.RED: 3,
    RiskSeverity.ORANGE: 2,
    RiskSeverity.YELLOW: 1,
}


@dataclass(frozen=True)
class RiskQueueEntry:
    rule: RiskRule
    severity: RiskSeverity
    inventory_instance_id: int
    catalog_id: int
    catalog_name: str
    explanation: str
    identifier: Optional[str] = None
    days_to_expire: Optional[int] = None
    expires_at: Optional[datetime] = None
    missing_fields: tuple = ()
    debug: Dict[str, Any] = field(default_factory=dict, compare=False)


def days_until(expires_at: datetime, now: datetime) -> int:
    """Whole days left, rounded up (expires in 3d 2h -> 4). Negative once expired."""
    return math.ceil((expires_at - now).total_seconds() / 86400)


def effective_warning_days(catalog_item: Any, default_warning_days: int) -> int:
    v = getattr(catalog_item, "expiration_warning_days", None)
    return int(v) if v is not None else int(default_warning_days)


def evaluate(
    instance: Any,
    catalog_item: Any,
    now: datetime,
    *,
    default_warning_days: Optional[int] = None,
    orange_days: Optional[int] = None,
) -> List[RiskQueueEntry]:
    """
    All risks detected on one unit; an instance can carry several at once.
    Terminal (consumed / disposed) units and deactivated catalog items yield nothing.
    """
    if instance.availability_status in TERMINAL_STATUSES:
        return []
    if catalog_item is None or not getattr(catalog_item, "is_active", True):
        return []

    if default_warning_days is None:
        default_warning_days = settings.DEFAULT_EXPIRATION_WARNING_DAYS
    if orange_days is None:
        orange_days = settings.RISK_ORANGE_DAYS

    warning_days = effective_warning_days(catalog_item, default_warning_days)
    expires = instance.sterility_expires_at
    dte = days_until(expires, now) if expires is not None else None

    debug = {
        "criticality": getattr(catalog_item, "criticality", None),
        "requiresSterility": bool(getattr(catalog_item, "requires_sterility", False)),
        "expirationRequired": bool(catalog_item.requires_expiration_tracking),
        "effectiveWarningDays": warning_days,
    }

    def _entry(rule: RiskRule, severity: RiskSeverity, explain: str,
               missing: tuple = ()) -> RiskQueueEntry:
        return RiskQueueEntry(
            rule=rule,
            severity=severity,
            inventory_instance_id=instance.id,
            catalog_id=instance.catalog_id,
            catalog_name=catalog_item.name,
            explanation=explain,
            identifier=getattr(instance, "identifier", None),
            days_to_expire=dte,
            expires_at=expires,
            missing_fields=missing,
            debug=debug,
        )

    out: List[RiskQueueEntry] = []

    if catalog_item.requires_lot_tracking and not instance.lot_number:
        out.append(_entry(
            RiskRule.MISSING_LOT, RiskSeverity.RED,
            f"{catalog_item.name} requires lot tracking but this unit has no lot number",
            ("lotNumber",)))
    if catalog_item.requires_serial_tracking and not instance.serial_number:
        out.append(_entry(
            RiskRule.MISSING_SERIAL, RiskSeverity.RED,
            f"{catalog_item.name} requires serial tracking but this unit has no serial number",
            ("serialNumber",)))
    if catalog_item.requires_expiration_tracking and expires is None:
        out.append(_entry(
            RiskRule.MISSING_EXPIRATION, RiskSeverity.RED,
            f"{catalog_item.name} requires expiration tracking but this unit has no expiration date",
            ("sterilityExpiresAt",)))

    if expires is not None:
        if expires < now:
            out.append(_entry(
                RiskRule.EXPIRED, RiskSeverity.RED,
                f"Sterility expired {abs(dte)} day(s) ago" if dte else "Sterility expired today"))
        elif expires - now <= timedelta(days=warning_days):
            # the shorter (orange) threshold wins when both apply
            if dte <= min(orange_days, warning_days):
                sev = RiskSeverity.ORANGE
            else:
                sev = RiskSeverity.YELLOW
            out.append(_entry(
                RiskRule.EXPIRING_SOON, sev,
                f"Sterility expires in {dte} day(s) (warning window {warning_days} days)"))

    return out


def sort_key(entry: RiskQueueEntry):
    dte = entry.days_to_expire
    return (
        -SEVERITY_RANK[entry.severity],
        dte is None,
        dte if dte is not None else 0,
        entry.catalog_name.lower(),
        entry.inventory_instance_id or 0,
        entry.rule.value,
    )


def sort_entries(entries: List[RiskQueueEntry]) -> List[RiskQueueEntry]:
    return sorted(entries, key=sort_key)


def build_risk_queue(
    db: Session,
    facility_id: int,
    now: datetime,
    *,
    rule: Optional[RiskRule] = None,
    severity: Optional[RiskSeverity] = None,
) -> List[RiskQueueEntry]:
    """
    Facility-wide sweep. Read-only; recomputed on every call.
    """
    facility = db.get(Facility, facility_id)
    default_days = settings.DEFAULT_EXPIRATION_WARNING_DAYS
    if facility is not None and facility.expiration_warning_days is not None:
        default_days = facility.expiration_warning_days

    rows = (
        db.query(InventoryInstance, CatalogItem)
        .join(CatalogItem, CatalogItem.id == InventoryInstance.catalog_id)
        .filter(
            InventoryInstance.facility_id == facility_id,
            InventoryInstance.availability_status.notin_(list(TERMINAL_STATUSES)),
            CatalogItem.is_active.is_(True),
        )
        .order_by(InventoryInstance.id.asc())
        .all()
    )

    entries: List[RiskQueueEntry] = []
    for inst, cat in rows:
        for e in evaluate(inst, cat, now, default_warning_days=default_days):
            if rule is not None and e.rule != rule:
                continue
            if severity is not None and e.severity != severity:
                continue
            entries.append(e)
    return sort_entries(entries)
