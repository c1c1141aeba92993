# FILE: ascready/schemas/inventory.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ascready.models.inventory import InventoryEventType
from ascready.schemas.common import CamelOut


class RiskItemOut(CamelOut):
    rule: str
    severity: str
    inventory_instance_id: int
    catalog_id: int
    catalog_name: str
    identifier: Optional[str] = None
    days_to_expire: Optional[int] = None
    expires_at: Optional[datetime] = None
    missing_fields: List[str] = Field(default_factory=list)
    explain: str
    debug: Dict[str, Any] = Field(default_factory=dict)


class RiskQueueOut(CamelOut):
    risk_items: List[RiskItemOut]


class InventoryEventIn(BaseModel):
    inventory_instance_id: int
    event_type: InventoryEventType
    case_id: Optional[int] = None
    location_id: Optional[int] = None
    sterility_status: Optional[str] = None
    sterility_expires_at: Optional[datetime] = None
    notes: str = ""


class InventoryEventOut(CamelOut):
    id: int
    inventory_instance_id: int
    catalog_id: int
    case_id: Optional[int] = None
    event_type: str
    user_id: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    occurred_at: datetime


class InventoryInstanceOut(CamelOut):
    id: int
    catalog_id: int
    location_id: Optional[int] = None
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    identifier: Optional[str] = None
    sterility_status: str
    sterility_expires_at: Optional[datetime] = None
    availability_status: str
    reserved_for_case_id: Optional[int] = None
    last_verified_at: Optional[datetime] = None
    last_verified_by_user_id: Optional[int] = None
