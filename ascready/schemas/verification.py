# FILE: ascready/schemas/verification.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class VerifyIn(BaseModel):
    requirement_catalog_id: int
    inventory_instance_id: int


class UnverifyIn(BaseModel):
    inventory_instance_id: int


class CancelCaseIn(BaseModel):
    reason: Optional[str] = None
