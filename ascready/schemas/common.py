# FILE: ascready/schemas/common.py
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiError(BaseModel):
    msg: str
    code: Optional[str] = None
    details: Optional[Any] = None


class CamelOut(BaseModel):
    """Outputs are camelCase on the wire; inputs accept either spelling."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
