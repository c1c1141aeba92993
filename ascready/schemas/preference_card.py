# FILE: ascready/schemas/preference_card.py
from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CardItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    catalog_id: int
    quantity: int = Field(1, ge=1)
    # None = inherit catalog item's requires_sterility
    requires_sterility: Optional[bool] = None
    notes: Optional[str] = None


class _SectionBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[CardItem] = Field(default_factory=list)


class InstrumentationSection(_SectionBase):
    kind: Literal["instrumentation"]
    tray_names: List[str] = Field(default_factory=list)


class ImplantsSection(_SectionBase):
    kind: Literal["implants"]
    vendor: Optional[str] = None


class EquipmentSection(_SectionBase):
    kind: Literal["equipment"]
    positioning: Optional[str] = None


class SuppliesSection(_SectionBase):
    kind: Literal["supplies"]


class MedicationsSection(_SectionBase):
    kind: Literal["medications"]


CardSection = Annotated[
    Union[
        InstrumentationSection,
        ImplantsSection,
        EquipmentSection,
        SuppliesSection,
        MedicationsSection,
    ],
    Field(discriminator="kind"),
]


class CardContent(BaseModel):
    """Validated shape of PreferenceCardVersion.sections."""
    model_config = ConfigDict(extra="ignore")

    sections: List[CardSection] = Field(default_factory=list)
