# ascready/models/__init__.py
from .facility import Facility, User, Location, VerificationPolicy
from .catalog import CatalogItem, ItemCategory, Criticality
from .inventory import (
    InventoryInstance,
    InventoryEvent,
    InventoryEventType,
    AvailabilityStatus,
    SterilityStatus,
)
from .surgical_case import (
    PreferenceCard,
    PreferenceCardVersion,
    SurgicalCase,
    CaseRequirementOverride,
    CaseStatus,
    CaseStatusEvent,
)
from .attestation import Attestation, AttestationVoid, AttestationType
from .readiness_cache import CaseReadinessCache
from .audit import AuditLog

__all__ = [
    "Facility",
    "User",
    "Location",
    "VerificationPolicy",
    "CatalogItem",
    "ItemCategory",
    "Criticality",
    "InventoryInstance",
    "InventoryEvent",
    "InventoryEventType",
    "AvailabilityStatus",
    "SterilityStatus",
    "PreferenceCard",
    "PreferenceCardVersion",
    "SurgicalCase",
    "CaseRequirementOverride",
    "CaseStatus",
    "CaseStatusEvent",
    "Attestation",
    "AttestationVoid",
    "AttestationType",
    "CaseReadinessCache",
    "AuditLog",
]
