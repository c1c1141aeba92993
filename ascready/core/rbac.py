from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from fastapi import HTTPException, status


class Capability(str, Enum):
    READINESS_VIEW = "readiness.view"
    READINESS_REFRESH = "readiness.refresh"
    ATTEST_CASE = "attest.case"
    ATTEST_SURGEON = "attest.surgeon"
    VERIFY_ITEMS = "verify.items"
    INVENTORY_VIEW = "inventory.view"
    INVENTORY_EVENTS = "inventory.events"
    CASES_CANCEL = "cases.cancel"


C = Capability

# role code -> capabilities granted by that role
ROLE_CAPABILITIES: Dict[str, FrozenSet[Capability]] = {
    "ADMIN": frozenset(Capability),
    "SCHEDULER": frozenset({C.READINESS_VIEW, C.CASES_CANCEL}),
    "INVENTORY_TECH": frozenset({
        C.READINESS_VIEW, C.READINESS_REFRESH, C.ATTEST_CASE, C.VERIFY_ITEMS,
        C.INVENTORY_VIEW, C.INVENTORY_EVENTS,
    }),
    "CIRCULATOR": frozenset({
        C.READINESS_VIEW, C.READINESS_REFRESH, C.ATTEST_CASE, C.VERIFY_ITEMS,
        C.INVENTORY_VIEW,
    }),
    "SURGEON": frozenset({C.READINESS_VIEW, C.ATTEST_SURGEON}),
    "SCRUB": frozenset({C.READINESS_VIEW, C.VERIFY_ITEMS}),
    "ANESTHESIA": frozenset({C.READINESS_VIEW}),
}


def _code(x: Any) -> str:
    """
    Normalize capability / role code safely.
    Supports Enum, str and objects carrying a .code attribute.
    """
    if x is None:
        return ""
    if isinstance(x, Enum):
        return str(x.value)
    if isinstance(x, str):
        return x
    if hasattr(x, "code"):
        return _code(getattr(x, "code"))
    return str(x)


def capabilities_for_roles(roles: Optional[Iterable[Any]]) -> Set[str]:
    """Union of every assigned role's capabilities. Unknown roles grant nothing."""
    out: Set[str] = set()
    for r in roles or []:
        for cap in ROLE_CAPABILITIES.get(_code(r).strip().upper(), ()):
            out.add(cap.value)
    return out


def has_capability(capabilities: Iterable[str], code: Any) -> bool:
    want = _code(code).strip()
    if not want:
        return False
    return want in set(capabilities or ())


def require_any(ctx: Any, required: Iterable[Any], *, message: Optional[str] = None) -> None:
    """
    Raise 403 unless the request context holds at least one of 'required'.
    """
    required_set = {_code(x).strip() for x in required if _code(x).strip()}
    if not required_set:
        return

    have = set(getattr(ctx, "capabilities", None) or ())
    if have.intersection(required_set):
        return

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=message or "You do not have permission to perform this action.",
    )
