# FILE: ascready/api/deps.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ascready.core.config import settings
from ascready.core.rbac import capabilities_for_roles
from ascready.db.session import get_db
from ascready.models.facility import User


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, for which facility, allowed to do what. Built once per request."""
    user_id: int
    facility_id: int
    capabilities: FrozenSet[str] = field(default_factory=frozenset)


# =========================================================
# AUTH HELPERS
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def create_access_token(user: User) -> str:
    """Token carrying the claims current_context() reads (sub = user id, fid = facility id)."""
    return jwt.encode(
        {"sub": str(user.id), "fid": user.facility_id},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALG,
    )


def context_from_token(raw_token: Optional[str], db: Session) -> RequestContext:
    if not raw_token:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = _decode_token(raw_token)
    sub = payload.get("sub")
    fid = payload.get("fid")
    if not sub or fid is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user: Optional[User] = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")
    if user.facility_id != int(fid):
        raise HTTPException(status_code=403, detail="Facility mismatch")

    return RequestContext(
        user_id=user.id,
        facility_id=user.facility_id,
        capabilities=frozenset(capabilities_for_roles(user.roles)),
    )


def current_context(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> RequestContext:
    return context_from_token(_extract_bearer(authorization), db)
