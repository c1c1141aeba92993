# FILE: ascready/api/response.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ascready.schemas.common import ApiError, CamelOut
from ascready.services.errors import ReadinessError


def _wire(data: Any) -> Any:
    # output models go out by alias (camelCase); plain dicts are already shaped
    if isinstance(data, CamelOut):
        return data.wire()
    if isinstance(data, (list, tuple)):
        return [_wire(x) for x in data]
    return data


def ok(
    data: Any = None,
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """{"ok": true, "data": ..., "meta": {...}}; meta only when given."""
    payload: Dict[str, Any] = {"ok": True, "data": _wire(data)}
    if meta is not None:
        payload["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def err(
    msg: str = "Something went wrong",
    *,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    error = ApiError(msg=msg, code=code, details=details)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"ok": False, "error": error.model_dump()}),
    )


def readiness_err(exc: ReadinessError) -> JSONResponse:
    """Engine failures carry their own code and HTTP status."""
    return err(msg=exc.msg, status_code=exc.status_code, code=exc.code, details=exc.details)
