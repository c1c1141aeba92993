# FILE: ascready/api/router.py
from fastapi import APIRouter

from ascready.api.routes_attestations import router as attestations_router
from ascready.api.routes_cases import router as cases_router
from ascready.api.routes_inventory import router as inventory_router
from ascready.api.routes_readiness import router as readiness_router
from ascready.api.routes_verification import router as verification_router

api_router = APIRouter()

api_router.include_router(readiness_router)
api_router.include_router(attestations_router)
api_router.include_router(verification_router)
api_router.include_router(inventory_router)
api_router.include_router(cases_router)
