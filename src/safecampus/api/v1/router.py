"""
API v1 Router

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter

from safecampus.api.v1.endpoints.health import router as health_router
from safecampus.api.v1.endpoints.locations import router as locations_router
from safecampus.api.v1.endpoints.safe_walk import router as safe_walk_router
from safecampus.api.v1.endpoints.sos import router as sos_router
from safecampus.api.v1.endpoints.sos_token import router as sos_token_router
from safecampus.api.v1.endpoints.users import router as users_router

api_router = APIRouter()

api_router.include_router(
    health_router,
    prefix="/health",
    tags=["Health"],
)

# Registered before the SOS router so "/sos/token/cancel" is not
# captured by "/sos/{sos_id}/cancel"
api_router.include_router(
    sos_token_router,
    prefix="/sos/token",
    tags=["SOS Token"],
)

api_router.include_router(
    sos_router,
    prefix="/sos",
    tags=["SOS"],
)

api_router.include_router(
    safe_walk_router,
    prefix="/safe-walks",
    tags=["Safe Walk"],
)

api_router.include_router(
    locations_router,
    prefix="/locations",
    tags=["Locations"],
)

api_router.include_router(
    users_router,
    prefix="/users",
    tags=["Users"],
)
