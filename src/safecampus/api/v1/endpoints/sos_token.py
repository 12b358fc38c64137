"""
SOS Token Endpoints

Unauthenticated surface for devices that hold only the per-episode
SOS token: the background tracker posting positions, and a
logged-out student cancelling their own alert.

SECURITY: Every token failure (wrong token, inactive or expired
session, unknown SOS id) answers the same 401 body.
"""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from safecampus.api.deps import ContainerDep

router = APIRouter()


class TokenLocationRequest(BaseModel):
    """Position fix authenticated by an SOS token."""

    sos_id: str = Field(..., min_length=1, max_length=128)
    sos_token: str = Field(..., min_length=1, max_length=512)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[float] = None
    heading: Optional[float] = None
    accuracy: Optional[float] = Field(default=None, ge=0)


class TokenCancelRequest(BaseModel):
    sos_id: str = Field(..., min_length=1, max_length=128)
    sos_token: str = Field(..., min_length=1, max_length=512)
    summary: Optional[str] = Field(default=None, max_length=2000)


class TokenActionResponse(BaseModel):
    status: str
    sos_id: str


@router.post(
    "/location",
    response_model=TokenActionResponse,
    summary="Post a location fix with an SOS token",
    responses={401: {"description": "Invalid or expired SOS token"}},
)
async def update_location(request: TokenLocationRequest, container: ContainerDep) -> TokenActionResponse:
    await container.manager.update_location_with_token(
        request.sos_id,
        request.sos_token,
        latitude=request.latitude,
        longitude=request.longitude,
        speed=request.speed,
        heading=request.heading,
        accuracy=request.accuracy,
    )
    return TokenActionResponse(status="ok", sos_id=request.sos_id)


@router.post(
    "/cancel",
    response_model=TokenActionResponse,
    summary="Cancel an SOS with its token",
    responses={401: {"description": "Invalid or expired SOS token"}},
)
async def cancel(request: TokenCancelRequest, container: ContainerDep) -> TokenActionResponse:
    await container.manager.cancel_with_token(request.sos_id, request.sos_token, request.summary)
    return TokenActionResponse(status="cancelled", sos_id=request.sos_id)
