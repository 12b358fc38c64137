"""
Live Location Endpoints

Read access to the realtime location store with freshness status.
Writes come from devices directly (or through the SOS token
endpoint), never through here.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from safecampus.api.deps import ActorDep, ContainerDep, StaffDep
from safecampus.domain.models.live_location import LiveLocation
from safecampus.services.location.location_service import LocationService

router = APIRouter()


class LiveLocationResponse(BaseModel):
    user_id: str
    status: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_updated: Optional[datetime] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    accuracy: Optional[float] = None
    sos_id: Optional[str] = None

    @classmethod
    def build(
        cls,
        user_id: str,
        location: Optional[LiveLocation],
        locations: LocationService,
    ) -> "LiveLocationResponse":
        freshness = locations.status_of(location).value
        if location is None:
            return cls(user_id=user_id, status=freshness)
        return cls(
            user_id=user_id,
            status=freshness,
            latitude=location.latitude,
            longitude=location.longitude,
            last_updated=location.last_updated,
            speed=location.speed,
            heading=location.heading,
            accuracy=location.accuracy,
            sos_id=location.sos_id,
        )


@router.get("", response_model=list[LiveLocationResponse], summary="All live locations")
async def list_locations(actor: StaffDep, container: ContainerDep) -> list[LiveLocationResponse]:
    records = await container.locations.store.get_all()
    return [
        LiveLocationResponse.build(user_id, location, container.locations)
        for user_id, location in sorted(records.items())
    ]


@router.get("/{user_id}", response_model=LiveLocationResponse, summary="One user's live location")
async def get_location(user_id: str, actor: ActorDep, container: ContainerDep) -> LiveLocationResponse:
    """Staff see anyone; students only themselves. Missing records report ``offline``."""
    if actor.id != user_id and not actor.role.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not permitted")
    location = await container.locations.get(user_id)
    return LiveLocationResponse.build(user_id, location, container.locations)
