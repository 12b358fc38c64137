"""
SOS Endpoints

Authenticated SOS lifecycle: trigger, detail enrichment, responder
actions and queries. Token-authenticated calls from logged-out
devices live in ``sos_token``.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from safecampus.api.deps import ActorDep, ContainerDep, StaffDep
from safecampus.config.logging_config import get_logger
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.models.geo import GeoPoint
from safecampus.domain.models.sos_event import SOSEvent

logger = get_logger(__name__)
router = APIRouter()


# Request/Response Models

class TriggerSOSRequest(BaseModel):
    """Raise an SOS at the given position."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=500)
    emergency_type: EmergencyType = EmergencyType.OTHER
    trigger_method: TriggerMethod = TriggerMethod.MANUAL_GESTURE
    triggered_at: Optional[datetime] = Field(default=None, description="Device clock at trigger")


class TriggerSOSResponse(BaseModel):
    """
    New SOS id and its session token.

    The token is returned only here; the device stores it for
    logged-out cancel and background tracking.
    """

    sos_id: str
    sos_token: str
    resumed: bool = False


class UpdateDetailsRequest(BaseModel):
    emergency_type: EmergencyType
    description: Optional[str] = Field(default=None, max_length=4000)
    voice_transcript: Optional[str] = Field(default=None, max_length=8000)


class ResolveRequest(BaseModel):
    summary: str = Field(..., min_length=1, max_length=2000)


class TimelineEntryResponse(BaseModel):
    time: datetime
    action: str
    by: str
    note: Optional[str] = None


class SOSEventResponse(BaseModel):
    """SOS event as shown to the owner and responders."""

    id: str
    user_id: str
    user_name: str
    user_phone: str
    role: str
    hostel_id: Optional[str] = None
    room_number: str
    recognised: bool
    resolved: bool
    recognised_by: Optional[str] = None
    assigned_to: Optional[dict] = None
    location: Optional[dict] = None
    live_location: Optional[dict] = None
    emergency_type: str
    trigger_method: str
    description: Optional[str] = None
    voice_transcript: Optional[str] = None
    is_details_added: bool
    triggered_at: datetime
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_summary: Optional[str] = None
    notification_sent: bool
    timeline: list[TimelineEntryResponse]

    @classmethod
    def from_event(cls, event: SOSEvent) -> "SOSEventResponse":
        return cls(
            id=event.id,
            user_id=event.user_id,
            user_name=event.user_name,
            user_phone=event.user_phone,
            role=event.role.value,
            hostel_id=event.hostel_id,
            room_number=event.room_number,
            recognised=event.status.recognised,
            resolved=event.status.resolved,
            recognised_by=event.recognised_by,
            assigned_to=event.assigned_to.to_dict() if event.assigned_to else None,
            location=event.location.to_dict() if event.location else None,
            live_location=event.live_location.to_dict() if event.live_location else None,
            emergency_type=event.emergency_type.value,
            trigger_method=event.trigger_method.value,
            description=event.description,
            voice_transcript=event.voice_transcript,
            is_details_added=event.is_details_added,
            triggered_at=event.triggered_at,
            created_at=event.created_at,
            resolved_at=event.resolved_at,
            resolution_summary=event.resolution_summary,
            notification_sent=event.notification_sent,
            timeline=[
                TimelineEntryResponse(time=e.time, action=e.action, by=e.by, note=e.note)
                for e in event.timeline
            ],
        )


# Endpoints

@router.post(
    "",
    response_model=TriggerSOSResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Trigger an SOS",
    responses={409: {"description": "The caller already has an active SOS"}},
)
async def trigger_sos(
    request: TriggerSOSRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> TriggerSOSResponse:
    """
    Raise a new SOS for the caller.

    Security and the student's hostel wardens are notified
    asynchronously once the event is stored.
    """
    result = await container.manager.trigger(
        actor,
        GeoPoint(lat=request.latitude, lng=request.longitude, address=request.address),
        emergency_type=request.emergency_type,
        trigger_method=request.trigger_method,
        triggered_at=request.triggered_at,
    )
    return TriggerSOSResponse(sos_id=result.sos_id, sos_token=result.sos_token, resumed=result.resumed)


@router.get(
    "/active",
    response_model=list[SOSEventResponse],
    summary="List unresolved SOS events",
)
async def list_active(
    actor: StaffDep,
    container: ContainerDep,
    hostel_id: Optional[str] = Query(default=None),
) -> list[SOSEventResponse]:
    """Newest first. Wardens default to their own hostel."""
    if hostel_id is None and actor.role is ActorRole.WARDEN:
        hostel_id = actor.hostel_id
    events = await container.manager.list_active(hostel_id=hostel_id)
    return [SOSEventResponse.from_event(event) for event in events]


@router.get(
    "/history",
    response_model=list[SOSEventResponse],
    summary="List resolved SOS events",
)
async def list_history(
    actor: StaffDep,
    container: ContainerDep,
    limit: int = Query(default=50, ge=1, le=200),
) -> list[SOSEventResponse]:
    events = await container.manager.list_resolved(limit=limit)
    return [SOSEventResponse.from_event(event) for event in events]


@router.get(
    "/{sos_id}",
    response_model=SOSEventResponse,
    summary="Get one SOS event",
)
async def get_event(sos_id: str, actor: ActorDep, container: ContainerDep) -> SOSEventResponse:
    return SOSEventResponse.from_event(await container.manager.get_event(sos_id, actor))


@router.patch(
    "/{sos_id}/details",
    response_model=SOSEventResponse,
    summary="Add emergency details",
)
async def update_details(
    sos_id: str,
    request: UpdateDetailsRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SOSEventResponse:
    event = await container.manager.update_details(
        sos_id,
        actor,
        emergency_type=request.emergency_type,
        description=request.description,
        voice_transcript=request.voice_transcript,
    )
    return SOSEventResponse.from_event(event)


@router.post(
    "/{sos_id}/recognise",
    response_model=SOSEventResponse,
    summary="Recognise an SOS (security)",
)
async def recognise(sos_id: str, actor: ActorDep, container: ContainerDep) -> SOSEventResponse:
    return SOSEventResponse.from_event(await container.manager.recognise(sos_id, actor))


@router.post(
    "/{sos_id}/acknowledge",
    response_model=SOSEventResponse,
    summary="Acknowledge an SOS (warden)",
)
async def acknowledge(sos_id: str, actor: ActorDep, container: ContainerDep) -> SOSEventResponse:
    return SOSEventResponse.from_event(await container.manager.acknowledge(sos_id, actor))


@router.post(
    "/{sos_id}/resolve",
    response_model=SOSEventResponse,
    summary="Resolve an SOS",
)
async def resolve(
    sos_id: str,
    request: ResolveRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SOSEventResponse:
    event = await container.manager.resolve(sos_id, request.summary, actor)
    return SOSEventResponse.from_event(event)


@router.post(
    "/{sos_id}/cancel",
    response_model=SOSEventResponse,
    summary="Cancel own SOS",
)
async def cancel(sos_id: str, actor: ActorDep, container: ContainerDep) -> SOSEventResponse:
    return SOSEventResponse.from_event(await container.manager.cancel(sos_id, actor))
