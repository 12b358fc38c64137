"""
Safe Walk Endpoints

Student walk lifecycle plus responder monitoring, escort assignment
and messaging.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from safecampus.api.deps import ActorDep, ContainerDep, StaffDep
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.walk_status import WalkStatus
from safecampus.domain.models.geo import GeoPoint, PositionFix
from safecampus.domain.models.safe_walk import SafeWalkSession, WalkPlace

router = APIRouter()


# Request/Response Models

class PlaceModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    name: str = Field(default="", max_length=200)

    def to_place(self) -> WalkPlace:
        return WalkPlace(lat=self.lat, lng=self.lng, name=self.name)


class StartWalkRequest(BaseModel):
    start_location: PlaceModel
    destination: PlaceModel
    expected_duration: int = Field(..., gt=0, le=240, description="Minutes")
    note: Optional[str] = Field(default=None, max_length=1000)


class StatusRequest(BaseModel):
    status: WalkStatus
    note: Optional[str] = Field(default=None, max_length=1000)


class NoteRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=1000)


class EscalateRequest(BaseModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class PositionRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[float] = None
    heading: Optional[float] = None
    accuracy: Optional[float] = Field(default=None, ge=0)


class AssignEscortRequest(BaseModel):
    escort_id: str = Field(..., min_length=1, max_length=128)
    escort_name: str = Field(..., min_length=1, max_length=200)


class MessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class WalkTimelineEntryResponse(BaseModel):
    time: datetime
    type: str
    details: str
    by: str


class SafeWalkResponse(BaseModel):
    id: str
    user_id: str
    user_name: str
    hostel_id: Optional[str] = None
    start_location: dict
    destination: dict
    status: str
    expected_duration: int
    expected_arrival: datetime
    note: Optional[str] = None
    start_time: datetime
    escort_requested: bool
    assigned_escort: Optional[dict] = None
    last_distance: Optional[float] = None
    linked_sos_id: Optional[str] = None
    timeline: list[WalkTimelineEntryResponse]

    @classmethod
    def from_walk(cls, walk: SafeWalkSession) -> "SafeWalkResponse":
        return cls(
            id=walk.id,
            user_id=walk.user_id,
            user_name=walk.user_name,
            hostel_id=walk.hostel_id,
            start_location=walk.start_location.to_dict(),
            destination=walk.destination.to_dict(),
            status=walk.status.value,
            expected_duration=walk.expected_duration,
            expected_arrival=walk.expected_arrival,
            note=walk.note,
            start_time=walk.start_time,
            escort_requested=walk.escort_requested,
            assigned_escort=walk.assigned_escort.to_dict() if walk.assigned_escort else None,
            last_distance=walk.last_distance,
            linked_sos_id=walk.linked_sos_id,
            timeline=[
                WalkTimelineEntryResponse(time=e.time, type=e.kind.value, details=e.details, by=e.by)
                for e in walk.timeline
            ],
        )


class EscalationResponse(BaseModel):
    walk: SafeWalkResponse
    sos_id: str
    sos_token: str


class PositionReportResponse(BaseModel):
    walk: SafeWalkResponse
    distance_to_destination: float
    off_route: bool
    flagged_off_route: bool
    flagged_delayed: bool


# Endpoints

@router.post(
    "",
    response_model=SafeWalkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a safe walk",
)
async def start_walk(request: StartWalkRequest, actor: ActorDep, container: ContainerDep) -> SafeWalkResponse:
    walk = await container.safe_walks.start(
        actor,
        request.start_location.to_place(),
        request.destination.to_place(),
        expected_duration=request.expected_duration,
        note=request.note,
    )
    return SafeWalkResponse.from_walk(walk)


@router.get("/active", response_model=list[SafeWalkResponse], summary="List monitored walks")
async def list_active(
    actor: StaffDep,
    container: ContainerDep,
    hostel_id: Optional[str] = Query(default=None),
) -> list[SafeWalkResponse]:
    if hostel_id is None and actor.role is ActorRole.WARDEN:
        hostel_id = actor.hostel_id
    walks = await container.safe_walks.list_active(hostel_id=hostel_id)
    return [SafeWalkResponse.from_walk(walk) for walk in walks]


@router.get("/mine", response_model=Optional[SafeWalkResponse], summary="Caller's current walk")
async def my_walk(actor: ActorDep, container: ContainerDep) -> Optional[SafeWalkResponse]:
    walk = await container.safe_walks.find_active_walk(actor.id)
    return SafeWalkResponse.from_walk(walk) if walk else None


@router.get("/{walk_id}", response_model=SafeWalkResponse, summary="Get one walk")
async def get_walk(walk_id: str, actor: ActorDep, container: ContainerDep) -> SafeWalkResponse:
    return SafeWalkResponse.from_walk(await container.safe_walks.get_walk(walk_id, actor))


@router.post("/{walk_id}/status", response_model=SafeWalkResponse, summary="Change walk status")
async def update_status(
    walk_id: str,
    request: StatusRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SafeWalkResponse:
    walk = await container.safe_walks.update_status(walk_id, request.status, actor, note=request.note)
    return SafeWalkResponse.from_walk(walk)


@router.post(
    "/{walk_id}/escalate",
    response_model=EscalationResponse,
    summary="Escalate a walk into an SOS",
    responses={409: {"description": "The student already has an active SOS"}},
)
async def escalate(
    walk_id: str,
    request: EscalateRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> EscalationResponse:
    location = None
    if request.latitude is not None and request.longitude is not None:
        location = GeoPoint(lat=request.latitude, lng=request.longitude)
    escalation = await container.safe_walks.escalate(walk_id, actor, location=location)
    return EscalationResponse(
        walk=SafeWalkResponse.from_walk(escalation.walk),
        sos_id=escalation.trigger.sos_id,
        sos_token=escalation.trigger.sos_token,
    )


@router.post("/{walk_id}/positions", response_model=PositionReportResponse, summary="Record a position fix")
async def record_position(
    walk_id: str,
    request: PositionRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> PositionReportResponse:
    report = await container.safe_walks.record_position(
        walk_id,
        PositionFix(
            latitude=request.latitude,
            longitude=request.longitude,
            accuracy=request.accuracy,
            heading=request.heading,
            speed=request.speed,
        ),
        actor=actor,
    )
    return PositionReportResponse(
        walk=SafeWalkResponse.from_walk(report.walk),
        distance_to_destination=report.route.current_distance,
        off_route=report.route.is_off_route,
        flagged_off_route=report.flagged_off_route,
        flagged_delayed=report.flagged_delayed,
    )


@router.post("/{walk_id}/escort-request", response_model=SafeWalkResponse, summary="Request an escort")
async def request_escort(walk_id: str, actor: ActorDep, container: ContainerDep) -> SafeWalkResponse:
    return SafeWalkResponse.from_walk(await container.safe_walks.request_escort(walk_id, actor))


@router.post("/{walk_id}/escort", response_model=SafeWalkResponse, summary="Assign an escort (security)")
async def assign_escort(
    walk_id: str,
    request: AssignEscortRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SafeWalkResponse:
    walk = await container.safe_walks.assign_escort(walk_id, actor, request.escort_id, request.escort_name)
    return SafeWalkResponse.from_walk(walk)


@router.post("/{walk_id}/messages", response_model=SafeWalkResponse, summary="Message the walking student")
async def send_message(
    walk_id: str,
    request: MessageRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SafeWalkResponse:
    return SafeWalkResponse.from_walk(await container.safe_walks.send_message(walk_id, actor, request.message))


@router.post("/{walk_id}/complete", response_model=SafeWalkResponse, summary="Complete a walk")
async def complete(
    walk_id: str,
    request: NoteRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SafeWalkResponse:
    return SafeWalkResponse.from_walk(await container.safe_walks.complete(walk_id, actor, note=request.note))


@router.post("/{walk_id}/cancel", response_model=SafeWalkResponse, summary="Cancel a walk")
async def cancel(
    walk_id: str,
    request: NoteRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> SafeWalkResponse:
    return SafeWalkResponse.from_walk(await container.safe_walks.cancel(walk_id, actor, note=request.note))
