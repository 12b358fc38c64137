"""
User Endpoints

Device push token registration for SOS alert delivery.
"""

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from safecampus.api.deps import ActorDep, ContainerDep

router = APIRouter()


class PushTokenRequest(BaseModel):
    push_token: str = Field(..., min_length=1, max_length=4096)


@router.put(
    "/me/push-token",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Register this device for push alerts",
)
async def register_push_token(request: PushTokenRequest, actor: ActorDep, container: ContainerDep) -> None:
    await container.directory.register_push_token(actor.id, request.push_token)
