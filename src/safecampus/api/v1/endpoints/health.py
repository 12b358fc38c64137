"""
Health endpoints.

``/health`` and ``/health/live`` only prove the process answers.
``/health/ready`` returns 503 while the document store is unreachable so
the orchestrator stops routing SOS triggers to this instance.
"""

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from safecampus import __version__
from safecampus.api.deps import ContainerDep

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str


class ReadinessResponse(BaseModel):
    ready: bool
    components: dict[str, bool]
    backends: dict[str, str] = Field(default_factory=dict)


def _health_status(container, state: str) -> HealthResponse:
    return HealthResponse(status=state, version=__version__, environment=container.settings.env)


@router.get("", response_model=HealthResponse, summary="Health check")
async def health_check(container: ContainerDep) -> HealthResponse:
    return _health_status(container, "healthy")


@router.get("/live", response_model=HealthResponse, summary="Liveness check")
async def liveness_check(container: ContainerDep) -> HealthResponse:
    return _health_status(container, "alive")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(container: ContainerDep, response: Response) -> ReadinessResponse:
    """Ready once the document store answers; SOS events cannot be created without it."""
    components = await container.health_check()
    settings = container.settings
    ready = components.get("document_store", False)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        ready=ready,
        components=components,
        backends={
            "document_store": settings.document_store_backend,
            "location_store": settings.location_store_backend,
            "push_provider": container.push_sender.provider_name,
        },
    )
