"""
API Dependencies

Request-scoped access to the service container and the authenticated
actor.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from safecampus.config.logging_config import bind_actor, get_logger
from safecampus.domain.models.actor import Actor
from safecampus.infrastructure.identity.verifier import AuthenticationError
from safecampus.infrastructure.monitoring import set_actor_context
from safecampus.services.container import ServiceContainer

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    """Container attached to the application at startup."""
    container: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container not initialized")
    return container


async def get_current_actor(
    request: Request,
    container: Annotated[ServiceContainer, Depends(get_container)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Actor:
    """
    Verify the bearer credential.

    Raises:
        HTTPException: 401 when missing or rejected
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        actor = await container.verifier.verify(credentials.credentials)
    except AuthenticationError as e:
        logger.info("Bearer credential rejected", path=request.url.path, reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    request.state.user_id = actor.id
    set_actor_context(actor.id, actor.role.value)
    bind_actor(actor.id, actor.role.value)
    return actor


async def require_staff(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
    """Security, warden or admin."""
    if not actor.role.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Responder access required")
    return actor


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
ActorDep = Annotated[Actor, Depends(get_current_actor)]
StaffDep = Annotated[Actor, Depends(require_staff)]
