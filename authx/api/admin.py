"""Administrative endpoints for user management."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends

from authx.api.dependencies import api_rate_limit, get_session_service, require_admin
from authx.models.auth import (
    SessionCountResponse,
    UpdateActiveRequest,
    UpdateRoleRequest,
    UserSummary,
    user_summary,
)
from authx.models.user import User
from authx.services.session_service import SessionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(api_rate_limit)])


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: UUID,
    request: UpdateRoleRequest,
    admin: User = Depends(require_admin),
    sessions: SessionService = Depends(get_session_service),
) -> UserSummary:
    """Change a user's role.

    Outstanding access tokens keep the old role until they expire; the
    next refresh picks up the new one.
    """
    user = await sessions.update_role(user_id, request.role)
    logger.info(
        "user_role_updated",
        admin_id=str(admin.id),
        user_id=str(user_id),
        role=request.role.value,
    )
    return user_summary(user)


@router.patch("/users/{user_id}/active")
async def set_user_active(
    user_id: UUID,
    request: UpdateActiveRequest,
    admin: User = Depends(require_admin),
    sessions: SessionService = Depends(get_session_service),
) -> UserSummary:
    user = await sessions.set_active(user_id, request.is_active)
    logger.info(
        "user_active_updated",
        admin_id=str(admin.id),
        user_id=str(user_id),
        is_active=request.is_active,
    )
    return user_summary(user)


@router.get("/users/{user_id}/sessions")
async def count_user_sessions(
    user_id: UUID,
    admin: User = Depends(require_admin),
    sessions: SessionService = Depends(get_session_service),
) -> SessionCountResponse:
    """Number of live (unrevoked, unexpired) refresh tokens of a user."""
    await sessions.get_user(user_id)
    count = await sessions.active_session_count(user_id)
    return SessionCountResponse(user_id=user_id, active_sessions=count)
