"""Authentication API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from authx.api.dependencies import (
    api_rate_limit,
    apply_rate_limit,
    get_client_ip,
    get_current_user,
    get_optional_claims,
    get_session_service,
    get_throttle_service,
    rate_limited,
)
from authx.errors import MissingToken
from authx.models.auth import (
    AccessClaims,
    AuthResponse,
    AuthResult,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserSummary,
    user_summary,
)
from authx.models.user import User
from authx.services.session_service import SessionService
from authx.services.throttle_service import ThrottleService, login_client_key


router = APIRouter(prefix="/auth", tags=["Auth"])


def _auth_response(result: AuthResult, sessions: SessionService) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type="bearer",
        expires_in=sessions.access_token_expires_in,
        user=user_summary(result.user),
    )


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("register"))],
)
async def register(
    request: RegisterRequest,
    sessions: SessionService = Depends(get_session_service),
) -> AuthResponse:
    """Create an account and return its first token pair.

    Raises:
        409 USER_EXISTS, 400 WEAK_PASSWORD (with violations), 429
    """
    result = await sessions.register(request.email, request.password)
    return _auth_response(result, sessions)


@router.post("/login")
async def login(
    request: LoginRequest,
    http_request: Request,
    response: Response,
    client_ip: str = Depends(get_client_ip),
    sessions: SessionService = Depends(get_session_service),
    throttle: ThrottleService = Depends(get_throttle_service),
) -> AuthResponse:
    """Login with email and password.

    The progressive delay is keyed on the client address; the fixed window
    on address plus email.

    Raises:
        401 INVALID_CREDENTIALS / USER_INACTIVE, 429 with Retry-After
    """
    await throttle.check_brute_force(client_ip)
    limit = await throttle.check_rate_limit("login", login_client_key(client_ip, request.email))
    apply_rate_limit(http_request, response, limit)

    result = await sessions.login(request.email, request.password, client_ip)
    return _auth_response(result, sessions)


@router.post("/refresh", dependencies=[Depends(rate_limited("refresh"))])
async def refresh(
    request: RefreshRequest,
    sessions: SessionService = Depends(get_session_service),
) -> TokenPairResponse:
    """Exchange a refresh token for a new pair (token rotation).

    Raises:
        401 TOKEN_REUSE when an already-rotated token is presented; every
        session of its family has been revoked by then. 401 INVALID_TOKEN,
        TOKEN_EXPIRED or TOKEN_REVOKED otherwise.
    """
    pair = await sessions.refresh(request.refresh_token)
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type="bearer",
        expires_in=sessions.access_token_expires_in,
    )


@router.post("/logout")
async def logout(
    request: LogoutRequest,
    claims: Optional[AccessClaims] = Depends(get_optional_claims),
    sessions: SessionService = Depends(get_session_service),
) -> LogoutResponse:
    """Revoke the given refresh token, or all of the caller's sessions.

    Raises:
        401 AUTH_REQUIRED for all_devices without a Bearer access token,
        400 MISSING_TOKEN for single-device logout without a refresh token
    """
    if not request.all_devices and not request.refresh_token:
        raise MissingToken("Refresh token required for logout")

    revoked = await sessions.logout(
        refresh_token=request.refresh_token,
        all_devices=request.all_devices,
        current_user=claims,
    )
    return LogoutResponse(
        success=True,
        message="Logged out successfully" if revoked else "No active session to log out",
    )


@router.get("/me", dependencies=[Depends(api_rate_limit)])
async def get_me(current_user: User = Depends(get_current_user)) -> UserSummary:
    """Get current authenticated user info."""
    return user_summary(current_user)
