"""FastAPI dependencies for authentication and authorization."""

from typing import Callable, Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authx.errors import AuthenticationRequired, InactiveAccount, PermissionDenied
from authx.models.auth import AccessClaims
from authx.models.user import Role, User
from authx.services.session_service import SessionService
from authx.services.throttle_service import RateLimitStatus, ThrottleService

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def get_throttle_service(request: Request) -> ThrottleService:
    return request.app.state.throttle_service


def get_client_ip(request: Request) -> str:
    """Network identity used as the throttling key."""
    return request.client.host if request.client else "unknown"


def apply_rate_limit(request: Request, response: Response, limit: RateLimitStatus) -> None:
    """Set X-RateLimit-* headers on the response.

    The headers are also kept on the request state so an error raised later
    in the handler still reports them.
    """
    headers = limit.headers()
    response.headers.update(headers)
    request.state.rate_limit_headers = headers


async def get_optional_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    sessions: SessionService = Depends(get_session_service),
) -> Optional[AccessClaims]:
    """Decode the Bearer access token if one was sent.

    A present but invalid token is still an error; only a missing header
    yields None.
    """
    if credentials is None:
        return None
    return sessions.authenticate(credentials.credentials)


async def get_current_claims(
    claims: Optional[AccessClaims] = Depends(get_optional_claims),
) -> AccessClaims:
    """Require a valid Bearer access token.

    Raises:
        AuthenticationRequired: If no token was sent
    """
    if claims is None:
        raise AuthenticationRequired()
    return claims


async def get_current_user(
    claims: AccessClaims = Depends(get_current_claims),
    sessions: SessionService = Depends(get_session_service),
) -> User:
    """Load the authenticated user and make sure the account is still active."""
    user = await sessions.get_user(claims.user_id)
    if not user.is_active:
        raise InactiveAccount()
    return user


def require_roles(*roles: Role) -> Callable:
    """Build a dependency allowing only users whose current role is in ``roles``."""
    allowed = set(roles)

    async def _require(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise PermissionDenied()
        return current_user

    return _require


def rate_limited(policy_name: str) -> Callable:
    """Build a dependency counting each request against a fixed-window policy."""

    async def _check(
        request: Request,
        response: Response,
        client_ip: str = Depends(get_client_ip),
        throttle: ThrottleService = Depends(get_throttle_service),
    ) -> None:
        limit = await throttle.check_rate_limit(policy_name, client_ip)
        apply_rate_limit(request, response, limit)

    return _check


require_admin = require_roles(Role.ADMIN)
api_rate_limit = rate_limited("api")
