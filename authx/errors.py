"""Domain errors for credential, token and throttling failures.

Every failure the services can produce is one of the classes below. Each
carries a stable ``code`` and the HTTP ``status_code`` the transport layer
answers with, so callers can handle the whole set exhaustively.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all authentication-domain errors."""

    code: str = "AUTH_ERROR"
    status_code: int = 400
    default_message: str = "Authentication error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(AuthError):
    """Requested user does not exist."""

    code = "USER_NOT_FOUND"
    status_code = 404
    default_message = "User not found"


class AlreadyExists(AuthError):
    """Normalized email is already registered."""

    code = "USER_EXISTS"
    status_code = 409
    default_message = "User with this email already exists"


class InvalidCredentials(AuthError):
    """Generic login failure.

    Raised for both an unknown email and a wrong password so the two cases
    cannot be told apart.
    """

    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Invalid email or password"


class InactiveAccount(AuthError):
    """Account exists but has been deactivated."""

    code = "USER_INACTIVE"
    status_code = 401
    default_message = "User account is inactive"


class WeakCredential(AuthError):
    """Password failed one or more strength rules."""

    code = "WEAK_PASSWORD"
    status_code = 400
    default_message = "Password does not meet requirements"

    def __init__(self, violations: list[str], message: Optional[str] = None) -> None:
        super().__init__(message)
        self.violations = list(violations)


class MalformedToken(AuthError):
    """Bearer token failed signature, structure or type checks."""

    code = "INVALID_TOKEN"
    status_code = 401
    default_message = "Invalid or malformed token"


class MissingToken(AuthError):
    code = "MISSING_TOKEN"
    status_code = 400
    default_message = "Refresh token is required"


class TokenNotFound(AuthError):
    """Well-formed refresh token with no stored record."""

    code = "INVALID_TOKEN"
    status_code = 401
    default_message = "Token not found"


class ExpiredToken(AuthError):
    code = "TOKEN_EXPIRED"
    status_code = 401
    default_message = "Token has expired"


class RevokedToken(AuthError):
    """Refresh token was ended by an intentional logout."""

    code = "TOKEN_REVOKED"
    status_code = 401
    default_message = "Token has been revoked"


class TokenReuseDetected(AuthError):
    """A dead refresh token was presented again.

    By the time this is raised every record of the token's family has been
    revoked.
    """

    code = "TOKEN_REUSE"
    status_code = 401
    default_message = "Token reuse detected. All sessions have been invalidated for security."
    security_breach = True

    def __init__(self, family_id: Optional[str] = None, revoked_count: int = 0) -> None:
        super().__init__()
        self.family_id = family_id
        self.revoked_count = revoked_count


class ThrottledRequest(AuthError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.retry_after = max(0, int(retry_after))


class StoreUnavailable(AuthError):
    """A backing store could not be reached.

    The throttle path recovers from this by failing open; on the durable
    paths it is fatal for the operation.
    """

    code = "STORE_UNAVAILABLE"
    status_code = 503
    default_message = "Storage backend unavailable"


class AuthenticationRequired(AuthError):
    code = "AUTH_REQUIRED"
    status_code = 401
    default_message = "Authentication required"


class PermissionDenied(AuthError):
    code = "ACCESS_DENIED"
    status_code = 403
    default_message = "Access denied. Insufficient permissions."
