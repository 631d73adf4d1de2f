"""Exception handlers mapping domain errors to JSON responses."""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from authx.errors import AuthError, ThrottledRequest, TokenReuseDetected, WeakCredential

logger = structlog.get_logger(__name__)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def error_response(
    request: Request,
    status_code: int,
    error: str,
    detail: str,
    extra: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    """Build the error body shared by every failure response."""
    correlation_id = _correlation_id(request)
    # X-RateLimit-* headers of a window already counted for this request
    rate_limit_headers = getattr(request.state, "rate_limit_headers", {})
    content = {"error": error, "detail": detail, "correlation_id": correlation_id}
    if extra:
        content.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={
            "X-Correlation-Id": correlation_id,
            **rate_limit_headers,
            **(headers or {}),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for AuthError and request validation errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        extra: dict = {}
        headers: dict = {}

        if isinstance(exc, WeakCredential):
            extra["violations"] = exc.violations
        elif isinstance(exc, ThrottledRequest):
            extra["retry_after"] = exc.retry_after
            headers["Retry-After"] = str(exc.retry_after)
        elif isinstance(exc, TokenReuseDetected):
            extra["security_breach"] = True
            logger.warning(
                "security_breach_token_reuse",
                path=request.url.path,
                client_ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )

        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            "auth_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.code,
        )
        return error_response(request, exc.status_code, exc.code, exc.message, extra, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Return 400 with the first failing field."""
        errors = exc.errors()
        if errors:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
            message = first_error.get("msg", "Validation failed")
            detail = f"Field '{field}': {message}"
        else:
            detail = "Request validation failed"

        logger.warning("validation_error", path=request.url.path, detail=detail)
        return error_response(request, 400, "VALIDATION_ERROR", detail)
