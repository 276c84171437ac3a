from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.config import request_logger
from app.core.exceptions.types import (
    AppException,
    AuthenticationException,
    DatabaseException,
    OTPException,
    RateLimitExceededException,
    ServiceUnavailableException,
    TokenInvalidException,
)


async def general_exception_handler(request: Request, exc: AppException):
    """
    Handles application exceptions by returning a JSON response.

    Client errors echo their message; server errors are reported generically so
    that internals never reach the response body.

    Args:
        request: The request object.
        exc (AppException): The exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code.
    """
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        request_logger.error(f"GeneralException: {exc}")
        detail = "An unexpected error occurred."
    else:
        request_logger.warning(f"GeneralException: {exc}")
        detail = str(exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail},
    )


async def database_exception_handler(request: Request, exc: DatabaseException):
    """
    Handles database exceptions. The cause is logged, never returned.

    Args:
        request: The request object.
        exc (DatabaseException): The database exception instance.

    Returns:
        JSONResponse: A generic response with status code 500.
    """
    request_logger.error(f"DatabaseException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": "A database error occurred."},
    )


async def service_unavailable_exception_handler(
    request: Request, exc: ServiceUnavailableException
):
    """
    Handles failures of external collaborators (broker, cache) with a 503.

    Args:
        request: The request object.
        exc (ServiceUnavailableException): The exception instance.

    Returns:
        JSONResponse: A response containing the public message and status code 503.
    """
    request_logger.error(f"ServiceUnavailableException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
):
    """
    Handles authentication exceptions by returning a JSON response.

    The body carries a machine-readable `code`; `token_expired` is the only
    code a client should answer with a token refresh.

    Args:
        request: The request object.
        exc (AuthenticationException): The authentication exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code 401.
    """
    request_logger.warning(f"AuthenticationException[{exc.code}]: {exc}")
    content = {"detail": str(exc), "code": exc.code}
    if exc.details:
        content.update(exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def token_invalid_exception_handler(
    request: Request, exc: TokenInvalidException
):
    """
    Handles tokens with a bad signature or the wrong type.

    Args:
        request: The request object.
        exc (TokenInvalidException): The exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code 403.
    """
    request_logger.warning(f"TokenInvalidException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code},
    )


async def otp_exception_handler(request: Request, exc: OTPException):
    """
    Handles OTP verification failures by returning a JSON response.

    Args:
        request: The request object.
        exc (OTPException): The OTP exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code 400.
    """
    request_logger.warning(f"{type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code},
    )


async def rate_limit_exception_handler(
    request: Request, exc: RateLimitExceededException
):
    """
    Handles rate limit exceeded exceptions by returning a JSON response.

    Args:
        request: The request object.
        exc (RateLimitExceededException): The rate limit exception instance.

    Returns:
        JSONResponse: A response with status code 429 and optional Retry-After header.
    """
    request_logger.warning(f"RateLimitExceededException: {exc}")
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
        headers=headers,
    )


exception_schema = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "description": "Internal Server Error",
        "content": {
            "application/json": {
                "example": {"detail": "An unexpected error occurred."},
            }
        },
    },
    status.HTTP_401_UNAUTHORIZED: {
        "description": "Authentication Error",
        "content": {
            "application/json": {
                "example": {"detail": "Token expired.", "code": "token_expired"},
            }
        },
    },
    status.HTTP_403_FORBIDDEN: {
        "description": "Invalid Token",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid token.", "code": "token_invalid"},
            }
        },
    },
    status.HTTP_429_TOO_MANY_REQUESTS: {
        "description": "Rate Limit Exceeded",
        "content": {
            "application/json": {
                "example": {"detail": "Rate limit exceeded. Please try again later."},
            }
        },
    },
}


__all__ = [
    "general_exception_handler",
    "database_exception_handler",
    "service_unavailable_exception_handler",
    "authentication_exception_handler",
    "token_invalid_exception_handler",
    "otp_exception_handler",
    "rate_limit_exception_handler",
    "exception_schema",
]
