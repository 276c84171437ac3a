from app.core.services.auth import AuthService
from app.core.services.base import SingletonService
from app.core.services.brevo import BrevoService
from app.core.services.cascade import InvalidationCascade
from app.core.services.email_manager import EmailManagerService
from app.core.services.otp import OTPService
from app.core.services.rate_limit import (
    MemoryBackend,
    RateLimitBackend,
    RateLimiter,
    RateLimitResult,
    RedisBackend,
    rate_limit_by_identifier,
    rate_limit_by_ip,
)
from app.core.services.redis_service import RedisService
from app.core.services.session import DeviceInfo, SessionService, get_device_info
from app.core.services.template import Renderer
from app.core.services.token import AccessTokenResult, TokenPair, TokenService
from app.core.services.user_cache import UserSnapshot, UserSnapshotCache

__all__ = [
    # Core services
    "AuthService",
    "InvalidationCascade",
    "OTPService",
    "SessionService",
    "TokenService",
    "SingletonService",
    "BrevoService",
    "EmailManagerService",
    "RedisService",
    "Renderer",
    # Value types
    "AccessTokenResult",
    "DeviceInfo",
    "TokenPair",
    "UserSnapshot",
    "UserSnapshotCache",
    "get_device_info",
    # Rate limiting
    "MemoryBackend",
    "RateLimitBackend",
    "RateLimiter",
    "RateLimitResult",
    "RedisBackend",
    "rate_limit_by_identifier",
    "rate_limit_by_ip",
]
