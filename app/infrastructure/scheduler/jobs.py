"""
Periodic housekeeping jobs.

Each job opens its own transaction; the services are called with
``commit_self=False`` so the whole sweep commits or rolls back at once.
"""

from app.core.config import scheduler_logger
from app.core.db import AsyncSessionLocal
from app.core.services.otp import OTPService
from app.core.services.session import SessionService
from app.core.services.token import TokenService


async def otp_sweep_job() -> int:
    """
    Delete OTP challenges that can no longer be used: unverified ones past
    their expiry and verified ones past the grace window.
    """
    async with AsyncSessionLocal.begin() as session:
        scheduler_logger.info("Starting OTP challenge sweep")
        deleted = await OTPService.sweep_expired(session, commit_self=False)
    scheduler_logger.info(f"Completed OTP challenge sweep. Deleted {deleted} record(s).")
    return deleted


async def session_expiry_job() -> int:
    """Mark active sessions past their expiry as logged out with reason ``expired``."""
    async with AsyncSessionLocal.begin() as session:
        scheduler_logger.info("Starting session expiry sweep")
        expired = await SessionService.expire_stale(session, commit_self=False)
    scheduler_logger.info(f"Completed session expiry sweep. Expired {expired} session(s).")
    return expired


async def refresh_token_cleanup_job() -> int:
    async with AsyncSessionLocal.begin() as session:
        scheduler_logger.info("Starting refresh token cleanup")
        removed = await TokenService.cleanup_expired(session, commit_self=False)
    scheduler_logger.info(
        f"Completed refresh token cleanup. Removed {removed} record(s)."
    )
    return removed
