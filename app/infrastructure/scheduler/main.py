"""
Scheduler module for the RuraMed auth service.

Standalone Usage:
    python -m app.infrastructure.scheduler.main
    python manage.py runscheduler
"""

import asyncio
import signal
from datetime import timezone

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import scheduler_logger, settings
from app.core.db import dispose_db

REFRESH_TOKEN_CLEANUP_INTERVAL_MINUTES = 60


def _sync_database_url() -> str:
    """Convert the async DATABASE_URL to a synchronous one for APScheduler.

    Only the driver part of the scheme is changed, so the rest of the URL
    (including any percent-encoded password) is preserved exactly.
    """
    scheme, rest = settings.DATABASE_URL.split("://", 1)
    for driver in ("+asyncpg", "+aiosqlite"):
        scheme = scheme.replace(driver, "")
    return f"{scheme}://{rest}"


scheduler = AsyncIOScheduler(
    jobstores={
        "housekeeping": SQLAlchemyJobStore(
            url=_sync_database_url(),
            tablename="scheduler_housekeeping_jobs",
        ),
    },
    timezone=timezone.utc,
)


def _schedule_interval_job(func, job_id: str, interval_minutes: int) -> None:
    scheduler_logger.info(
        f"Scheduling '{job_id}' to run every {interval_minutes} minutes"
    )
    scheduler.add_job(
        func,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=timezone.utc),
        replace_existing=True,
        id=job_id,
        jobstore="housekeeping",
        misfire_grace_time=60 * 5,  # 5 minutes grace time
        coalesce=True,
    )
    scheduler_logger.info(f"'{job_id}' scheduled successfully.")


def schedule_otp_sweep_job(interval_minutes: int | None = None) -> None:
    from app.infrastructure.scheduler.jobs import otp_sweep_job

    _schedule_interval_job(
        otp_sweep_job,
        "otp_sweep_job",
        interval_minutes or settings.OTP_SWEEP_INTERVAL_MINUTES,
    )


def schedule_session_expiry_job(interval_minutes: int | None = None) -> None:
    from app.infrastructure.scheduler.jobs import session_expiry_job

    _schedule_interval_job(
        session_expiry_job,
        "session_expiry_job",
        interval_minutes or settings.SESSION_SWEEP_INTERVAL_MINUTES,
    )


def schedule_refresh_token_cleanup_job(
    interval_minutes: int = REFRESH_TOKEN_CLEANUP_INTERVAL_MINUTES,
) -> None:
    from app.infrastructure.scheduler.jobs import refresh_token_cleanup_job

    _schedule_interval_job(
        refresh_token_cleanup_job, "refresh_token_cleanup_job", interval_minutes
    )


def initialize_scheduler() -> None:
    """
    Initialize the scheduler by scheduling all required jobs.

    This function should be called during application startup to ensure
    that all scheduled tasks are registered and ready to run.
    """
    schedule_otp_sweep_job()
    schedule_session_expiry_job()
    schedule_refresh_token_cleanup_job()


async def main() -> None:
    """
    Main entry point for standalone scheduler execution.

    Starts the scheduler and runs until interrupted.
    """
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        scheduler_logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    scheduler_logger.info("Starting standalone scheduler...")

    try:
        scheduler.start()
        scheduler_logger.info("Scheduler started successfully. Waiting for jobs...")
        initialize_scheduler()
        await shutdown_event.wait()

    except Exception as e:
        scheduler_logger.exception(f"Scheduler error: {e}")
        raise

    finally:
        scheduler_logger.info("Shutting down scheduler...")

        if scheduler.running:
            scheduler.shutdown(wait=True)
            scheduler_logger.info("Scheduler stopped successfully.")

        await dispose_db()
        scheduler_logger.info("Scheduler shutdown complete.")


if __name__ == "__main__":
    asyncio.run(main())
