from app.infrastructure.scheduler.jobs import (
    otp_sweep_job,
    refresh_token_cleanup_job,
    session_expiry_job,
)
from app.infrastructure.scheduler.main import initialize_scheduler, scheduler

__all__ = [
    "scheduler",
    "initialize_scheduler",
    "otp_sweep_job",
    "session_expiry_job",
    "refresh_token_cleanup_job",
]
