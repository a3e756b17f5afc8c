"""Background job scheduler."""

from .registry import get_job, register_job
from .scheduler import (
    JobScheduler,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)


__all__ = [
    "JobScheduler",
    "get_job",
    "get_scheduler",
    "register_job",
    "start_scheduler",
    "stop_scheduler",
]
