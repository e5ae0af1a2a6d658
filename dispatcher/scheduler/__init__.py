"""Scheduling module for periodic execution of the dispatch pipeline."""

from .service import JOB_ID, SchedulerService

__all__ = [
    "JOB_ID",
    "SchedulerService",
]
