"""Dispatch orchestration: reading, leasing, sending, recording and sweeping."""

from .exceptions import DispatchError, QueueFetchError
from .models import DispatchRunResult, GroupOutcome
from .outcomes import OutcomeRecorder
from .reader import QueueReader
from .runner import DispatchPipeline
from .sweeper import RetentionSweeper

__all__ = [
    "DispatchPipeline",
    "DispatchRunResult",
    "GroupOutcome",
    "QueueReader",
    "OutcomeRecorder",
    "RetentionSweeper",
    "DispatchError",
    "QueueFetchError",
]
