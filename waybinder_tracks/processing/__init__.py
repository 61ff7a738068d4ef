"""Off-thread processing of uploaded track files.

Exports the processor, its job handle and the message types a caller sees.
"""

from .context import ProcessingContext
from .job import MessageCallback, ProcessingJob
from .messages import (
    ALL_LEVELS,
    CompletedMessage,
    ErrorMessage,
    ProcessingRequest,
    ProcessingResult,
    ProcessingState,
    ProgressMessage,
    WorkerMessage,
)
from .orchestrator import TrackProcessor

__all__ = [
    "ALL_LEVELS",
    "CompletedMessage",
    "ErrorMessage",
    "MessageCallback",
    "ProcessingContext",
    "ProcessingJob",
    "ProcessingRequest",
    "ProcessingResult",
    "ProcessingState",
    "ProgressMessage",
    "TrackProcessor",
    "WorkerMessage",
]
