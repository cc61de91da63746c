"""Domain models and enumerations."""

from prodai_engine.domain.enums import (
    ApprovalStatus,
    ErrorKind,
    JobStatus,
    JobType,
    MediaType,
    OutcomeKind,
    TerminalStatusPolicy,
)
from prodai_engine.domain.models import (
    GeneratedUnit,
    GenerationJob,
    JobOutcome,
    NewGenerationJob,
    ReferenceImage,
    WorkerOptions,
)

__all__ = [
    "ApprovalStatus",
    "ErrorKind",
    "GeneratedUnit",
    "GenerationJob",
    "JobOutcome",
    "JobStatus",
    "JobType",
    "MediaType",
    "NewGenerationJob",
    "OutcomeKind",
    "ReferenceImage",
    "TerminalStatusPolicy",
    "WorkerOptions",
]
