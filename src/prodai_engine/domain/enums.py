"""Domain enumerations."""

from enum import StrEnum


class JobStatus(StrEnum):
    """Status of a generation job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobType(StrEnum):
    """What a generation job produces."""

    IMAGE = "image"
    VIDEO = "video"


class MediaType(StrEnum):
    """Media type of a generated unit."""

    IMAGE = "image"
    VIDEO = "video"


class ApprovalStatus(StrEnum):
    """Downstream review state of a generated unit."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ErrorKind(StrEnum):
    """Classification of a provider failure."""

    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    CONTENT_BLOCKED = "content_blocked"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


class OutcomeKind(StrEnum):
    """How a single worker invocation ended for a job."""

    NOOP = "noop"  # Job was already terminal
    SKIPPED = "skipped"  # Another invocation holds the claim
    PARTIAL = "partial"  # Time budget ran out, job stays running
    TERMINAL = "terminal"  # Job reached completed or failed
    CANCELLED = "cancelled"  # Job was cancelled mid-run
    FATAL = "fatal"  # Request could not be built, job failed


class TerminalStatusPolicy(StrEnum):
    """Rule for resolving a fully accounted job to completed or failed."""

    ANY_SUCCESS = "any_success"
    ALL_SUCCESS = "all_success"
    MAJORITY = "majority"

    def resolve(self, completed: int, failed: int, variation_count: int) -> JobStatus:
        """Pick the terminal status for a job whose units are all accounted for."""
        if completed <= 0:
            return JobStatus.FAILED
        if self is TerminalStatusPolicy.ALL_SUCCESS:
            return JobStatus.COMPLETED if failed == 0 else JobStatus.FAILED
        if self is TerminalStatusPolicy.MAJORITY:
            return JobStatus.COMPLETED if completed * 2 > variation_count else JobStatus.FAILED
        return JobStatus.COMPLETED
