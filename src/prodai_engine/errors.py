"""Exception hierarchy for the generation pipeline."""

from prodai_engine.domain.enums import ErrorKind


class ProdaiError(Exception):
    """Base class for all engine errors."""


class JobNotFoundError(ProdaiError):
    """The requested generation job does not exist."""

    def __init__(self, job_id: object) -> None:
        super().__init__(f"Generation job not found: {job_id}")
        self.job_id = job_id


class RequestBuildError(ProdaiError):
    """A job's parameters cannot be turned into a provider request.

    Fatal to the whole job: no unit of it can succeed.
    """


class ProviderError(ProdaiError):
    """A classified failure from a generation provider."""

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR)

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value!r}, message={str(self)!r})"


class StorageError(ProdaiError):
    """An object storage operation failed."""


class UnitConflictError(ProdaiError):
    """A unit with the same (job_id, variation_index) already exists."""


class ImageProcessingError(ProdaiError):
    """An image could not be decoded or re-encoded."""
