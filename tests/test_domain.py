"""Tests for domain models and enums."""

from uuid import uuid4

import pytest

from prodai_engine.domain.enums import (
    ErrorKind,
    JobStatus,
    JobType,
    OutcomeKind,
    TerminalStatusPolicy,
)
from prodai_engine.domain.models import GenerationJob, JobOutcome, WorkerOptions
from prodai_engine.errors import ProviderError


def make_job(**overrides) -> GenerationJob:
    params = {
        "id": uuid4(),
        "product_id": uuid4(),
        "job_type": JobType.IMAGE,
        "final_prompt": "A linen shirt on a hanger",
        "variation_count": 4,
        "status": JobStatus.PENDING,
    }
    params.update(overrides)
    return GenerationJob(**params)


def test_job_remaining() -> None:
    """Remaining counts units not yet completed or failed."""
    job = make_job(completed_count=1, failed_count=1)

    assert job.remaining == 2


def test_job_remaining_never_negative() -> None:
    job = make_job(variation_count=1, completed_count=2)

    assert job.remaining == 0


@pytest.mark.parametrize(
    "status,completed,failed,expected",
    [
        (JobStatus.FAILED, 0, 4, True),
        (JobStatus.FAILED, 2, 2, True),
        (JobStatus.COMPLETED, 0, 4, True),
        (JobStatus.COMPLETED, 1, 3, False),
        (JobStatus.PENDING, 0, 0, False),
        (JobStatus.RUNNING, 0, 1, False),
        (JobStatus.CANCELLED, 0, 0, False),
    ],
)
def test_job_is_retryable(status, completed, failed, expected) -> None:
    job = make_job(status=status, completed_count=completed, failed_count=failed)

    assert job.is_retryable is expected


def test_terminal_statuses() -> None:
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.FAILED.is_terminal
    assert JobStatus.CANCELLED.is_terminal
    assert not JobStatus.PENDING.is_terminal
    assert not JobStatus.RUNNING.is_terminal


@pytest.mark.parametrize(
    "policy,completed,failed,expected",
    [
        (TerminalStatusPolicy.ANY_SUCCESS, 1, 3, JobStatus.COMPLETED),
        (TerminalStatusPolicy.ANY_SUCCESS, 0, 4, JobStatus.FAILED),
        (TerminalStatusPolicy.ALL_SUCCESS, 4, 0, JobStatus.COMPLETED),
        (TerminalStatusPolicy.ALL_SUCCESS, 3, 1, JobStatus.FAILED),
        (TerminalStatusPolicy.MAJORITY, 3, 1, JobStatus.COMPLETED),
        (TerminalStatusPolicy.MAJORITY, 2, 2, JobStatus.FAILED),
        (TerminalStatusPolicy.MAJORITY, 0, 4, JobStatus.FAILED),
    ],
)
def test_terminal_policy(policy, completed, failed, expected) -> None:
    assert policy.resolve(completed, failed, 4) == expected


def test_worker_options_normalized() -> None:
    """Non-positive options fall back to the defaults."""
    options = WorkerOptions(batch_size=0, parallelism=-3, time_budget_ms=0).normalized()

    assert options == WorkerOptions()


def test_worker_options_keep_valid_values() -> None:
    options = WorkerOptions(batch_size=5, parallelism=2, time_budget_ms=1000)

    assert options.normalized() == options


def test_outcome_to_dict() -> None:
    job_id = uuid4()
    outcome = JobOutcome(
        job_id=job_id,
        kind=OutcomeKind.PARTIAL,
        status=JobStatus.RUNNING,
        processed=2,
        completed=2,
        failed=0,
    )

    assert outcome.to_dict() == {
        "job_id": str(job_id),
        "kind": "partial",
        "status": "running",
        "processed": 2,
        "completed": 2,
        "failed": 0,
        "error_message": None,
    }


@pytest.mark.parametrize(
    "kind,retryable",
    [
        (ErrorKind.RATE_LIMITED, True),
        (ErrorKind.SERVER_ERROR, True),
        (ErrorKind.ACCESS_DENIED, False),
        (ErrorKind.NOT_FOUND, False),
        (ErrorKind.CONTENT_BLOCKED, False),
        (ErrorKind.MALFORMED, False),
        (ErrorKind.UNKNOWN, False),
    ],
)
def test_provider_error_retryable(kind, retryable) -> None:
    assert ProviderError(kind, "x").retryable is retryable
