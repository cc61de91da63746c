"""Tests for the Celery generation tasks."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from prodai_engine.domain.enums import JobStatus, OutcomeKind
from prodai_engine.domain.models import JobOutcome, WorkerOptions
from prodai_engine.errors import JobNotFoundError
from prodai_engine.jobs.generation_tasks import (
    compress_references_task,
    dispatch_job,
    process_due_jobs_task,
    process_job_task,
    resolve_options,
)
from prodai_engine.services.reference_compression import CompressionSummary
from prodai_engine.worker import celery_app


def mock_worker(**methods) -> MagicMock:
    worker = MagicMock()
    for name, value in methods.items():
        setattr(worker, name, value)
    return worker


class TestResolveOptions:
    """Tests for resolve_options."""

    def test_defaults_from_settings(self):
        options = resolve_options()

        assert options.batch_size >= 1
        assert options.parallelism >= 1
        assert options.time_budget_ms > 0

    def test_explicit_values_win(self):
        assert resolve_options(4, 2, 20000) == WorkerOptions(
            batch_size=4, parallelism=2, time_budget_ms=20000
        )


class TestProcessJobTask:
    """Tests for generation.process_job."""

    def test_returns_outcome(self):
        job_id = uuid4()
        outcome = JobOutcome(
            job_id=job_id,
            kind=OutcomeKind.TERMINAL,
            status=JobStatus.COMPLETED,
            processed=3,
            completed=3,
        )
        worker = mock_worker(process_job=AsyncMock(return_value=outcome))

        with patch(
            "prodai_engine.jobs.generation_tasks.build_generation_worker", return_value=worker
        ):
            result = process_job_task.apply(args=[str(job_id)], kwargs={"batch_size": 3}).get()

        assert result["success"] is True
        assert result["kind"] == "terminal"
        assert result["completed"] == 3
        called_id, options = worker.process_job.await_args.args
        assert called_id == job_id
        assert options.batch_size == 3

    def test_missing_job_is_not_retried(self):
        job_id = uuid4()
        worker = mock_worker(process_job=AsyncMock(side_effect=JobNotFoundError(job_id)))

        with patch(
            "prodai_engine.jobs.generation_tasks.build_generation_worker", return_value=worker
        ):
            result = process_job_task.apply(args=[str(job_id)]).get()

        assert result["success"] is False
        assert str(job_id) in result["error"]
        worker.process_job.assert_awaited_once()


class TestProcessDueJobsTask:
    """Tests for generation.process_due_jobs."""

    def test_reports_each_outcome(self):
        outcomes = [
            JobOutcome(job_id=uuid4(), kind=OutcomeKind.PARTIAL, status=JobStatus.RUNNING),
            JobOutcome(job_id=uuid4(), kind=OutcomeKind.SKIPPED, status=JobStatus.RUNNING),
        ]
        worker = mock_worker(process_due_jobs=AsyncMock(return_value=outcomes))

        with patch(
            "prodai_engine.jobs.generation_tasks.build_generation_worker", return_value=worker
        ):
            result = process_due_jobs_task.apply(kwargs={"jobs": 4, "video_jobs": 2}).get()

        assert result["processed"] == 2
        assert [r["kind"] for r in result["results"]] == ["partial", "skipped"]
        kwargs = worker.process_due_jobs.await_args.kwargs
        assert kwargs["jobs"] == 4
        assert kwargs["video_job_concurrency"] == 2


class TestCompressReferencesTask:
    """Tests for references.compress_oversized."""

    def test_returns_summary(self):
        compressor = MagicMock()
        compressor.compress_oversized = AsyncMock(return_value=CompressionSummary())

        with patch(
            "prodai_engine.jobs.generation_tasks.ReferenceCompressor", return_value=compressor
        ), patch("prodai_engine.jobs.generation_tasks.get_storage_gateway"):
            result = compress_references_task.apply(kwargs={"limit": 10}).get()

        assert result["total"] == 0
        compressor.compress_oversized.assert_awaited_once_with(10)


class TestDispatch:
    """Tests for queueing and routing."""

    def test_dispatch_job_returns_task_id(self):
        job_id = uuid4()

        with patch.object(process_job_task, "delay", return_value=MagicMock(id="task-1")) as delay:
            assert dispatch_job(job_id) == "task-1"

        delay.assert_called_once_with(str(job_id))

    def test_task_routes_and_beat(self):
        routes = celery_app.conf.task_routes

        assert routes["generation.process_job"]["queue"] == "high"
        assert routes["references.compress_oversized"]["queue"] == "low"
        schedule = celery_app.conf.beat_schedule["process-due-generation-jobs"]
        assert schedule["task"] == "generation.process_due_jobs"
