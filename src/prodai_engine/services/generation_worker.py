"""Generation worker: drives a job's units through provider, storage and repository.

One invocation of process_job:
1. Claims the job's lease (compare-and-swap on status and lease expiry)
2. Builds the request context (parameters, reference payloads)
3. Runs sub-batches of unattempted variation indices under a concurrency cap
4. Stops when every unit is accounted for, the job is cancelled, or the
   time budget elapses, and either finalizes or releases the job

All job counters move through the repository's guarded updates, so a job
picked up again after a timeout or crash resumes without duplicating
completed units.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from prodai_engine.adapters.providers import ProviderClient, RetryPolicy, get_media_provider
from prodai_engine.adapters.providers.base import ProviderResult
from prodai_engine.adapters.storage.base import StorageGateway
from prodai_engine.config import Settings, get_settings
from prodai_engine.domain.enums import (
    ApprovalStatus,
    JobStatus,
    JobType,
    MediaType,
    OutcomeKind,
    TerminalStatusPolicy,
)
from prodai_engine.domain.models import GeneratedUnit, GenerationJob, JobOutcome, WorkerOptions
from prodai_engine.errors import (
    ImageProcessingError,
    JobNotFoundError,
    ProviderError,
    RequestBuildError,
    StorageError,
    UnitConflictError,
)
from prodai_engine.logging import get_logger
from prodai_engine.repositories.jobs import JobRepository
from prodai_engine.services.derivatives import DerivativeBuilder, probe_dimensions
from prodai_engine.services.paths import (
    build_unit_path,
    preview_path,
    resolve_extension,
    thumbnail_path,
)
from prodai_engine.services.request_builder import RequestBuilder, RequestContext

logger = get_logger(__name__)

ProviderFactory = Callable[[GenerationJob], ProviderClient]
UnitState = Literal["completed", "failed", "discarded"]


@dataclass(frozen=True)
class WorkerConfig:
    """Static configuration of a GenerationWorker."""

    images_bucket: str = "generated-images"
    videos_bucket: str = "generated-videos"
    references_bucket: str = "reference-images"
    claim_grace_seconds: float = 120.0
    lease_heartbeat_seconds: float = 30.0
    persist_max_retries: int = 2
    persist_retry_delay_seconds: float = 1.0
    terminal_policy: TerminalStatusPolicy = TerminalStatusPolicy.ANY_SUCCESS
    signed_url_ttl_seconds: int = 6 * 60 * 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkerConfig":
        return cls(
            images_bucket=settings.images_bucket,
            videos_bucket=settings.videos_bucket,
            references_bucket=settings.references_bucket,
            claim_grace_seconds=settings.claim_grace_seconds,
            lease_heartbeat_seconds=settings.lease_heartbeat_seconds,
            persist_max_retries=settings.persist_max_retries,
            persist_retry_delay_seconds=settings.persist_retry_delay_seconds,
            terminal_policy=TerminalStatusPolicy(settings.terminal_status_policy),
            signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        )


def options_from_settings(settings: Settings) -> WorkerOptions:
    """Default per-invocation options from the environment."""
    return WorkerOptions(
        batch_size=settings.generation_batch_size,
        parallelism=settings.generation_parallelism,
        time_budget_ms=settings.generation_time_budget_ms,
    ).normalized()


@dataclass
class UnitResult:
    """What happened to one attempted variation index."""

    variation_index: int
    state: UnitState
    error: str | None = None


@dataclass
class _StagedObject:
    path: str
    data: bytes
    content_type: str


def default_provider_factory(settings: Settings) -> ProviderFactory:
    policy = RetryPolicy.from_values(settings.provider_max_retries, settings.provider_retry_delays)

    def factory(job: GenerationJob) -> ProviderClient:
        return ProviderClient(get_media_provider(job.job_type, job.generation_model), policy)

    return factory


class GenerationWorker:
    """Processes generation jobs within a time budget."""

    def __init__(
        self,
        repository: JobRepository,
        storage: StorageGateway,
        provider_factory: ProviderFactory,
        derivatives: DerivativeBuilder | None = None,
        config: WorkerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        token_factory: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.provider_factory = provider_factory
        self.derivatives = derivatives or DerivativeBuilder()
        self.config = config or WorkerConfig()
        self.request_builder = RequestBuilder(
            repository,
            storage,
            self.config.references_bucket,
            self.config.signed_url_ttl_seconds,
        )
        self._clock = clock
        self._sleep = sleep
        self._token_factory = token_factory

    # -------------------------------------------------------------------------
    # Job processing
    # -------------------------------------------------------------------------

    async def process_job(
        self, job_id: UUID, options: WorkerOptions | None = None
    ) -> JobOutcome:
        """Advance one job as far as the time budget allows.

        Args:
            job_id: Job to process
            options: Batch size, parallelism and time budget for this run

        Returns:
            JobOutcome describing how this invocation ended

        Raises:
            JobNotFoundError: the job does not exist
        """
        options = (options or WorkerOptions()).normalized()
        started = self._clock()
        budget_seconds = options.time_budget_ms / 1000
        lease_seconds = budget_seconds + self.config.claim_grace_seconds

        job = await self.repository.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status.is_terminal:
            logger.info("job_already_terminal", job_id=str(job_id), status=job.status.value)
            return self._outcome(job, OutcomeKind.NOOP)

        token = self._token_factory()
        claimed = await self.repository.claim_job(job_id, token, lease_seconds)
        if claimed is None:
            logger.info("job_claim_skipped", job_id=str(job_id), status=job.status.value)
            return self._outcome(job, OutcomeKind.SKIPPED)
        job = claimed

        logger.info(
            "job_claimed",
            job_id=str(job_id),
            job_type=job.job_type.value,
            variation_count=job.variation_count,
            completed=job.completed_count,
            failed=job.failed_count,
            batch_size=options.batch_size,
            parallelism=options.parallelism,
            time_budget_ms=options.time_budget_ms,
        )

        if job.remaining <= 0:
            return await self._finalize(job, token, processed=0)

        try:
            context = await self.request_builder.build(job)
        except RequestBuildError as e:
            logger.error("job_request_invalid", job_id=str(job_id), error=str(e))
            await self.repository.fail_job(job_id, str(e))
            job.status = JobStatus.FAILED
            job.error_message = str(e)
            return self._outcome(job, OutcomeKind.FATAL, error_message=str(e))

        provider = self.provider_factory(job)
        attempted: set[int] = set()
        processed = 0

        while job.remaining > 0:
            if self._budget_exhausted(started, budget_seconds):
                break

            existing = await self.repository.list_unit_indices(job_id)
            candidates = [
                index
                for index in range(job.variation_count)
                if index not in existing and index not in attempted
            ]
            if not candidates:
                logger.warning(
                    "job_no_unattempted_units",
                    job_id=str(job_id),
                    remaining=job.remaining,
                    existing=len(existing),
                )
                break

            batch = candidates[: min(options.batch_size, job.remaining)]
            attempted.update(batch)

            results = await self._run_batch(
                context,
                provider,
                token,
                batch,
                options.parallelism,
                started,
                budget_seconds,
                lease_seconds,
            )
            processed += sum(1 for r in results if r is not None and r.state != "discarded")

            await self.repository.update_progress(job_id, token, lease_seconds)
            refreshed = await self.repository.get_job(job_id)
            if refreshed is None:
                raise JobNotFoundError(job_id)
            job = refreshed

            if job.status == JobStatus.CANCELLED:
                logger.info("job_cancelled_during_run", job_id=str(job_id), processed=processed)
                await self.repository.release_claim(job_id, token)
                return self._outcome(job, OutcomeKind.CANCELLED, processed=processed)

            if job.claim_token != token:
                logger.warning("job_claim_lost", job_id=str(job_id), status=job.status.value)
                return self._outcome(job, OutcomeKind.SKIPPED, processed=processed)

        if job.remaining > 0:
            await self.repository.release_claim(job_id, token)
            logger.info(
                "job_partial",
                job_id=str(job_id),
                processed=processed,
                remaining=job.remaining,
                elapsed_ms=int((self._clock() - started) * 1000),
            )
            return self._outcome(job, OutcomeKind.PARTIAL, processed=processed)

        return await self._finalize(job, token, processed)

    async def _finalize(self, job: GenerationJob, token: str, processed: int) -> JobOutcome:
        status = self.config.terminal_policy.resolve(
            job.completed_count, job.failed_count, job.variation_count
        )
        clear_error = status == JobStatus.COMPLETED and job.failed_count == 0
        finalized = await self.repository.finalize_job(job.id, token, status, clear_error)
        if not finalized:
            current = await self.repository.get_job(job.id)
            logger.warning(
                "job_finalize_rejected",
                job_id=str(job.id),
                status=current.status.value if current else None,
            )
            return self._outcome(current or job, OutcomeKind.SKIPPED, processed=processed)

        job.status = status
        if clear_error:
            job.error_message = None
        logger.info(
            "job_finalized",
            job_id=str(job.id),
            status=status.value,
            completed=job.completed_count,
            failed=job.failed_count,
        )
        return self._outcome(job, OutcomeKind.TERMINAL, processed=processed)

    async def _run_batch(
        self,
        context: RequestContext,
        provider: ProviderClient,
        token: str,
        indices: list[int],
        parallelism: int,
        started: float,
        budget_seconds: float,
        lease_seconds: float,
    ) -> list[UnitResult | None]:
        semaphore = asyncio.Semaphore(parallelism)

        async def run(index: int) -> UnitResult | None:
            async with semaphore:
                # Units not started before the deadline are left for the next run
                if self._budget_exhausted(started, budget_seconds):
                    return None
                return await self._run_unit(context, provider, token, index)

        heartbeat = asyncio.create_task(self._heartbeat(context.job.id, token, lease_seconds))
        try:
            return list(await asyncio.gather(*(run(index) for index in indices)))
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

    async def _heartbeat(self, job_id: UUID, token: str, lease_seconds: float) -> None:
        """Extend the lease until cancelled, so slow provider calls never outlive it.

        Stops once the lease is gone (cancelled job or lost claim); the
        in-flight units then find out when they try to record themselves.
        """
        interval = min(self.config.lease_heartbeat_seconds, lease_seconds / 3)
        while True:
            # Wall-clock sleep: the lease expires on the database's clock
            await asyncio.sleep(interval)
            try:
                held = await self.repository.update_progress(job_id, token, lease_seconds)
            except SQLAlchemyError as e:
                logger.warning("lease_heartbeat_failed", job_id=str(job_id), error=str(e))
                continue
            if not held:
                logger.warning("lease_heartbeat_lost", job_id=str(job_id))
                return

    # -------------------------------------------------------------------------
    # Units
    # -------------------------------------------------------------------------

    async def _run_unit(
        self,
        context: RequestContext,
        provider: ProviderClient,
        token: str,
        index: int,
    ) -> UnitResult:
        job = context.job
        try:
            result = await provider.generate(context.request_for(index))
        except ProviderError as e:
            logger.warning(
                "unit_generation_failed",
                job_id=str(job.id),
                variation_index=index,
                kind=e.kind.value,
                error=str(e),
            )
            return await self._record_failure(job, token, index, str(e))

        try:
            unit, staged = self._stage_unit(context, index, result)
        except ImageProcessingError as e:
            logger.warning(
                "unit_derivatives_failed", job_id=str(job.id), variation_index=index, error=str(e)
            )
            return await self._record_failure(job, token, index, str(e))

        return await self._persist_unit(context, token, unit, staged)

    def _bucket_for(self, media_type: MediaType) -> str:
        if media_type == MediaType.VIDEO:
            return self.config.videos_bucket
        return self.config.images_bucket

    def _stage_unit(
        self, context: RequestContext, index: int, result: ProviderResult
    ) -> tuple[GeneratedUnit, list[_StagedObject]]:
        """Build the unit row and every object to upload for it."""
        job = context.job
        extension = resolve_extension(result.mime_type)
        storage_path = build_unit_path(
            job.product_id, job.id, index, job.final_prompt, extension
        )
        staged = [_StagedObject(storage_path, result.data, result.mime_type)]

        unit = GeneratedUnit(
            id=uuid4(),
            job_id=job.id,
            variation_index=index,
            media_type=context.media_type,
            storage_path=storage_path,
            mime_type=result.mime_type,
            file_size=len(result.data),
            duration_seconds=result.duration_seconds,
            approval_status=ApprovalStatus.PENDING,
        )

        if context.media_type == MediaType.IMAGE:
            dimensions = probe_dimensions(result.data)
            if dimensions is None:
                raise ImageProcessingError("Provider returned an undecodable image")
            unit.width, unit.height = dimensions

            thumb = self.derivatives.build_thumbnail(result.data)
            preview = self.derivatives.build_preview(result.data)
            unit.thumb_storage_path = thumbnail_path(storage_path, thumb.extension)
            unit.preview_storage_path = preview_path(storage_path, preview.extension)
            staged.append(_StagedObject(unit.thumb_storage_path, thumb.data, thumb.mime_type))
            staged.append(
                _StagedObject(unit.preview_storage_path, preview.data, preview.mime_type)
            )

        return unit, staged

    async def _persist_unit(
        self,
        context: RequestContext,
        token: str,
        unit: GeneratedUnit,
        staged: list[_StagedObject],
    ) -> UnitResult:
        """Upload the unit's objects and record it, retrying infrastructure failures."""
        job = context.job
        bucket = self._bucket_for(unit.media_type)
        attempts = self.config.persist_max_retries + 1
        last_error = ""

        for attempt in range(attempts):
            if attempt > 0:
                await self._sleep(self.config.persist_retry_delay_seconds)

            uploaded: list[str] = []
            try:
                for obj in staged:
                    await self.storage.upload(
                        bucket, obj.path, obj.data, obj.content_type, upsert=attempt > 0
                    )
                    uploaded.append(obj.path)
                recorded = await self.repository.record_unit_success(unit, token)
            except UnitConflictError:
                await self._discard(bucket, uploaded)
                logger.warning(
                    "unit_already_stored", job_id=str(job.id), variation_index=unit.variation_index
                )
                return UnitResult(unit.variation_index, "discarded")
            except (StorageError, SQLAlchemyError) as e:
                await self._discard(bucket, uploaded)
                last_error = f"Failed to store unit: {e}"
                logger.warning(
                    "unit_persist_failed",
                    job_id=str(job.id),
                    variation_index=unit.variation_index,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(e),
                )
                continue

            if not recorded:
                await self._discard(bucket, uploaded)
                return UnitResult(unit.variation_index, "discarded")

            logger.info(
                "unit_completed",
                job_id=str(job.id),
                variation_index=unit.variation_index,
                path=unit.storage_path,
                size=unit.file_size,
            )
            return UnitResult(unit.variation_index, "completed")

        return await self._record_failure(job, token, unit.variation_index, last_error)

    async def _record_failure(
        self, job: GenerationJob, token: str, index: int, message: str
    ) -> UnitResult:
        try:
            recorded = await self.repository.record_unit_failure(job.id, token, message)
        except SQLAlchemyError as e:
            logger.error(
                "unit_failure_not_recorded", job_id=str(job.id), variation_index=index, error=str(e)
            )
            return UnitResult(index, "discarded", message)
        if not recorded:
            return UnitResult(index, "discarded", message)
        return UnitResult(index, "failed", message)

    async def _discard(self, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        try:
            await self.storage.delete(bucket, paths)
        except StorageError as e:
            logger.warning("unit_cleanup_failed", bucket=bucket, paths=paths, error=str(e))

    # -------------------------------------------------------------------------
    # Due jobs
    # -------------------------------------------------------------------------

    async def process_due_jobs(
        self,
        options: WorkerOptions | None = None,
        jobs: int = 1,
        image_job_concurrency: int = 1,
        video_job_concurrency: int = 1,
    ) -> list[JobOutcome]:
        """Process up to `jobs` due jobs, oldest first.

        Image and video jobs run in separate pools, each with its own
        concurrency limit.
        """
        due = await self.repository.list_due_jobs(max(1, jobs))
        image_jobs = [job for job in due if job.job_type == JobType.IMAGE]
        video_jobs = [job for job in due if job.job_type == JobType.VIDEO]

        logger.info(
            "due_jobs_listed",
            total=len(due),
            image_jobs=len(image_jobs),
            video_jobs=len(video_jobs),
        )

        async def pool(group: list[GenerationJob], concurrency: int) -> list[JobOutcome | None]:
            semaphore = asyncio.Semaphore(max(1, concurrency))

            async def run(job: GenerationJob) -> JobOutcome | None:
                async with semaphore:
                    try:
                        return await self.process_job(job.id, options)
                    except JobNotFoundError:
                        logger.warning("due_job_vanished", job_id=str(job.id))
                        return None
                    except Exception as e:
                        logger.exception("due_job_processing_error", job_id=str(job.id), error=str(e))
                        return None

            return list(await asyncio.gather(*(run(job) for job in group)))

        image_results, video_results = await asyncio.gather(
            pool(image_jobs, image_job_concurrency),
            pool(video_jobs, video_job_concurrency),
        )
        return [outcome for outcome in image_results + video_results if outcome is not None]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _budget_exhausted(self, started: float, budget_seconds: float) -> bool:
        return self._clock() - started >= budget_seconds

    @staticmethod
    def _outcome(
        job: GenerationJob,
        kind: OutcomeKind,
        processed: int = 0,
        error_message: str | None = None,
    ) -> JobOutcome:
        return JobOutcome(
            job_id=job.id,
            kind=kind,
            status=job.status,
            processed=processed,
            completed=job.completed_count,
            failed=job.failed_count,
            error_message=error_message or job.error_message,
        )


def build_generation_worker(
    settings: Settings | None = None,
    repository: JobRepository | None = None,
    storage: StorageGateway | None = None,
) -> GenerationWorker:
    """Wire a worker from settings, with optional overrides for its collaborators."""
    from prodai_engine.adapters.storage import get_storage_gateway
    from prodai_engine.db.session import SessionLocal
    from prodai_engine.repositories.jobs import SqlJobRepository

    settings = settings or get_settings()
    return GenerationWorker(
        repository=repository or SqlJobRepository(SessionLocal),
        storage=storage or get_storage_gateway(),
        provider_factory=default_provider_factory(settings),
        config=WorkerConfig.from_settings(settings),
    )
