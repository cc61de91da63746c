"""Job repository: durable job and unit state with atomic conditional updates.

Every mutation of a job row is a single conditional UPDATE. The worker never
holds a lock for the duration of a job; its exclusive right to a job is a
lease (claim_token + claimed_until) that any write re-checks.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prodai_engine.db.models import (
    GeneratedUnitModel,
    GenerationJobModel,
    ReferenceImageModel,
)
from prodai_engine.domain.enums import (
    ApprovalStatus,
    JobStatus,
    JobType,
    MediaType,
)
from prodai_engine.domain.models import (
    GeneratedUnit,
    GenerationJob,
    NewGenerationJob,
    ReferenceImage,
)
from prodai_engine.errors import UnitConflictError
from prodai_engine.logging import get_logger

logger = get_logger(__name__)

ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.RUNNING.value)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobRepository(ABC):
    """Storage of generation jobs, their units and reference images."""

    @abstractmethod
    async def create_job(self, new_job: NewGenerationJob) -> GenerationJob: ...

    @abstractmethod
    async def get_job(self, job_id: UUID) -> GenerationJob | None: ...

    @abstractmethod
    async def claim_job(
        self, job_id: UUID, claim_token: str, lease_seconds: float
    ) -> GenerationJob | None:
        """Take the job's lease if it is active and the lease is free, expired or ours.

        Moves the job to running and stamps started_at when unset.

        Returns:
            The claimed job, or None when another invocation holds it or it
            is no longer active
        """
        ...

    @abstractmethod
    async def release_claim(self, job_id: UUID, claim_token: str) -> None: ...

    @abstractmethod
    async def list_unit_indices(self, job_id: UUID) -> set[int]: ...

    @abstractmethod
    async def list_units(self, job_id: UUID) -> list[GeneratedUnit]: ...

    @abstractmethod
    async def record_unit_success(self, unit: GeneratedUnit, claim_token: str) -> bool:
        """Insert the unit and increment completed_count in one transaction.

        Returns:
            False when the lease was lost or the job is already fully
            accounted for; nothing is written in that case

        Raises:
            UnitConflictError: a unit with this variation index exists
        """
        ...

    @abstractmethod
    async def record_unit_failure(self, job_id: UUID, claim_token: str, message: str) -> bool:
        """Increment failed_count and store the message as the job's last error."""
        ...

    @abstractmethod
    async def update_progress(
        self,
        job_id: UUID,
        claim_token: str,
        lease_seconds: float,
        error_message: str | None = None,
    ) -> bool:
        """Extend the lease and record the latest error, if any."""
        ...

    @abstractmethod
    async def fail_job(self, job_id: UUID, message: str) -> bool:
        """Mark an active job failed immediately."""
        ...

    @abstractmethod
    async def finalize_job(
        self,
        job_id: UUID,
        claim_token: str,
        status: JobStatus,
        clear_error: bool = False,
    ) -> bool:
        """Move a fully accounted running job to a terminal status."""
        ...

    @abstractmethod
    async def cancel_job(self, job_id: UUID) -> bool: ...

    @abstractmethod
    async def reset_for_retry(
        self, job_id: UUID, product_id: UUID | None = None
    ) -> GenerationJob | None:
        """Put a failed (or zero-success completed) job back to pending.

        failed_count, the error and the timestamps are cleared. completed_count
        is set to the number of unit rows that survive rather than zero: units
        are deduplicated by variation index, so a zeroed count could never
        reach variation_count again once any unit exists.

        Returns:
            The reset job, or None when the job is not retryable
        """
        ...

    @abstractmethod
    async def list_due_jobs(self, limit: int) -> list[GenerationJob]:
        """Active jobs with a free or expired lease, oldest first."""
        ...

    @abstractmethod
    async def list_reference_images(self, reference_set_id: UUID) -> list[ReferenceImage]: ...

    @abstractmethod
    async def list_oversized_reference_images(
        self, min_size: int, limit: int
    ) -> list[ReferenceImage]: ...

    @abstractmethod
    async def update_reference_image(
        self, image_id: UUID, storage_path: str, mime_type: str, file_size: int
    ) -> bool: ...


def _to_job(model: GenerationJobModel) -> GenerationJob:
    return GenerationJob(
        id=model.id,
        product_id=model.product_id,
        job_type=JobType(model.job_type),
        final_prompt=model.final_prompt,
        variation_count=model.variation_count,
        status=JobStatus(model.status),
        reference_set_id=model.reference_set_id,
        resolution=model.resolution,
        aspect_ratio=model.aspect_ratio,
        duration_seconds=model.duration_seconds,
        generation_model=model.generation_model,
        generate_audio=bool(model.generate_audio),
        completed_count=model.completed_count or 0,
        failed_count=model.failed_count or 0,
        error_message=model.error_message,
        claim_token=model.claim_token,
        claimed_until=model.claimed_until,
        started_at=model.started_at,
        completed_at=model.completed_at,
        created_at=model.created_at,
    )


def _to_unit(model: GeneratedUnitModel) -> GeneratedUnit:
    return GeneratedUnit(
        id=model.id,
        job_id=model.job_id,
        variation_index=model.variation_index,
        media_type=MediaType(model.media_type),
        storage_path=model.storage_path,
        mime_type=model.mime_type,
        file_size=model.file_size,
        thumb_storage_path=model.thumb_storage_path,
        preview_storage_path=model.preview_storage_path,
        width=model.width,
        height=model.height,
        duration_seconds=model.duration_seconds,
        approval_status=ApprovalStatus(model.approval_status),
        created_at=model.created_at,
    )


def _to_reference(model: ReferenceImageModel) -> ReferenceImage:
    return ReferenceImage(
        id=model.id,
        reference_set_id=model.reference_set_id,
        storage_path=model.storage_path,
        mime_type=model.mime_type,
        file_name=model.file_name,
        file_size=model.file_size,
        display_order=model.display_order or 0,
    )


class SqlJobRepository(JobRepository):
    """JobRepository over SQLAlchemy (PostgreSQL in production, SQLite in tests).

    Sessions are synchronous; each call runs its session in the default
    executor so concurrent units keep the event loop free while a query is
    in flight.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, work: Callable[[Session], T]) -> T:
        def run() -> T:
            with self._session_factory() as session:
                return work(session)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, run)

    @staticmethod
    def _lease_free(token: str, now: datetime):
        job = GenerationJobModel
        return or_(
            job.claim_token.is_(None),
            job.claimed_until.is_(None),
            job.claimed_until < now,
            job.claim_token == token,
        )

    @staticmethod
    def _held_by(token: str, now: datetime):
        job = GenerationJobModel
        return and_(
            job.status == JobStatus.RUNNING.value,
            job.claim_token == token,
            job.claimed_until >= now,
        )

    async def create_job(self, new_job: NewGenerationJob) -> GenerationJob:
        def work(session: Session) -> GenerationJob:
            with session.begin():
                model = GenerationJobModel(
                    id=uuid4(),
                    product_id=new_job.product_id,
                    reference_set_id=new_job.reference_set_id,
                    job_type=new_job.job_type.value,
                    final_prompt=new_job.final_prompt,
                    variation_count=new_job.variation_count,
                    resolution=new_job.resolution,
                    aspect_ratio=new_job.aspect_ratio,
                    duration_seconds=new_job.duration_seconds,
                    generation_model=new_job.generation_model,
                    generate_audio=new_job.generate_audio,
                    status=JobStatus.PENDING.value,
                    completed_count=0,
                    failed_count=0,
                    created_at=_utcnow(),
                )
                session.add(model)
                session.flush()
                return _to_job(model)

        return await self._run(work)

    async def get_job(self, job_id: UUID) -> GenerationJob | None:
        def work(session: Session) -> GenerationJob | None:
            model = session.get(GenerationJobModel, job_id)
            return _to_job(model) if model else None

        return await self._run(work)

    async def claim_job(
        self, job_id: UUID, claim_token: str, lease_seconds: float
    ) -> GenerationJob | None:
        job = GenerationJobModel

        def work(session: Session) -> GenerationJob | None:
            now = _utcnow()
            with session.begin():
                result = session.execute(
                    update(job)
                    .where(
                        job.id == job_id,
                        job.status.in_(ACTIVE_STATUSES),
                        self._lease_free(claim_token, now),
                    )
                    .values(
                        status=JobStatus.RUNNING.value,
                        claim_token=claim_token,
                        claimed_until=now + timedelta(seconds=lease_seconds),
                        started_at=func.coalesce(job.started_at, now),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None
                model = session.get(job, job_id)
                return _to_job(model) if model else None

        return await self._run(work)

    async def release_claim(self, job_id: UUID, claim_token: str) -> None:
        job = GenerationJobModel

        def work(session: Session) -> None:
            with session.begin():
                session.execute(
                    update(job)
                    .where(job.id == job_id, job.claim_token == claim_token)
                    .values(claim_token=None, claimed_until=None)
                    .execution_options(synchronize_session=False)
                )

        await self._run(work)

    async def list_unit_indices(self, job_id: UUID) -> set[int]:
        def work(session: Session) -> set[int]:
            rows = session.scalars(
                select(GeneratedUnitModel.variation_index).where(
                    GeneratedUnitModel.job_id == job_id
                )
            )
            return set(rows)

        return await self._run(work)

    async def list_units(self, job_id: UUID) -> list[GeneratedUnit]:
        def work(session: Session) -> list[GeneratedUnit]:
            rows = session.scalars(
                select(GeneratedUnitModel)
                .where(GeneratedUnitModel.job_id == job_id)
                .order_by(GeneratedUnitModel.variation_index)
            )
            return [_to_unit(row) for row in rows]

        return await self._run(work)

    async def record_unit_success(self, unit: GeneratedUnit, claim_token: str) -> bool:
        job = GenerationJobModel

        def work(session: Session) -> bool:
            now = _utcnow()
            session.add(
                GeneratedUnitModel(
                    id=unit.id,
                    job_id=unit.job_id,
                    variation_index=unit.variation_index,
                    media_type=unit.media_type.value,
                    storage_path=unit.storage_path,
                    thumb_storage_path=unit.thumb_storage_path,
                    preview_storage_path=unit.preview_storage_path,
                    mime_type=unit.mime_type,
                    file_size=unit.file_size,
                    width=unit.width,
                    height=unit.height,
                    duration_seconds=unit.duration_seconds,
                    approval_status=unit.approval_status.value,
                    created_at=now,
                )
            )
            try:
                session.flush()
            except IntegrityError as e:
                session.rollback()
                raise UnitConflictError(
                    f"Unit {unit.variation_index} of job {unit.job_id} already exists"
                ) from e

            result = session.execute(
                update(job)
                .where(
                    job.id == unit.job_id,
                    self._held_by(claim_token, now),
                    job.completed_count + job.failed_count < job.variation_count,
                )
                .values(completed_count=job.completed_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                logger.warning(
                    "unit_success_rejected",
                    job_id=str(unit.job_id),
                    variation_index=unit.variation_index,
                )
                return False
            session.commit()
            return True

        return await self._run(work)

    async def record_unit_failure(self, job_id: UUID, claim_token: str, message: str) -> bool:
        job = GenerationJobModel

        def work(session: Session) -> bool:
            now = _utcnow()
            with session.begin():
                result = session.execute(
                    update(job)
                    .where(
                        job.id == job_id,
                        self._held_by(claim_token, now),
                        job.completed_count + job.failed_count < job.variation_count,
                    )
                    .values(failed_count=job.failed_count + 1, error_message=message)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

        return await self._run(work)

    async def update_progress(
        self,
        job_id: UUID,
        claim_token: str,
        lease_seconds: float,
        error_message: str | None = None,
    ) -> bool:
        job = GenerationJobModel

        def work(session: Session) -> bool:
            now = _utcnow()
            values: dict = {"claimed_until": now + timedelta(seconds=lease_seconds)}
            if error_message:
                values["error_message"] = error_message
            with session.begin():
                result = session.execute(
                    update(job)
                    .where(job.id == job_id, self._held_by(claim_token, now))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

        return await self._run(work)

    async def fail_job(self, job_id: UUID, message: str) -> bool:
        job = GenerationJobModel

        def work(session: Session) -> bool:
            with session.begin():
                result = session.execute(
                    update(job)
                    .where(job.id == job_id, job.status.in_(ACTIVE_STATUSES))
                    .values(
                        status=JobStatus.FAILED.value,
                        error_message=message,
                        completed_at=_utcnow(),
                        claim_token=None,
                        claimed_until=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

        return await self._run(work)

    async def finalize_job(
        self,
        job_id: UUID,
        claim_token: str,
        status: JobStatus,
        clear_error: bool = False,
    ) -> bool:
        job = GenerationJobModel
        values: dict = {
            "status": status.value,
            "completed_at": _utcnow(),
            "claim_token": None,
            "claimed_until": None,
        }
        if clear_error:
            values["error_message"] = None

        def work(session: Session) -> bool:
            with session.begin():
                result = session.execute(
                    update(job)
                    .where(
                        job.id == job_id,
                        job.status == JobStatus.RUNNING.value,
                        job.claim_token == claim_token,
                        job.completed_count + job.failed_count >= job.variation_count,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

        return await self._run(work)

    async def cancel_job(self, job_id: UUID) -> bool:
        job = GenerationJobModel

        def work(session: Session) -> bool:
            with session.begin():
                result = session.execute(
                    update(job)
                    .where(job.id == job_id, job.status.in_(ACTIVE_STATUSES))
                    .values(status=JobStatus.CANCELLED.value, completed_at=_utcnow())
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

        return await self._run(work)

    async def reset_for_retry(
        self, job_id: UUID, product_id: UUID | None = None
    ) -> GenerationJob | None:
        job = GenerationJobModel

        def work(session: Session) -> GenerationJob | None:
            with session.begin():
                existing_units = session.scalar(
                    select(func.count())
                    .select_from(GeneratedUnitModel)
                    .where(GeneratedUnitModel.job_id == job_id)
                )
                conditions = [
                    job.id == job_id,
                    or_(
                        job.status == JobStatus.FAILED.value,
                        and_(
                            job.status == JobStatus.COMPLETED.value,
                            job.completed_count == 0,
                            job.failed_count > 0,
                        ),
                    ),
                ]
                if product_id is not None:
                    conditions.append(job.product_id == product_id)

                # Surviving units stay counted so they are never regenerated
                result = session.execute(
                    update(job)
                    .where(*conditions)
                    .values(
                        status=JobStatus.PENDING.value,
                        completed_count=existing_units or 0,
                        failed_count=0,
                        error_message=None,
                        started_at=None,
                        completed_at=None,
                        claim_token=None,
                        claimed_until=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None
                model = session.get(job, job_id)
                return _to_job(model) if model else None

        return await self._run(work)

    async def list_due_jobs(self, limit: int) -> list[GenerationJob]:
        job = GenerationJobModel

        def work(session: Session) -> list[GenerationJob]:
            now = _utcnow()
            rows = session.scalars(
                select(job)
                .where(
                    job.status.in_(ACTIVE_STATUSES),
                    or_(job.claimed_until.is_(None), job.claimed_until < now),
                )
                .order_by(job.created_at.asc(), job.id)
                .limit(max(1, limit))
            )
            return [_to_job(row) for row in rows]

        return await self._run(work)

    async def list_reference_images(self, reference_set_id: UUID) -> list[ReferenceImage]:
        def work(session: Session) -> list[ReferenceImage]:
            rows = session.scalars(
                select(ReferenceImageModel)
                .where(ReferenceImageModel.reference_set_id == reference_set_id)
                .order_by(ReferenceImageModel.display_order.asc())
            )
            return [_to_reference(row) for row in rows]

        return await self._run(work)

    async def list_oversized_reference_images(
        self, min_size: int, limit: int
    ) -> list[ReferenceImage]:
        def work(session: Session) -> list[ReferenceImage]:
            rows = session.scalars(
                select(ReferenceImageModel)
                .where(ReferenceImageModel.file_size > min_size)
                .order_by(ReferenceImageModel.file_size.desc())
                .limit(limit)
            )
            return [_to_reference(row) for row in rows]

        return await self._run(work)

    async def update_reference_image(
        self, image_id: UUID, storage_path: str, mime_type: str, file_size: int
    ) -> bool:
        def work(session: Session) -> bool:
            with session.begin():
                result = session.execute(
                    update(ReferenceImageModel)
                    .where(ReferenceImageModel.id == image_id)
                    .values(storage_path=storage_path, mime_type=mime_type, file_size=file_size)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1

        return await self._run(work)
