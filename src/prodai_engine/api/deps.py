"""FastAPI dependencies."""

import hmac
from collections.abc import Mapping
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from prodai_engine.adapters.storage import get_storage_gateway
from prodai_engine.adapters.storage.base import StorageGateway
from prodai_engine.config import Settings, get_settings
from prodai_engine.db.session import SessionLocal
from prodai_engine.repositories.jobs import JobRepository, SqlJobRepository
from prodai_engine.services.generation_worker import GenerationWorker, build_generation_worker
from prodai_engine.services.reference_compression import ReferenceCompressor


def get_job_repository() -> JobRepository:
    """Get the job repository bound to the application's session factory."""
    return SqlJobRepository(SessionLocal)


def get_storage() -> StorageGateway:
    """Get the configured storage gateway."""
    return get_storage_gateway()


SettingsDep = Annotated[Settings, Depends(get_settings)]
JobRepositoryDep = Annotated[JobRepository, Depends(get_job_repository)]
StorageDep = Annotated[StorageGateway, Depends(get_storage)]


def get_generation_worker(
    repository: JobRepositoryDep,
    storage: StorageDep,
    settings: SettingsDep,
) -> GenerationWorker:
    """Get a generation worker sharing the request's repository and storage."""
    return build_generation_worker(settings, repository=repository, storage=storage)


def get_reference_compressor(
    repository: JobRepositoryDep,
    storage: StorageDep,
) -> ReferenceCompressor:
    return ReferenceCompressor(repository, storage)


GenerationWorkerDep = Annotated[GenerationWorker, Depends(get_generation_worker)]
ReferenceCompressorDep = Annotated[ReferenceCompressor, Depends(get_reference_compressor)]


def is_authorized_trigger(headers: Mapping[str, str], settings: Settings) -> bool:
    """Check the worker trigger credentials.

    Accepted: the trusted scheduler header, an X-Cron-Secret header, or an
    Authorization Bearer token equal to the configured cron secret. With no
    secret configured only the scheduler header is accepted.
    """
    if headers.get(settings.scheduler_header):
        return True

    secret = settings.cron_secret
    if not secret:
        return False

    header_secret = headers.get("x-cron-secret")
    if header_secret and hmac.compare_digest(header_secret, secret):
        return True

    auth = headers.get("authorization", "")
    if auth.startswith("Bearer ") and hmac.compare_digest(auth[7:], secret):
        return True
    return False


def verify_trigger_secret(request: Request, settings: SettingsDep) -> None:
    """Reject unauthorized worker and admin calls with 401."""
    if not is_authorized_trigger(request.headers, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
