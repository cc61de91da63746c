"""Pytest configuration and fixtures."""

import io
import os
from collections.abc import Awaitable, Callable, Generator
from pathlib import Path
from uuid import uuid4

import pytest

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["CRON_SECRET"] = "test-secret"
os.environ["IMAGE_PROVIDER"] = "stub"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["INLINE_GENERATION"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from prodai_engine.adapters.storage.stub import StubStorageGateway  # noqa: E402
from prodai_engine.db.models import Base  # noqa: E402
from prodai_engine.domain.enums import JobType  # noqa: E402
from prodai_engine.domain.models import GenerationJob, NewGenerationJob  # noqa: E402
from prodai_engine.repositories.jobs import SqlJobRepository  # noqa: E402


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite database; repository sessions run on executor threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, autoflush=False)


@pytest.fixture
def repository(session_factory: sessionmaker[Session]) -> SqlJobRepository:
    return SqlJobRepository(session_factory)


@pytest.fixture
def storage() -> StubStorageGateway:
    return StubStorageGateway()


@pytest.fixture
def job_factory(
    repository: SqlJobRepository,
) -> Callable[..., Awaitable[GenerationJob]]:
    """Create a pending job; keyword arguments override the defaults."""

    async def create(**overrides) -> GenerationJob:
        params = {
            "product_id": uuid4(),
            "job_type": JobType.IMAGE,
            "final_prompt": "Studio shot of a ceramic coffee mug on oak",
            "variation_count": 3,
            "resolution": "2K",
            "aspect_ratio": "1:1",
        }
        params.update(overrides)
        return await repository.create_job(NewGenerationJob(**params))

    return create


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Encode a solid-colour image of the given size."""

    def encode(
        width: int = 64,
        height: int = 48,
        color: tuple[int, int, int] = (200, 40, 40),
        fmt: str = "PNG",
        exif_orientation: int | None = None,
    ) -> bytes:
        image = Image.new("RGB", (width, height), color)
        buffer = io.BytesIO()
        if exif_orientation is not None:
            exif = Image.Exif()
            exif[0x0112] = exif_orientation
            image.save(buffer, format=fmt, exif=exif)
        else:
            image.save(buffer, format=fmt)
        return buffer.getvalue()

    return encode


@pytest.fixture
def test_client(
    repository: SqlJobRepository, storage: StubStorageGateway
) -> Generator[TestClient, None, None]:
    """API client wired to the test database and in-memory storage."""
    from prodai_engine.adapters.providers import ProviderClient, RetryPolicy, StubProvider
    from prodai_engine.api.deps import get_generation_worker, get_job_repository, get_storage
    from prodai_engine.main import app
    from prodai_engine.services.generation_worker import GenerationWorker, WorkerConfig

    def worker_override() -> GenerationWorker:
        return GenerationWorker(
            repository=repository,
            storage=storage,
            provider_factory=lambda job: ProviderClient(StubProvider(), RetryPolicy(max_retries=0)),
            config=WorkerConfig(persist_retry_delay_seconds=0.0),
        )

    app.dependency_overrides[get_job_repository] = lambda: repository
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_generation_worker] = worker_override
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
