"""SQLAlchemy ORM models."""

from datetime import datetime
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class GenerationJobModel(Base):
    """Generation job (one per user request for N artifacts) ORM model."""

    __tablename__ = "generation_jobs"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    product_id: Mapped[PyUUID] = mapped_column(Uuid, nullable=False, index=True)
    reference_set_id: Mapped[PyUUID | None] = mapped_column(Uuid, nullable=True)
    job_type: Mapped[str] = mapped_column(String(20), nullable=False, default="image")
    final_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    variation_count: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution: Mapped[str | None] = mapped_column(String(20), nullable=True)
    aspect_ratio: Mapped[str | None] = mapped_column(String(20), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generation_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    generate_audio: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(50), default="pending", index=True)
    completed_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Claim lease: the invocation holding claim_token may mutate the job until claimed_until
    claim_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claimed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_generation_jobs_status_created", "status", "created_at"),
        CheckConstraint(
            "completed_count + failed_count <= variation_count",
            name="ck_generation_jobs_accounted",
        ),
    )

    # Relationships
    units: Mapped[list["GeneratedUnitModel"]] = relationship(
        "GeneratedUnitModel", back_populates="job", cascade="all, delete-orphan"
    )


class GeneratedUnitModel(Base):
    """Generated image or video (one per successful variation) ORM model."""

    __tablename__ = "generated_units"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("generation_jobs.id", ondelete="CASCADE"), index=True
    )
    variation_index: Mapped[int] = mapped_column(Integer, nullable=False)
    media_type: Mapped[str] = mapped_column(String(20), nullable=False, default="image")
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumb_storage_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    preview_storage_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    approval_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("job_id", "variation_index", name="uq_generated_unit_variation"),
    )

    job: Mapped["GenerationJobModel"] = relationship("GenerationJobModel", back_populates="units")


class ReferenceImageModel(Base):
    """Reference image (belongs to a reference set, ordered) ORM model."""

    __tablename__ = "reference_images"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    reference_set_id: Mapped[PyUUID] = mapped_column(Uuid, nullable=False, index=True)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
