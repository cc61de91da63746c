"""Database models and session management."""

from prodai_engine.db.models import (
    Base,
    GeneratedUnitModel,
    GenerationJobModel,
    ReferenceImageModel,
)

__all__ = ["Base", "GeneratedUnitModel", "GenerationJobModel", "ReferenceImageModel"]
