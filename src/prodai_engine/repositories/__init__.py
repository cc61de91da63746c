"""Persistence repositories."""

from prodai_engine.repositories.jobs import JobRepository, SqlJobRepository

__all__ = [
    "JobRepository",
    "SqlJobRepository",
]
