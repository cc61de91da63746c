"""API route modules."""

from prodai_engine.api.routes import admin, health, jobs, worker

__all__ = ["admin", "health", "jobs", "worker"]
