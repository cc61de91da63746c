"""Application services."""

from prodai_engine.services.derivatives import CompressionResult, Derivative, DerivativeBuilder
from prodai_engine.services.generation_worker import (
    GenerationWorker,
    WorkerConfig,
    build_generation_worker,
)
from prodai_engine.services.reference_compression import CompressionSummary, ReferenceCompressor
from prodai_engine.services.request_builder import RequestBuilder, RequestContext

__all__ = [
    "CompressionResult",
    "CompressionSummary",
    "Derivative",
    "DerivativeBuilder",
    "GenerationWorker",
    "ReferenceCompressor",
    "RequestBuilder",
    "RequestContext",
    "WorkerConfig",
    "build_generation_worker",
]
