"""Ingest pipeline: discovery, scraping, fact extraction and reconciliation.

Usage:
    from src.knowledge.pipeline import run_ingest, IngestConfig

    result = run_ingest("brain-1", "source-1", config=IngestConfig(use_llm=False))
"""

from .config import IngestConfig, IngestPoliteness
from .dispatch import IngestResponse, handle_ingest_request
from .runner import IngestResult, JobProgress, SourceNotFoundError, run_ingest
from .scheduler import RateLimiter

__all__ = [
    # Config
    "IngestConfig",
    "IngestPoliteness",
    # Runner
    "run_ingest",
    "IngestResult",
    "JobProgress",
    "SourceNotFoundError",
    # Dispatch
    "handle_ingest_request",
    "IngestResponse",
    # Scheduler
    "RateLimiter",
]
