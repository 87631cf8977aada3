"""Configuration for the ingest pipeline.

This module defines configuration dataclasses for ingest runs, including
politeness settings that pace page fetches and LLM calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from src.config import ProjectConfig


@dataclass(frozen=True)
class IngestPoliteness:
    """Pacing between outbound requests.

    Attributes:
        fetch_delay_seconds: Pause between consecutive page fetches.
        llm_delay_seconds: Pause between consecutive LLM extraction calls.
        crawl_delay_seconds: Pause between pages during breadth-first crawling.
        request_timeout: Bound on any single HTTP request, in seconds.
    """

    fetch_delay_seconds: float = 0.5
    llm_delay_seconds: float = 1.5
    crawl_delay_seconds: float = 0.5
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        for name in ("fetch_delay_seconds", "llm_delay_seconds", "crawl_delay_seconds"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")


@dataclass
class IngestConfig:
    """Configuration for an ingest run.

    Attributes:
        politeness: Request pacing settings.
        data_root: Storage root. Uses the default data root if None.
        default_max_pages: Page cap for sources that do not set ``maxPages``.
        max_sitemap_depth: How many levels of nested sitemap indexes to follow.
        crawl_max_depth: Link depth for crawl sources without ``maxDepth``.
        crawl_max_visited: Hard cap on pages visited by one crawl.
        heuristic_confidence: Confidence given to metadata/pattern facts.
        use_llm: If False, only heuristic extraction runs.
        use_brain_context: If True, existing facts are summarised into the
            extraction prompt.
        persist_retries: Attempts per fact write before it is skipped.
    """

    politeness: IngestPoliteness = field(default_factory=IngestPoliteness)
    data_root: "Path | None" = None
    default_max_pages: int = 20
    max_sitemap_depth: int = 3
    crawl_max_depth: int = 2
    crawl_max_visited: int = 100
    heuristic_confidence: float = 0.6
    use_llm: bool = True
    use_brain_context: bool = False
    persist_retries: int = 3

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.default_max_pages < 1:
            raise ValueError(f"default_max_pages must be positive, got {self.default_max_pages}")
        if self.max_sitemap_depth < 0:
            raise ValueError(f"max_sitemap_depth must be >= 0, got {self.max_sitemap_depth}")
        if self.crawl_max_depth < 0:
            raise ValueError(f"crawl_max_depth must be >= 0, got {self.crawl_max_depth}")
        if self.crawl_max_visited < 1:
            raise ValueError(f"crawl_max_visited must be positive, got {self.crawl_max_visited}")
        if not 0.0 <= self.heuristic_confidence <= 1.0:
            raise ValueError(
                f"heuristic_confidence must be within [0, 1], got {self.heuristic_confidence}"
            )
        if self.persist_retries < 1:
            raise ValueError(f"persist_retries must be positive, got {self.persist_retries}")

    @classmethod
    def from_project_config(cls, project: "ProjectConfig", **overrides) -> "IngestConfig":
        """Build a config, taking timeout and page cap from ``config.json``."""
        politeness = IngestPoliteness()
        if project.request_timeout:
            politeness = IngestPoliteness(request_timeout=project.request_timeout)
        values: dict = {"politeness": politeness}
        if project.max_pages:
            values["default_max_pages"] = project.max_pages
        values.update(overrides)
        return cls(**values)
