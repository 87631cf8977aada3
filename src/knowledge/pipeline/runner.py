"""Ingest job controller.

This module provides the main entry point for ingesting one knowledge
source into a brain. It orchestrates:
1. Discovery: Resolve the source to a bounded list of page URLs
2. Scraping: Fetch and extract each page, skipping failures
3. Extraction: Derive facts per page (LLM first, heuristics as fallback)
4. Reconciliation: Merge facts into the brain by confidence
5. Finalization: Persist facts, stamp the source and close the job

Each step records progress on the job before it proceeds. Any error that
escapes a step ends the job as ``failed``; it is never re-raised.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Sequence

from src.config import get_config
from src.integrations.llm.client import LLMClient, LLMClientError
from src.knowledge.discovery import PageFetcher, discover
from src.knowledge.extraction import FactExtractor
from src.knowledge.facts import Fact
from src.knowledge.reconcile import ReconcilePlan, reconcile
from src.knowledge.storage import (
    JOB_FAILED,
    JOB_SUCCESS,
    BrainFact,
    IngestJob,
    IngestStore,
    StorageError,
)
from src.parsing.base import Document
from src.parsing.fetch import HtmlFetcher
from src.parsing.web import extract_content

from .config import IngestConfig
from .scheduler import RateLimiter

logger = logging.getLogger(__name__)

# Most stored facts summarised into the extraction prompt
MAX_CONTEXT_FACTS = 50


class SourceNotFoundError(LookupError):
    """Raised when the requested knowledge source does not exist."""


@dataclass
class IngestResult:
    """Outcome of one ingest run.

    Attributes:
        job_id: Id of the job record.
        status: Terminal job status, ``success`` or ``failed``.
        facts_added: New keys written to the brain.
        facts_updated: Existing keys replaced by a more confident fact.
        urls_processed: URLs selected by discovery.
        pages_scraped: Pages that produced a document.
        error: Failure message when ``status`` is ``failed``.
    """

    job_id: str
    brain_id: str
    source_id: str
    status: str
    facts_added: int = 0
    facts_updated: int = 0
    urls_processed: int = 0
    pages_scraped: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == JOB_SUCCESS

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "brain_id": self.brain_id,
            "source_id": self.source_id,
            "status": self.status,
            "facts_added": self.facts_added,
            "facts_updated": self.facts_updated,
            "urls_processed": self.urls_processed,
            "pages_scraped": self.pages_scraped,
            "error": self.error,
        }

    def summary(self) -> str:
        """Generate a human-readable summary."""
        if not self.succeeded:
            return f"Job {self.job_id} failed: {self.error}"
        return (
            f"Job {self.job_id} completed: {self.urls_processed} URLs, "
            f"{self.pages_scraped} pages scraped, "
            f"{self.facts_added} facts added, {self.facts_updated} facts updated"
        )


class JobProgress:
    """Single writer for an ingest job's progress, audit log and terminal state.

    Progress is clamped to ``[0, 100]`` and never moves backwards. Every update
    appends a line to the job's log. Intermediate saves are best effort; the
    terminal save in :meth:`complete` or :meth:`fail` raises on failure.
    """

    def __init__(self, store: IngestStore, job: IngestJob) -> None:
        self.store = store
        self.job = job

    def update(self, progress: float, message: str) -> None:
        self.job.progress = round(min(100.0, max(self.job.progress, progress)), 2)
        self._append(message)
        logger.info("[job %s] %.0f%% %s", self.job.id, self.job.progress, message)
        self._save_best_effort()

    def note(self, message: str) -> None:
        """Append a log line without moving progress."""
        self._append(message)
        self._save_best_effort()

    def complete(self, facts_added: int, facts_updated: int) -> None:
        self.job.status = JOB_SUCCESS
        self.job.progress = 100.0
        self.job.facts_added = facts_added
        self.job.facts_updated = facts_updated
        self.job.finished_at = datetime.now(timezone.utc)
        self._append(f"Completed! Added {facts_added} facts, updated {facts_updated} facts.")
        self.store.save_job(self.job)

    def fail(self, message: str) -> None:
        self.job.status = JOB_FAILED
        self.job.finished_at = datetime.now(timezone.utc)
        self._append(f"Error: {message}")
        self.store.save_job(self.job)

    def _append(self, message: str) -> None:
        self.job.logs = f"{self.job.logs}\n{message}" if self.job.logs else message

    def _save_best_effort(self) -> None:
        try:
            self.store.save_job(self.job)
        except (StorageError, OSError) as exc:
            logger.warning("Failed to save progress for job %s: %s", self.job.id, exc)


def build_fact_extractor(config: IngestConfig) -> FactExtractor:
    """Create the default extractor, without an LLM when none is configured."""
    client = None
    if config.use_llm:
        try:
            project = get_config()
            client = LLMClient(
                api_url=project.api_url,
                model=project.model,
                timeout=config.politeness.request_timeout,
            )
        except LLMClientError as exc:
            logger.warning("LLM extraction disabled: %s", exc)
    return FactExtractor(client, heuristic_confidence=config.heuristic_confidence)


def run_ingest(
    brain_id: str,
    source_id: str,
    *,
    store: IngestStore | None = None,
    config: IngestConfig | None = None,
    fetcher: PageFetcher | None = None,
    fact_extractor: FactExtractor | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> IngestResult:
    """Ingest one knowledge source into a brain.

    Args:
        brain_id: Brain that receives the facts.
        source_id: Knowledge source to ingest.
        store: Persistence. Uses the default data root if None.
        config: Run configuration. Uses defaults if None.
        fetcher: Page fetcher. An :class:`HtmlFetcher` if None.
        fact_extractor: Fact extractor. Built from ``config`` if None.
        sleep: Used for every pacing delay.

    Returns:
        IngestResult describing the terminal job state.

    Raises:
        SourceNotFoundError: If ``source_id`` is unknown. No job is created.
        StorageError: If the job cannot be created or its terminal state
            cannot be saved.
    """
    config = config or IngestConfig()
    store = store or IngestStore(config.data_root)

    source = store.get_source(source_id)
    if source is None:
        raise SourceNotFoundError(f"Knowledge source not found: {source_id}")

    fetcher = fetcher or HtmlFetcher(timeout=config.politeness.request_timeout)
    fact_extractor = fact_extractor or build_fact_extractor(config)
    politeness = config.politeness

    job = store.create_job(brain_id, source_id)
    progress = JobProgress(store, job)
    result = IngestResult(job_id=job.id, brain_id=brain_id, source_id=source_id, status=job.status)
    logger.info("Starting ingest job %s (brain=%s, source=%s)", job.id, brain_id, source_id)

    try:
        progress.update(10, "Discovering URLs...")
        urls = discover(
            source,
            fetcher=fetcher,
            config=config,
            limiter=RateLimiter(politeness.crawl_delay_seconds, sleep=sleep),
        )
        result.urls_processed = len(urls)
        progress.update(20, f"Found {len(urls)} URLs")
        progress.update(25, f"Processing {len(urls)} URLs")

        documents = _scrape(
            urls,
            fetcher,
            progress,
            RateLimiter(politeness.fetch_delay_seconds, sleep=sleep),
        )
        result.pages_scraped = len(documents)
        progress.update(60, f"Scraped {len(documents)} pages, extracting facts...")

        existing = store.list_facts(brain_id)
        brain_context = _summarize_facts(existing) if config.use_brain_context else None

        def on_progress(index: int, total: int, document: Document) -> None:
            progress.update(60 + (index / total) * 30, f"Extracting facts from {index + 1}/{total}")

        facts = fact_extractor.extract_batch(
            documents,
            brain_context=brain_context,
            on_progress=on_progress,
            limiter=RateLimiter(politeness.llm_delay_seconds, sleep=sleep),
        )

        plan = reconcile(facts, existing)
        progress.update(95, f"Saving {plan.total_writes} facts to database...")

        added, updated = _persist(store, brain_id, plan, config.persist_retries)
        store.mark_source_ingested(source_id)
        progress.complete(added, updated)
    except Exception as exc:
        logger.error("Ingest job %s failed: %s", job.id, exc)
        progress.fail(str(exc))
        result.status = JOB_FAILED
        result.error = str(exc)
        return result

    result.status = JOB_SUCCESS
    result.facts_added = added
    result.facts_updated = updated

    store.record_event(
        "ingest",
        "job_completed",
        {
            "job_id": job.id,
            "brain_id": brain_id,
            "source_id": source_id,
            "urls_processed": result.urls_processed,
            "facts_added": added,
            "facts_updated": updated,
        },
    )
    logger.info(result.summary())
    return result


def _scrape(
    urls: Sequence[str],
    fetcher: PageFetcher,
    progress: JobProgress,
    limiter: RateLimiter,
) -> List[Document]:
    documents: List[Document] = []
    total = len(urls)
    for index, url in enumerate(urls):
        progress.update(25 + (index / total) * 30, f"Scraping {index + 1}/{total}: {url}")
        limiter.wait()
        try:
            html = fetcher.fetch_html(url)
            document = extract_content(html, url)
        except Exception as exc:
            logger.warning("Failed to scrape %s: %s", url, exc)
            progress.note(f"Failed to scrape {url}: {exc}")
            continue
        if document is None:
            logger.warning("No content extracted from %s", url)
            continue
        documents.append(document)
    return documents


def _persist(
    store: IngestStore,
    brain_id: str,
    plan: ReconcilePlan,
    retries: int,
) -> tuple[int, int]:
    """Write the planned facts, returning ``(added, updated)``.

    An insert that finds its key already stored falls back to a
    confidence-checked update.
    """
    added = 0
    updated = 0

    for fact in plan.to_insert:
        row = _to_brain_fact(brain_id, fact)
        inserted = _write_with_retries(store.insert_fact, row, retries)
        if inserted:
            added += 1
        elif inserted is False and _write_with_retries(store.update_fact, row, retries):
            updated += 1

    for fact in plan.to_update:
        if _write_with_retries(store.update_fact, _to_brain_fact(brain_id, fact), retries):
            updated += 1

    return added, updated


def _write_with_retries(
    operation: Callable[[BrainFact], bool],
    fact: BrainFact,
    retries: int,
) -> bool | None:
    """Run ``operation`` up to ``retries`` times; None when every attempt failed."""
    for attempt in range(1, retries + 1):
        try:
            return operation(fact)
        except StorageError as exc:
            logger.warning(
                "Failed to persist fact %r (attempt %d/%d): %s",
                fact.key,
                attempt,
                retries,
                exc,
            )
    logger.error("Skipping fact %r after %d failed attempts", fact.key, retries)
    return None


def _to_brain_fact(brain_id: str, fact: Fact) -> BrainFact:
    return BrainFact(
        brain_id=brain_id,
        key=fact.key,
        value=fact.value,
        source=fact.source,
        confidence=float(fact.confidence),
        last_verified_at=datetime.now(timezone.utc),
    )


def _summarize_facts(facts: Sequence[BrainFact]) -> str | None:
    if not facts:
        return None
    ranked = sorted(facts, key=lambda fact: fact.confidence, reverse=True)
    return "\n".join(f"- {fact.key}: {fact.value}" for fact in ranked[:MAX_CONTEXT_FACTS])
