"""File-backed storage for knowledge sources, ingest jobs and brain facts.

Layout under the data root::

    sources/<source_id>.json   KnowledgeSource rows
    jobs/<job_id>.json         IngestJob rows
    facts/<brain_id>.json      normalized key -> BrainFact
    telemetry.jsonl            append-only events

Every write goes to a temporary file that is then renamed over the target,
so a fact's value, source, confidence and verification time change together.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from src import paths

from .facts import normalize_fact_key

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("url", "sitemap", "feed")

JOB_RUNNING = "running"
JOB_SUCCESS = "success"
JOB_FAILED = "failed"
JOB_STATUSES = (JOB_RUNNING, JOB_SUCCESS, JOB_FAILED)

DEFAULT_MAX_PAGES = 20


class StorageError(RuntimeError):
    """Raised when a row cannot be read or written."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(slots=True)
class SourceConfig:
    """Where a source looks and how much it takes.

    ``include``/``exclude`` are plain substring filters. ``crawl`` switches a
    ``url`` source to breadth-first link following up to ``max_depth``.
    """

    url: str = ""
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    max_pages: int = DEFAULT_MAX_PAGES
    crawl: bool = False
    max_depth: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "include": self.include,
            "exclude": self.exclude,
            "maxPages": self.max_pages,
            "crawl": self.crawl,
            "maxDepth": self.max_depth,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "SourceConfig":
        payload = payload or {}
        max_pages = payload.get("maxPages", payload.get("max_pages"))
        max_depth = payload.get("maxDepth", payload.get("max_depth"))
        return cls(
            url=payload.get("url") or "",
            include=[str(p) for p in payload.get("include") or [] if p],
            exclude=[str(p) for p in payload.get("exclude") or [] if p],
            max_pages=int(max_pages) if max_pages else DEFAULT_MAX_PAGES,
            crawl=bool(payload.get("crawl", False)),
            max_depth=int(max_depth) if max_depth is not None else None,
        )


@dataclass(slots=True)
class KnowledgeSource:
    """A configured content source belonging to one brain."""

    id: str
    brain_id: str
    type: str  # "url" | "sitemap" | "feed"
    config: SourceConfig = field(default_factory=SourceConfig)
    name: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    last_ingested_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "brain_id": self.brain_id,
            "type": self.type,
            "config": self.config.to_dict(),
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "last_ingested_at": _format_datetime(self.last_ingested_at),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "KnowledgeSource":
        return cls(
            id=payload["id"],
            brain_id=payload.get("brain_id", ""),
            type=payload["type"],
            config=SourceConfig.from_dict(payload.get("config")),
            name=payload.get("name", ""),
            created_at=_parse_datetime(payload.get("created_at")) or _utcnow(),
            last_ingested_at=_parse_datetime(payload.get("last_ingested_at")),
        )


@dataclass(slots=True)
class BrainFact:
    """A stored fact; at most one per ``(brain_id, normalized key)``."""

    brain_id: str
    key: str
    value: str
    source: str
    confidence: float
    last_verified_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "brain_id": self.brain_id,
            "key": self.key,
            "value": self.value,
            "source": self.source,
            "confidence": self.confidence,
            "last_verified_at": self.last_verified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "BrainFact":
        return cls(
            brain_id=payload["brain_id"],
            key=payload["key"],
            value=payload["value"],
            source=payload.get("source", ""),
            confidence=float(payload.get("confidence", 0.0)),
            last_verified_at=_parse_datetime(payload.get("last_verified_at")) or _utcnow(),
        )


@dataclass(slots=True)
class IngestJob:
    """One ingestion run against one source, with its audit trail."""

    id: str
    brain_id: str
    source_id: str
    status: str = JOB_RUNNING
    progress: float = 0.0
    logs: str = ""
    facts_added: int = 0
    facts_updated: int = 0
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != JOB_RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "brain_id": self.brain_id,
            "source_id": self.source_id,
            "status": self.status,
            "progress": self.progress,
            "logs": self.logs,
            "facts_added": self.facts_added,
            "facts_updated": self.facts_updated,
            "started_at": self.started_at.isoformat(),
            "finished_at": _format_datetime(self.finished_at),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "IngestJob":
        return cls(
            id=payload["id"],
            brain_id=payload["brain_id"],
            source_id=payload["source_id"],
            status=payload.get("status", JOB_RUNNING),
            progress=float(payload.get("progress", 0.0)),
            logs=payload.get("logs", ""),
            facts_added=payload.get("facts_added", 0),
            facts_updated=payload.get("facts_updated", 0),
            started_at=_parse_datetime(payload.get("started_at")) or _utcnow(),
            finished_at=_parse_datetime(payload.get("finished_at")),
        )


class IngestStore:
    """Reads and writes the sources, jobs and facts the pipeline works with."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or paths.get_data_root()
        self.root = self.root if self.root.is_absolute() else self.root.resolve()
        self._sources_dir = self.root / "sources"
        self._jobs_dir = self.root / "jobs"
        self._facts_dir = self.root / "facts"
        for directory in (self._sources_dir, self._jobs_dir, self._facts_dir):
            directory.mkdir(parents=True, exist_ok=True)
        self._telemetry_path = self.root / "telemetry.jsonl"

    # -- sources -----------------------------------------------------------

    def create_source(
        self,
        brain_id: str,
        source_type: str,
        config: SourceConfig,
        name: str = "",
    ) -> KnowledgeSource:
        """Register a new source and return it."""
        source = KnowledgeSource(
            id=uuid.uuid4().hex,
            brain_id=brain_id,
            type=source_type,
            config=config,
            name=name or config.url,
        )
        self.save_source(source)
        return source

    def save_source(self, source: KnowledgeSource) -> None:
        self._write_json(self._sources_dir / f"{source.id}.json", source.to_dict())

    def get_source(self, source_id: str) -> KnowledgeSource | None:
        """Retrieve a source by id, or None if unknown."""
        payload = self._read_json(self._sources_dir / f"{_safe_id(source_id)}.json")
        if payload is None:
            return None
        try:
            return KnowledgeSource.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Corrupt source record {source_id}: {exc}") from exc

    def list_sources(self, brain_id: str | None = None) -> List[KnowledgeSource]:
        sources: List[KnowledgeSource] = []
        for path in sorted(self._sources_dir.glob("*.json")):
            source = self.get_source(path.stem)
            if source is None:
                continue
            if brain_id is not None and source.brain_id != brain_id:
                continue
            sources.append(source)
        return sources

    def mark_source_ingested(self, source_id: str, when: datetime | None = None) -> None:
        """Record a successful ingestion time on the source."""
        source = self.get_source(source_id)
        if source is None:
            raise StorageError(f"Unknown source {source_id}")
        source.last_ingested_at = when or _utcnow()
        self.save_source(source)

    # -- jobs --------------------------------------------------------------

    def create_job(self, brain_id: str, source_id: str, log: str = "Starting ingestion...") -> IngestJob:
        """Insert a running job at progress 0."""
        job = IngestJob(
            id=uuid.uuid4().hex,
            brain_id=brain_id,
            source_id=source_id,
            logs=log,
        )
        self._write_json(self._jobs_dir / f"{job.id}.json", job.to_dict())
        return job

    def get_job(self, job_id: str) -> IngestJob | None:
        payload = self._read_json(self._jobs_dir / f"{_safe_id(job_id)}.json")
        if payload is None:
            return None
        try:
            return IngestJob.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Corrupt job record {job_id}: {exc}") from exc

    def save_job(self, job: IngestJob) -> None:
        """Persist ``job``.

        Raises:
            StorageError: If the stored job is already terminal and ``job``
                would change its status.
        """
        if job.status not in JOB_STATUSES:
            raise StorageError(f"Invalid job status: {job.status}")
        stored = self.get_job(job.id)
        if stored is not None and stored.is_terminal and stored.status != job.status:
            raise StorageError(f"Job {job.id} is already {stored.status}")
        self._write_json(self._jobs_dir / f"{job.id}.json", job.to_dict())

    # -- facts -------------------------------------------------------------

    def list_facts(self, brain_id: str) -> List[BrainFact]:
        """All stored facts for ``brain_id``."""
        return list(self._load_facts(brain_id).values())

    def insert_fact(self, fact: BrainFact) -> bool:
        """Insert ``fact``; returns False if the brain already has the key."""
        facts = self._load_facts(fact.brain_id)
        norm = normalize_fact_key(fact.key)
        if norm in facts:
            return False
        facts[norm] = fact
        self._save_facts(fact.brain_id, facts)
        return True

    def update_fact(self, fact: BrainFact) -> bool:
        """Replace the stored fact for the key if ``fact`` is strictly more confident.

        Returns whether the update applied. A missing key is not created.
        """
        facts = self._load_facts(fact.brain_id)
        norm = normalize_fact_key(fact.key)
        stored = facts.get(norm)
        if stored is None or fact.confidence <= stored.confidence:
            return False
        stored.value = fact.value
        stored.source = fact.source
        stored.confidence = fact.confidence
        stored.last_verified_at = fact.last_verified_at
        self._save_facts(fact.brain_id, facts)
        return True

    def _facts_path(self, brain_id: str) -> Path:
        return self._facts_dir / f"{_safe_id(brain_id)}.json"

    def _load_facts(self, brain_id: str) -> dict[str, BrainFact]:
        payload = self._read_json(self._facts_path(brain_id)) or {}
        try:
            return {norm: BrainFact.from_dict(row) for norm, row in payload.get("facts", {}).items()}
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise StorageError(f"Corrupt fact store for brain {brain_id}: {exc}") from exc

    def _save_facts(self, brain_id: str, facts: dict[str, BrainFact]) -> None:
        self._write_json(
            self._facts_path(brain_id),
            {
                "brain_id": brain_id,
                "updated_at": _utcnow().isoformat(),
                "facts": {norm: fact.to_dict() for norm, fact in facts.items()},
            },
        )

    # -- telemetry ---------------------------------------------------------

    def record_event(self, area: str, name: str, payload: dict[str, Any]) -> None:
        """Append a telemetry event. Failures are logged, never raised."""
        event = {
            "area": area,
            "name": name,
            "payload": payload,
            "recorded_at": _utcnow().isoformat(),
        }
        try:
            with open(self._telemetry_path, "a", encoding="utf-8") as handle:
                handle.write(json.dumps(event, default=str) + "\n")
        except OSError as exc:
            logger.warning("Failed to record telemetry event %s/%s: %s", area, name, exc)

    # -- helpers -----------------------------------------------------------

    def _read_json(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def _write_json(self, path: Path, payload: dict[str, Any]) -> None:
        content = json.dumps(payload, indent=2)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc


def _safe_id(identifier: str) -> str:
    """Reject identifiers that would escape the storage directory."""
    if not identifier or "/" in identifier or "\\" in identifier or identifier.startswith("."):
        raise StorageError(f"Invalid identifier: {identifier!r}")
    return identifier
