"""Request/response boundary for starting an ingest job.

``handle_ingest_request`` takes the ``{"brainId", "sourceId"}`` payload a
caller submits and returns an :class:`IngestResponse` carrying an HTTP-style
status code and JSON body, independent of any web framework.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from src.knowledge.discovery import PageFetcher
from src.knowledge.extraction import FactExtractor
from src.knowledge.storage import IngestStore

from .config import IngestConfig
from .runner import SourceNotFoundError, run_ingest

logger = logging.getLogger(__name__)

ERROR_CODE = "INGEST_ERROR"


@dataclass(frozen=True)
class IngestResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.body)


def _error(status_code: int, message: str, code: str | None = None) -> IngestResponse:
    error: dict[str, Any] = {"message": message}
    if code:
        error["code"] = code
    return IngestResponse(status_code, {"error": error})


def handle_ingest_request(
    payload: Mapping[str, Any] | str | bytes | None,
    *,
    store: IngestStore | None = None,
    config: IngestConfig | None = None,
    fetcher: PageFetcher | None = None,
    fact_extractor: FactExtractor | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> IngestResponse:
    """Validate a request, run the job and map its outcome to a response.

    - missing ``brainId`` or ``sourceId``: 400
    - unknown source: 404
    - job finished ``success``: 202 with the job id and fact counts
    - job finished ``failed`` or could not be recorded: 500, code ``INGEST_ERROR``
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload or "{}")
        except ValueError:
            return _error(400, "Request body must be a JSON object")
    if not isinstance(payload, Mapping):
        payload = {}

    brain_id = payload.get("brainId")
    source_id = payload.get("sourceId")
    if not brain_id or not source_id:
        return _error(400, "brainId and sourceId required")

    config = config or IngestConfig()
    store = store or IngestStore(config.data_root)

    try:
        result = run_ingest(
            str(brain_id),
            str(source_id),
            store=store,
            config=config,
            fetcher=fetcher,
            fact_extractor=fact_extractor,
            sleep=sleep,
        )
    except SourceNotFoundError:
        return _error(404, "Knowledge source not found")
    except Exception as exc:
        logger.exception("Ingest request for source %s failed", source_id)
        return _error(500, str(exc) or "Ingestion failed", ERROR_CODE)

    if not result.succeeded:
        return _error(500, result.error or "Ingestion failed", ERROR_CODE)

    return IngestResponse(
        202,
        {
            "jobId": result.job_id,
            "status": "completed",
            "factsAdded": result.facts_added,
            "factsUpdated": result.facts_updated,
        },
    )
