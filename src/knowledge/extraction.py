"""Fact extraction: an LLM pass with a heuristic fallback."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Callable, List, Sequence

from src.integrations.llm.client import LLMClientError, dumps_for_prompt
from src.parsing.base import Document

from .facts import HEURISTIC_CONFIDENCE, Fact, extract_simple_facts, validate_fact

if TYPE_CHECKING:
    from src.integrations.llm.client import LLMClient
    from src.knowledge.pipeline.scheduler import RateLimiter

logger = logging.getLogger(__name__)

# Characters of page text sent to the model
MAX_CONTENT_CHARS = 4000
DEFAULT_LLM_CONFIDENCE = 0.8

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

_SYSTEM_PROMPT = """You are a fact extraction specialist. Your job is to extract structured, atomic facts from web content that would be useful for building a business knowledge base.

## EXTRACTION RULES:
1. Extract only verifiable, factual information (no opinions or speculation)
2. Format each fact as a clear key-value pair
3. Keep keys concise and descriptive (e.g., "Company Name", "Founded Year", "CEO")
4. Values should be specific and detailed
5. Assign confidence (0-1) based on source quality and clarity
6. Focus on business-relevant information: company details, services, products, team, locations, contact info

## OUTPUT FORMAT:
Return ONLY a JSON array of facts:
[
  {"key": "Company Name", "value": "Acme Corporation", "confidence": 1.0},
  {"key": "Industry", "value": "Manufacturing and distribution of widgets", "confidence": 0.9}
]
If no facts are found, return []."""


class ExtractionError(RuntimeError):
    """Raised when the LLM reply cannot be turned into facts."""


ProgressCallback = Callable[[int, int, Document], None]


class FactExtractor:
    """Produces fact candidates for a document.

    The LLM pass runs first. Its facts carry the confidence the model
    reports. Only when it yields nothing (including when the call fails) do
    the metadata/pattern heuristics run, at ``heuristic_confidence``.
    """

    def __init__(
        self,
        client: "LLMClient | None" = None,
        *,
        heuristic_confidence: float = HEURISTIC_CONFIDENCE,
        max_content_chars: int = MAX_CONTENT_CHARS,
    ) -> None:
        self.client = client
        self.heuristic_confidence = heuristic_confidence
        self.max_content_chars = max_content_chars

    def extract_facts(self, document: Document, brain_context: str | None = None) -> List[Fact]:
        """Return fact candidates for ``document`` (not yet validated)."""
        facts = self.extract_facts_with_llm(document, brain_context)
        if facts:
            return facts
        logger.debug("No LLM facts for %s, using heuristics", document.url)
        return extract_simple_facts(document, confidence=self.heuristic_confidence)

    def extract_facts_with_llm(
        self,
        document: Document,
        brain_context: str | None = None,
    ) -> List[Fact]:
        """Ask the model for facts. Any failure is logged and returns ``[]``."""
        if self.client is None:
            return []

        messages = [
            {"role": "system", "content": self._build_system_prompt(brain_context)},
            {"role": "user", "content": self._build_user_prompt(document)},
        ]
        try:
            response = self.client.chat_completion(
                messages=messages,
                temperature=0.3,
                max_tokens=2000,
            )
            if not response.choices:
                raise ExtractionError("No response from LLM")
            return parse_llm_facts(response.choices[0].message.content or "", document.url)
        except (LLMClientError, ExtractionError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("LLM fact extraction failed for %s: %s", document.url, exc)
            return []

    def extract_batch(
        self,
        documents: Sequence[Document],
        *,
        brain_context: str | None = None,
        on_progress: ProgressCallback | None = None,
        limiter: "RateLimiter | None" = None,
    ) -> List[Fact]:
        """Extract and validate facts for many documents, in order.

        A document whose extraction raises is logged and skipped. ``limiter``
        paces consecutive documents; ``on_progress(index, total, document)``
        runs before each one.
        """
        facts: List[Fact] = []
        total = len(documents)
        for index, document in enumerate(documents):
            if on_progress is not None:
                on_progress(index, total, document)
            if limiter is not None:
                limiter.wait()
            try:
                candidates = self.extract_facts(document, brain_context)
            except Exception as exc:
                logger.warning("Failed to extract facts from %s: %s", document.url, exc)
                continue

            valid = [fact for fact in candidates if validate_fact(fact)]
            if len(valid) < len(candidates):
                logger.debug(
                    "Dropped %d invalid facts from %s",
                    len(candidates) - len(valid),
                    document.url,
                )
            facts.extend(valid)
        return facts

    def _build_system_prompt(self, brain_context: str | None) -> str:
        if not brain_context:
            return _SYSTEM_PROMPT
        return (
            f"{_SYSTEM_PROMPT}\n\n## EXISTING KNOWLEDGE:\n{brain_context}\n\n"
            "Only extract NEW or UPDATED facts that complement existing knowledge."
        )

    def _build_user_prompt(self, document: Document) -> str:
        parts = [
            "Extract structured facts from this content:",
            "",
            f"URL: {document.url}",
            f"Title: {document.title}",
            "",
            "Content:",
            document.text_content[: self.max_content_chars],
        ]
        metadata = document.metadata.to_dict()
        if metadata:
            parts.extend(["", f"Metadata: {dumps_for_prompt(metadata)}"])
        return "\n".join(parts)


def parse_llm_facts(content: str, source: str) -> List[Fact]:
    """Parse the first JSON array in a model reply into facts.

    Raises:
        ExtractionError: If no JSON array can be found or decoded.
    """
    match = _JSON_ARRAY_RE.search(content)
    if not match:
        raise ExtractionError("No JSON array found in LLM response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Failed to parse LLM response as JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ExtractionError("LLM did not return a JSON array")

    facts: List[Fact] = []
    for item in data:
        if not isinstance(item, dict) or "key" not in item or "value" not in item:
            continue
        facts.append(
            Fact(
                key=str(item["key"]).strip(),
                value=_stringify(item["value"]),
                confidence=_coerce_confidence(item.get("confidence")),
                source=source,
            )
        )
    return facts


def _stringify(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    if value is None:
        return ""
    return str(value).strip()


def _coerce_confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_LLM_CONFIDENCE
    try:
        return float(value)
    except (TypeError, ValueError):
        return DEFAULT_LLM_CONFIDENCE
