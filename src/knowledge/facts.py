"""Fact candidates, validation and the heuristic (non-LLM) extractor."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List

from src.parsing.base import Document

HEURISTIC_CONFIDENCE = 0.6

MIN_KEY_LENGTH = 3
MAX_KEY_LENGTH = 100
MIN_VALUE_LENGTH = 2

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")


@dataclass(slots=True)
class Fact:
    """A key/value observation extracted from one page, before reconciliation."""

    key: str
    value: str
    confidence: float
    source: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "confidence": self.confidence,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Fact":
        return cls(
            key=payload["key"],
            value=payload["value"],
            confidence=float(payload["confidence"]),
            source=payload.get("source", ""),
        )


def normalize_fact_key(key: str) -> str:
    """Identity of a fact key: whitespace collapsed and case folded."""
    return " ".join(key.split()).casefold()


def validate_fact(fact: Fact) -> bool:
    """Return True when ``fact`` is fit to reach the reconciler.

    Rejects empty or out-of-bounds keys, empty or one-character values and
    confidences that are not numbers in ``[0, 1]``.
    """
    key = fact.key.strip() if isinstance(fact.key, str) else ""
    if not MIN_KEY_LENGTH <= len(key) <= MAX_KEY_LENGTH:
        return False

    value = fact.value.strip() if isinstance(fact.value, str) else ""
    if len(value) < MIN_VALUE_LENGTH:
        return False

    confidence = fact.confidence
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return False
    return 0.0 <= confidence <= 1.0


def extract_simple_facts(
    document: Document,
    confidence: float = HEURISTIC_CONFIDENCE,
) -> List[Fact]:
    """Derive facts from page metadata and text patterns.

    Used when the LLM pass yields nothing. Every fact carries ``confidence``
    and the document URL as its source.
    """
    metadata = document.metadata
    pairs: List[tuple[str, str]] = []

    if metadata.og_site_name:
        pairs.append(("Site Name", metadata.og_site_name))

    description = metadata.og_description or metadata.description
    if description:
        pairs.append(("Description", description))

    if document.title:
        pairs.append(("Page Title", document.title))

    text = document.text_content or ""
    email = _EMAIL_RE.search(text)
    if email:
        pairs.append(("Email", email.group(0)))

    phone = _PHONE_RE.search(text)
    if phone:
        pairs.append(("Phone", phone.group(0)))

    return [
        Fact(key=key, value=value, confidence=confidence, source=document.url)
        for key, value in pairs
    ]
