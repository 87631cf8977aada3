"""Confidence-based merge of newly extracted facts into a brain's fact set.

Rules, applied to each new fact in processing order:

- key unknown to the brain and not yet staged: insert
- key stored with lower confidence: update (value, source, confidence)
- otherwise: discard, the incumbent wins ties

Facts staged earlier in the same batch count as incumbents for later
duplicates, so a run stages at most one write per key, carrying the highest
confidence seen and the first fact among equals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Protocol

from .facts import Fact, normalize_fact_key, validate_fact

logger = logging.getLogger(__name__)

_INSERT = "insert"
_UPDATE = "update"


class KeyedFact(Protocol):
    key: str
    confidence: float


@dataclass
class ReconcilePlan:
    """Writes decided by :func:`reconcile`."""

    to_insert: List[Fact] = field(default_factory=list)
    to_update: List[Fact] = field(default_factory=list)
    discarded: List[Fact] = field(default_factory=list)

    @property
    def total_writes(self) -> int:
        return len(self.to_insert) + len(self.to_update)

    def to_dict(self) -> dict:
        return {
            "to_insert": len(self.to_insert),
            "to_update": len(self.to_update),
            "discarded": len(self.discarded),
        }


def reconcile(new_facts: Iterable[Fact], existing_facts: Iterable[KeyedFact]) -> ReconcilePlan:
    """Decide insert/update/discard for ``new_facts`` against one brain's stored facts.

    Keys match after whitespace collapsing and case folding. Updates keep the
    stored key's spelling so they address the existing record.
    """
    existing = {normalize_fact_key(fact.key): fact for fact in existing_facts}
    staged: dict[str, tuple[str, Fact]] = {}
    plan = ReconcilePlan()

    for fact in new_facts:
        if not validate_fact(fact):
            plan.discarded.append(fact)
            continue

        norm = normalize_fact_key(fact.key)

        if norm in staged:
            action, current = staged[norm]
            if fact.confidence > current.confidence:
                key = current.key if action == _UPDATE else fact.key
                staged[norm] = (action, replace(fact, key=key))
                plan.discarded.append(current)
            else:
                plan.discarded.append(fact)
            continue

        stored = existing.get(norm)
        if stored is None:
            staged[norm] = (_INSERT, fact)
        elif fact.confidence > stored.confidence:
            staged[norm] = (_UPDATE, replace(fact, key=stored.key))
        else:
            plan.discarded.append(fact)

    for action, fact in staged.values():
        if action == _INSERT:
            plan.to_insert.append(fact)
        else:
            plan.to_update.append(fact)

    logger.debug(
        "Reconciled facts: %d insert, %d update, %d discarded",
        len(plan.to_insert),
        len(plan.to_update),
        len(plan.discarded),
    )
    return plan
