"""Tests for fact validation and heuristic extraction."""

from __future__ import annotations

import pytest

from src.knowledge.facts import (
    Fact,
    extract_simple_facts,
    normalize_fact_key,
    validate_fact,
)
from src.parsing.base import Document, PageMetadata


def _document(**overrides) -> Document:
    values = {
        "url": "https://acme.example/contact",
        "title": "",
        "content": "",
        "text_content": "",
        "excerpt": "",
        "metadata": PageMetadata(),
    }
    values.update(overrides)
    return Document(**values)


class TestValidateFact:
    """Tests for validate_fact."""

    def test_accepts_well_formed_fact(self) -> None:
        """A normal fact passes."""
        assert validate_fact(Fact("Founded Year", "1987", 0.9, "https://acme.example/"))

    @pytest.mark.parametrize(
        "fact",
        [
            Fact("", "value", 0.5, "s"),
            Fact("   ", "value", 0.5, "s"),
            Fact("ab", "value", 0.5, "s"),
            Fact("k" * 101, "value", 0.5, "s"),
            Fact("Key", "", 0.5, "s"),
            Fact("Key", " x ", 0.5, "s"),
            Fact("Key", "value", -0.1, "s"),
            Fact("Key", "value", 1.01, "s"),
            Fact("Key", "value", True, "s"),
            Fact("Key", "value", "0.5", "s"),
        ],
    )
    def test_rejects_invalid_facts(self, fact: Fact) -> None:
        """Empty or out-of-bounds keys, values and confidences are rejected."""
        assert validate_fact(fact) is False

    def test_confidence_bounds_are_inclusive(self) -> None:
        """0 and 1 are valid confidences."""
        assert validate_fact(Fact("Key", "value", 0, "s"))
        assert validate_fact(Fact("Key", "value", 1.0, "s"))


class TestNormalizeFactKey:
    """Tests for fact key identity."""

    def test_case_and_whitespace_insensitive(self) -> None:
        """Keys differing only in case or spacing are the same key."""
        assert normalize_fact_key("  Company   Name ") == normalize_fact_key("company name")


class TestExtractSimpleFacts:
    """Tests for the heuristic extractor."""

    def test_description_from_meta(self) -> None:
        """A description meta with no LLM facts yields a 0.6 Description fact."""
        document = _document(metadata=PageMetadata(description="Widgets"))

        facts = extract_simple_facts(document)

        assert facts == [Fact("Description", "Widgets", 0.6, "https://acme.example/contact")]

    def test_og_description_preferred(self) -> None:
        """og:description wins over description."""
        document = _document(metadata=PageMetadata(og_description="OG", description="Plain"))

        assert extract_simple_facts(document)[0].value == "OG"

    def test_all_heuristics_in_order(self) -> None:
        """Site name, description, title, email and phone are derived in order."""
        document = _document(
            title="Contact Acme",
            text_content="Write to info@acme.example or call (555) 123-4567 today. Or sales@acme.example.",
            metadata=PageMetadata(og_site_name="Acme", description="Widgets"),
        )

        facts = extract_simple_facts(document)

        assert [(fact.key, fact.value) for fact in facts] == [
            ("Site Name", "Acme"),
            ("Description", "Widgets"),
            ("Page Title", "Contact Acme"),
            ("Email", "info@acme.example"),
            ("Phone", "(555) 123-4567"),
        ]
        assert all(fact.confidence == 0.6 for fact in facts)
        assert all(fact.source == document.url for fact in facts)

    def test_custom_confidence(self) -> None:
        """The confidence can be overridden."""
        facts = extract_simple_facts(_document(title="Home"), confidence=0.4)

        assert facts[0].confidence == 0.4

    def test_nothing_to_extract(self) -> None:
        """A bare document yields no facts."""
        assert extract_simple_facts(_document()) == []
