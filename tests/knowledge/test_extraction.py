"""Tests for LLM-first fact extraction."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from src.integrations.llm.client import (
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    LLMClient,
    LLMClientError,
)
from src.knowledge.extraction import (
    ExtractionError,
    FactExtractor,
    MAX_CONTENT_CHARS,
    parse_llm_facts,
)
from src.knowledge.facts import Fact
from src.parsing.base import Document, PageMetadata


def _document(url: str = "https://acme.example/about", **overrides) -> Document:
    values = {
        "url": url,
        "title": "About Acme",
        "content": "<p>Acme makes widgets.</p>",
        "text_content": "Acme makes widgets.",
        "excerpt": "Acme makes widgets.",
        "metadata": PageMetadata(description="Widgets"),
    }
    values.update(overrides)
    return Document(**values)


def _reply(content: str) -> ChatCompletionResponse:
    return ChatCompletionResponse(
        id="resp-1",
        model="gpt-4o-mini",
        choices=(Choice(index=0, message=ChatMessage(role="assistant", content=content)),),
    )


def _client(content: str | None = None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.chat_completion.side_effect = error
    else:
        client.chat_completion.return_value = _reply(content or "[]")
    return client


class TestParseLlmFacts:
    """Tests for parsing model replies."""

    def test_parses_array_in_markdown_fence(self) -> None:
        """The first JSON array is found inside surrounding prose."""
        content = 'Here you go:\n```json\n[{"key": "CEO", "value": "Jane Doe", "confidence": 0.95}]\n```'

        facts = parse_llm_facts(content, "https://acme.example/")

        assert facts == [Fact("CEO", "Jane Doe", 0.95, "https://acme.example/")]

    def test_defaults_and_stringifies(self) -> None:
        """Missing confidence defaults to 0.8; structured values become JSON."""
        content = json.dumps(
            [
                {"key": "Founded", "value": 1987},
                {"key": "Offices", "value": ["Springfield", "Dayton"], "confidence": "0.7"},
                {"key": "Bad", "confidence": 0.9},
                "not a dict",
            ]
        )

        facts = parse_llm_facts(content, "src")

        assert facts == [
            Fact("Founded", "1987", 0.8, "src"),
            Fact("Offices", '["Springfield", "Dayton"]', 0.7, "src"),
        ]

    def test_no_array_raises(self) -> None:
        """Replies without a JSON array are an extraction error."""
        with pytest.raises(ExtractionError):
            parse_llm_facts("I could not find any facts.", "src")

    def test_malformed_json_raises(self) -> None:
        """A broken array is an extraction error."""
        with pytest.raises(ExtractionError):
            parse_llm_facts('[{"key": "A", "value": }]', "src")


class TestFactExtractor:
    """Tests for FactExtractor.extract_facts."""

    def test_llm_facts_used_when_present(self) -> None:
        """LLM facts win and heuristics are not added."""
        client = _client('[{"key": "Industry", "value": "Manufacturing", "confidence": 0.9}]')

        facts = FactExtractor(client).extract_facts(_document())

        assert facts == [Fact("Industry", "Manufacturing", 0.9, "https://acme.example/about")]

    def test_empty_llm_result_falls_back_to_heuristics(self) -> None:
        """An empty LLM reply triggers the heuristic tier at 0.6."""
        facts = FactExtractor(_client("[]")).extract_facts(_document())

        assert ("Description", "Widgets", 0.6) in [(f.key, f.value, f.confidence) for f in facts]
        assert ("Page Title", "About Acme", 0.6) in [(f.key, f.value, f.confidence) for f in facts]

    def test_llm_error_falls_back_to_heuristics(self) -> None:
        """A failing LLM call is treated as no LLM facts."""
        client = _client(error=LLMClientError("timeout"))

        facts = FactExtractor(client).extract_facts(_document())

        assert facts
        assert all(fact.confidence == 0.6 for fact in facts)

    def test_unparsable_reply_falls_back(self) -> None:
        """Prose without JSON is treated as no LLM facts."""
        facts = FactExtractor(_client("Sorry, nothing here.")).extract_facts(_document())

        assert [fact.key for fact in facts] == ["Description", "Page Title"]

    def test_non_text_reply_content_falls_back(self) -> None:
        """Reply content that is not a string is treated as no LLM facts."""
        client = _client()
        client.chat_completion.return_value = ChatCompletionResponse(
            id="resp-1",
            model="gpt-4o-mini",
            choices=(Choice(index=0, message=ChatMessage(role="assistant", content=[{"type": "text"}])),),
        )

        facts = FactExtractor(client).extract_facts(_document())

        assert [fact.key for fact in facts] == ["Description", "Page Title"]

    @pytest.mark.parametrize("body", [[], {"choices": ["oops"]}])
    def test_malformed_api_response_falls_back(self, body) -> None:
        """A malformed API body from the real client still yields heuristic facts."""
        response = MagicMock()
        response.json.return_value = body
        session = MagicMock()
        session.post.return_value = response
        client = LLMClient(api_key="test", session=session)

        facts = FactExtractor(client).extract_facts(_document())

        assert [fact.key for fact in facts] == ["Description", "Page Title"]

    def test_no_client_uses_heuristics(self) -> None:
        """Without a client only heuristics run."""
        facts = FactExtractor(None, heuristic_confidence=0.5).extract_facts(_document())

        assert all(fact.confidence == 0.5 for fact in facts)

    def test_prompt_contents(self) -> None:
        """The prompt carries URL, title, truncated text and metadata."""
        client = _client("[]")
        document = _document(text_content="w" * (MAX_CONTENT_CHARS + 500))

        FactExtractor(client).extract_facts(document, brain_context="- CEO: Jane Doe")

        kwargs = client.chat_completion.call_args.kwargs
        system, user = kwargs["messages"]
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 2000
        assert "EXISTING KNOWLEDGE" in system["content"]
        assert "- CEO: Jane Doe" in system["content"]
        assert "URL: https://acme.example/about" in user["content"]
        assert "Title: About Acme" in user["content"]
        assert "w" * MAX_CONTENT_CHARS in user["content"]
        assert "w" * (MAX_CONTENT_CHARS + 1) not in user["content"]
        assert '"description": "Widgets"' in user["content"]

    def test_no_brain_context_section_by_default(self) -> None:
        """Without context the plain system prompt is used."""
        client = _client("[]")

        FactExtractor(client).extract_facts(_document())

        system = client.chat_completion.call_args.kwargs["messages"][0]
        assert "EXISTING KNOWLEDGE" not in system["content"]


class TestExtractBatch:
    """Tests for FactExtractor.extract_batch."""

    def test_validates_and_reports_progress(self) -> None:
        """Invalid facts are dropped and progress is reported per document."""
        client = _client('[{"key": "CEO", "value": "Jane Doe", "confidence": 0.9}, {"key": "X", "value": "y"}]')
        limiter = MagicMock()
        calls = []

        facts = FactExtractor(client).extract_batch(
            [_document("https://a.example/"), _document("https://b.example/")],
            on_progress=lambda index, total, doc: calls.append((index, total, doc.url)),
            limiter=limiter,
        )

        assert [(f.key, f.source) for f in facts] == [
            ("CEO", "https://a.example/"),
            ("CEO", "https://b.example/"),
        ]
        assert calls == [(0, 2, "https://a.example/"), (1, 2, "https://b.example/")]
        assert limiter.wait.call_count == 2

    def test_one_failing_document_does_not_stop_batch(self) -> None:
        """An unexpected error skips only that document."""
        extractor = FactExtractor(None)
        original = extractor.extract_facts

        def flaky(document, brain_context=None):
            if "bad" in document.url:
                raise RuntimeError("boom")
            return original(document, brain_context)

        extractor.extract_facts = flaky

        facts = extractor.extract_batch([_document("https://bad.example/"), _document("https://good.example/")])

        assert facts
        assert {fact.source for fact in facts} == {"https://good.example/"}

    def test_malformed_api_response_keeps_heuristic_facts(self) -> None:
        """A batch document with a malformed LLM body still contributes heuristic facts."""
        response = MagicMock()
        response.json.return_value = {"choices": ["oops"]}
        session = MagicMock()
        session.post.return_value = response
        extractor = FactExtractor(LLMClient(api_key="test", session=session))

        facts = extractor.extract_batch([_document()])

        assert [fact.key for fact in facts] == ["Description", "Page Title"]
