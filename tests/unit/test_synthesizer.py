"""Unit tests for synthesizer module."""

import pytest

from docrag.errors import ResourceExhausted
from docrag.synthesizer import SYSTEM_PROMPT, AnswerSynthesizer, build_context, format_header


@pytest.mark.unit
class TestBuildContext:
    """Tests for context assembly."""

    def test_header_format(self, sample_passages):
        assert format_header(1, sample_passages[1]) == "[Excerpt 1] Employee Handbook | PDF | page 2"

    def test_unknown_source_type_label(self, passage_factory):
        passage = passage_factory("d", 0, "text")
        passage.metadata["source_type"] = "slides"

        assert format_header(3, passage).endswith("| slides | page 1")

    def test_passages_in_rank_order(self, sample_passages):
        context = build_context(sample_passages[:3], max_chars=10_000)

        assert context.index("[Excerpt 1]") < context.index("[Excerpt 2]") < context.index("[Excerpt 3]")
        assert sample_passages[2].content in context

    def test_budget_drops_trailing_passages(self, sample_passages):
        first = f"{format_header(1, sample_passages[0])}\n{sample_passages[0].content}"

        context = build_context(sample_passages, max_chars=len(first) + 10)

        assert context == first

    def test_first_passage_always_included(self, sample_passages):
        context = build_context(sample_passages, max_chars=30)

        assert len(context) == 30
        assert context.startswith("[Excerpt 1]")

    def test_empty(self):
        assert build_context([], max_chars=100) == ""


@pytest.mark.unit
class TestAnswerSynthesizer:
    """Tests for AnswerSynthesizer."""

    def test_synthesize_prompts_with_context(self, sample_passages, fake_chat_client):
        synthesizer = AnswerSynthesizer(fake_chat_client, temperature=0.2)

        result = synthesizer.synthesize("  How do refunds work?  ", sample_passages[:2])

        assert result == "Generated answer."
        system, prompt, temperature = fake_chat_client.calls[0]
        assert system == SYSTEM_PROMPT
        assert "Question: How do refunds work?" in prompt
        assert "[Excerpt 2] Employee Handbook | PDF | page 2" in prompt
        assert temperature == 0.2

    def test_output_is_trimmed(self, sample_passages, chat_client_factory):
        synthesizer = AnswerSynthesizer(chat_client_factory(reply="\n  Thirty days.  \n"))

        assert synthesizer.synthesize("q", sample_passages) == "Thirty days."

    def test_provider_errors_propagate(self, sample_passages, chat_client_factory):
        synthesizer = AnswerSynthesizer(chat_client_factory(error=ResourceExhausted("quota")))

        with pytest.raises(ResourceExhausted):
            synthesizer.synthesize("q", sample_passages)

    def test_context_bounded(self, sample_passages, fake_chat_client):
        AnswerSynthesizer(fake_chat_client, max_context_chars=200).synthesize("q", sample_passages)

        _, prompt, _ = fake_chat_client.calls[0]
        assert sample_passages[4].content not in prompt
