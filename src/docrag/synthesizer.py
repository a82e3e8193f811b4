"""
Answer synthesizer: composes an answer from ranked passages.

Builds a bounded context block with one numbered header per excerpt
(title, source type, page) and asks the language model to answer strictly
from those excerpts, without citation markers in the final text.
"""

import logging
from typing import TYPE_CHECKING, Optional

from docrag.models import Passage

if TYPE_CHECKING:
    from docrag.llm.factory import ChatClientProtocol

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant that answers questions about the user's documents.

Rules:
- Use only the information in the provided excerpts; no outside knowledge
- If the excerpts do not contain the answer, say so explicitly: "I cannot find the answer to your question in the provided documents."
- Do not include citation markers, excerpt numbers, or page references in your answer
- Answer in plain prose"""

USER_PROMPT = """Excerpts from the user's documents:
---
{context}
---

Question: {question}

Answer based on the excerpts:"""

SOURCE_TYPE_LABELS = {
    "pdf": "PDF",
    "url": "URL",
    "screenshot": "Screenshot",
    "text": "Text",
}


def format_header(number: int, passage: Passage) -> str:
    """Header line for one excerpt: number, title, type and page."""
    label = SOURCE_TYPE_LABELS.get(passage.source_type, passage.source_type)
    return f"[Excerpt {number}] {passage.title} | {label} | page {passage.page}"


def build_context(passages: list[Passage], max_chars: int) -> str:
    """
    Concatenate passages under numbered headers, bounded by ``max_chars``.

    Passages are added in rank order until the next one would overflow the
    budget. The first passage is always included, truncated if necessary.
    """
    parts: list[str] = []
    used = 0
    for number, passage in enumerate(passages, start=1):
        block = f"{format_header(number, passage)}\n{passage.content}"
        separator = 2 if parts else 0
        if used + separator + len(block) > max_chars:
            if not parts:
                parts.append(block[:max_chars])
            break
        parts.append(block)
        used += separator + len(block)
    return "\n\n".join(parts)


class AnswerSynthesizer:
    """
    Invoke the language model over a bounded context window.

    Example:
        >>> synthesizer = AnswerSynthesizer(create_chat_client())
        >>> synthesizer.synthesize("What is the refund policy?", passages)
        'Refunds are available within 30 days of purchase.'
    """

    def __init__(
        self,
        chat_client: "ChatClientProtocol",
        max_context_chars: int = 6000,
        temperature: Optional[float] = None,
    ) -> None:
        self.chat_client = chat_client
        self.max_context_chars = max_context_chars
        self.temperature = temperature

    def synthesize(self, question: str, passages: list[Passage]) -> str:
        """
        Generate an answer restricted to ``passages``.

        Args:
            question: The user's question
            passages: Ranked passages, best first

        Returns:
            Trimmed model output; empty string when the model returned nothing

        Raises:
            ProviderError: Propagated from the chat client
        """
        context = build_context(passages, self.max_context_chars)
        prompt = USER_PROMPT.format(context=context, question=question.strip())

        logger.debug(f"Synthesizing answer from {len(passages)} passages ({len(context)} chars)")
        generation = self.chat_client.complete(SYSTEM_PROMPT, prompt, self.temperature)

        return generation.strip() if isinstance(generation, str) else str(generation or "").strip()
