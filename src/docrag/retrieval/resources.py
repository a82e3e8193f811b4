"""
Cached construction of the long-lived retrieval components.

Uses the same @lru_cache pattern as the settings singleton so clients,
the passage store and the orchestrator are created once per process and
shared by every caller.

Key resources:
    - OpenAIEmbedder (None without provider credentials)
    - AnswerSynthesizer (None without provider credentials)
    - InMemoryPassageStore
    - RetrievalOrchestrator (owns the per-scope state map)

Usage:
    orchestrator = get_orchestrator()
    answer = orchestrator.query("chat-1", ["doc-1"], "What is this about?")

    # In tests (reset cache)
    clear_resource_cache()
"""

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from docrag.config import settings

if TYPE_CHECKING:
    from docrag.retrieval.embeddings import OpenAIEmbedder
    from docrag.retrieval.orchestrator import RetrievalOrchestrator
    from docrag.retrieval.store import InMemoryPassageStore
    from docrag.synthesizer import AnswerSynthesizer

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_embedder() -> Optional["OpenAIEmbedder"]:
    """
    Get the shared embedder, or None when no API key is configured.

    Without an embedder every scope runs in keyword mode.
    """
    from docrag.retrieval.embeddings import OpenAIEmbedder

    if not settings.has_provider_credentials:
        logger.warning("No provider API key configured; retrieval will use keyword search")
        return None

    logger.info(f"Initializing embedder for model: {settings.embedding_model}")
    return OpenAIEmbedder()


@lru_cache(maxsize=1)
def get_synthesizer() -> Optional["AnswerSynthesizer"]:
    """Get the shared answer synthesizer, or None without credentials."""
    from docrag.llm import create_chat_client
    from docrag.synthesizer import AnswerSynthesizer

    client = create_chat_client(settings)
    if client is None:
        return None

    logger.info(f"Initializing answer synthesizer with model: {settings.chat_model}")
    return AnswerSynthesizer(client, max_context_chars=settings.max_context_chars)


@lru_cache(maxsize=1)
def get_passage_store() -> "InMemoryPassageStore":
    """Get the process-wide passage store."""
    from docrag.retrieval.store import InMemoryPassageStore

    return InMemoryPassageStore()


@lru_cache(maxsize=1)
def get_orchestrator() -> "RetrievalOrchestrator":
    """Get the process-wide orchestrator wired to the shared components."""
    from docrag.retrieval.orchestrator import RetrievalOrchestrator

    return RetrievalOrchestrator(
        store=get_passage_store(),
        embedder=get_embedder(),
        synthesizer=get_synthesizer(),
        config=settings,
    )


def clear_resource_cache() -> None:
    """
    Clear all cached resources.

    Used in tests to reset state between test cases.
    """
    get_orchestrator.cache_clear()
    get_passage_store.cache_clear()
    get_synthesizer.cache_clear()
    get_embedder.cache_clear()
    logger.debug("Resource cache cleared")
