"""
Pytest configuration and shared fixtures.

Provides common fixtures for:
    - Configuration with test values
    - Sample passages across two documents
    - Deterministic fake embedder and chat client
    - Passage stores and orchestrators wired to the fakes
"""

import hashlib
import os
from pathlib import Path
from typing import Optional
from unittest.mock import patch

import numpy as np
import pytest

from docrag.models import Passage, Position


# =============================================================================
# Configuration Fixtures
# =============================================================================

def make_settings(**overrides):
    """Settings isolated from the environment and any .env file."""
    from docrag.config import Settings

    values = {
        "openai_api_key": "test-api-key",
        "retry_backoff": 0.0,
        "index_backend": "linear",
        "min_similarity": 0.1,
        "enable_tracing": False,
    }
    values.update(overrides)
    with patch.dict(os.environ, {}, clear=True):
        return Settings(_env_file=None, **values)


@pytest.fixture
def mock_settings():
    """Provide test settings without requiring a .env file."""
    return make_settings()


@pytest.fixture
def keyword_settings():
    """Settings without provider credentials (keyword mode only)."""
    return make_settings(openai_api_key=None)


# =============================================================================
# Fakes
# =============================================================================

FAKE_DIMENSION = 64


def bag_of_words(text: str, dimension: int = FAKE_DIMENSION) -> np.ndarray:
    """Deterministic hashed bag-of-words vector."""
    vector = np.zeros(dimension, dtype=np.float32)
    for token in text.lower().split():
        token = token.strip(".,!?;:\"'()")
        if not token:
            continue
        bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    return vector


class FakeEmbedder:
    """Embedder stand-in: bag-of-words vectors, optional injected failure."""

    def __init__(self, dimension: int = FAKE_DIMENSION, error: Optional[Exception] = None):
        self.dimension = dimension
        self.error = error
        self.calls = 0
        self.embedded_texts: list[str] = []

    def embed_texts(self, texts: list[str]) -> np.ndarray:
        self.calls += 1
        if self.error is not None:
            raise self.error
        self.embedded_texts.extend(texts)
        if not texts:
            return np.empty((0, self.dimension), dtype=np.float32)
        return np.vstack([bag_of_words(t, self.dimension) for t in texts])

    def embed_query(self, query: str) -> np.ndarray:
        return self.embed_texts([query])[0]


class FakeChatClient:
    """Chat client stand-in recording every prompt."""

    def __init__(self, reply: str = "Generated answer.", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str, Optional[float]]] = []

    def complete(self, system_prompt: str, user_prompt: str, temperature: Optional[float] = None) -> str:
        self.calls.append((system_prompt, user_prompt, temperature))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_chat_client():
    return FakeChatClient()


# =============================================================================
# Sample Data Fixtures
# =============================================================================

def make_passage(
    document_id: str,
    chunk_index: int,
    content: str,
    page: int = 1,
    title: Optional[str] = None,
    scope_id: str = "scope-1",
) -> Passage:
    return Passage(
        id=f"{document_id}:{chunk_index:06d}",
        scope_id=scope_id,
        document_id=document_id,
        content=content,
        position=Position(page_or_section=page, chunk_index=chunk_index),
        metadata={"title": title or document_id, "source_type": "pdf"},
    )


@pytest.fixture
def sample_passages():
    """Provide passages from two documents."""
    return [
        make_passage(
            "handbook", 0,
            "Employees may request a refund of travel expenses within 30 days of the trip.",
            page=1, title="Employee Handbook",
        ),
        make_passage(
            "handbook", 1,
            "Remote work is allowed up to three days per week with manager approval.",
            page=2, title="Employee Handbook",
        ),
        make_passage(
            "handbook", 2,
            "The security team rotates database credentials every ninety days.",
            page=3, title="Employee Handbook",
        ),
        make_passage(
            "guide", 0,
            "The frontend is written in JavaScript and talks to a Python backend.",
            page=1, title="Engineering Guide",
        ),
        make_passage(
            "guide", 1,
            "Deployments run on Kubernetes clusters managed by the platform team.",
            page=1, title="Engineering Guide",
        ),
    ]


@pytest.fixture
def sample_embeddings(sample_passages):
    """Bag-of-words embeddings aligned with sample_passages."""
    return np.vstack([bag_of_words(p.content) for p in sample_passages])


@pytest.fixture
def store(sample_passages):
    """In-memory store preloaded with sample passages."""
    from docrag.retrieval.store import InMemoryPassageStore

    passage_store = InMemoryPassageStore()
    passage_store.add(sample_passages)
    return passage_store


@pytest.fixture
def orchestrator(store, fake_embedder, fake_chat_client, mock_settings):
    """Orchestrator wired to fakes."""
    from docrag.retrieval.orchestrator import RetrievalOrchestrator
    from docrag.synthesizer import AnswerSynthesizer

    return RetrievalOrchestrator(
        store=store,
        embedder=fake_embedder,
        synthesizer=AnswerSynthesizer(fake_chat_client),
        config=mock_settings,
    )


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def tmp_docs_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory with two text documents."""
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "handbook.txt").write_text(
        "Employees may request a refund of travel expenses within 30 days. "
        "Remote work is allowed up to three days per week.",
        encoding="utf-8",
    )
    (docs / "guide.md").write_text(
        "# Engineering Guide\n\nThe frontend is written in JavaScript.\n"
        "Deployments run on Kubernetes.",
        encoding="utf-8",
    )
    return docs


# =============================================================================
# Factory Fixtures
# =============================================================================

@pytest.fixture
def settings_factory():
    """Build isolated Settings with overrides."""
    return make_settings


@pytest.fixture
def passage_factory():
    """Build a Passage from (document_id, chunk_index, content, ...)."""
    return make_passage


@pytest.fixture
def embedder_factory():
    """Build a FakeEmbedder, optionally failing with a given error."""
    return FakeEmbedder


@pytest.fixture
def chat_client_factory():
    """Build a FakeChatClient with a given reply or error."""
    return FakeChatClient
