"""
docrag: question answering over a user's own documents

Documents are split into overlapping passages, embedded and indexed per
retrieval scope; questions are answered by a language model restricted to
the best matching passages. When embeddings are unavailable (no
credentials, exhausted quota, provider errors) a scope degrades to keyword
search and extractive summaries instead of failing.

Key Components:
    - retrieval: chunking, embeddings, vector indexes, keyword fallback, orchestrator
    - synthesizer: context assembly and the answer prompt
    - llm: OpenAI-compatible chat client
    - ingestion: title generation and parallel document ingestion
    - cli: command-line interface

Example:
    >>> from docrag.retrieval.resources import get_orchestrator
    >>> answer = get_orchestrator().query("chat-1", ["doc-1"], "What is this document about?")
    >>> print(answer.text)
"""

__version__ = "0.1.0"

from docrag.config import settings

__all__ = [
    "__version__",
    "settings",
]
