"""
Document retrieval components for the RAG pipeline.

Components:
    - chunker: Split documents into overlapping passages with positions
    - embeddings: Generate vector embeddings via an OpenAI-compatible API
    - indexer: FAISS and linear-scan vector indexes
    - store: Passage store contract and in-memory implementation
    - keyword: Keyword fallback searcher (no embeddings required)
    - orchestrator: Per-scope index lifecycle and degradation chain
"""

from docrag.retrieval.chunker import Chunk, build_passages, chunk_text
from docrag.retrieval.embeddings import OpenAIEmbedder
from docrag.retrieval.indexer import FAISSIndex, LinearIndex, VectorIndex, create_index
from docrag.retrieval.keyword import KeywordSearcher
from docrag.retrieval.orchestrator import RetrievalOrchestrator
from docrag.retrieval.store import InMemoryPassageStore

__all__ = [
    "Chunk",
    "build_passages",
    "chunk_text",
    "OpenAIEmbedder",
    "FAISSIndex",
    "LinearIndex",
    "VectorIndex",
    "create_index",
    "KeywordSearcher",
    "RetrievalOrchestrator",
    "InMemoryPassageStore",
]
