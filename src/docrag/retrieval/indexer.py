"""
Vector index backends for per-scope similarity search.

Two interchangeable implementations of VectorIndex:
    - FAISSIndex: faiss IndexFlatIP over normalized vectors
    - LinearIndex: numpy brute-force scan, no native dependency

Both rank by cosine similarity and break ties by passage id, so a scope
that falls back from FAISS to the linear scan sees the same ranking.
Indexes are snapshots: ``add`` returns a new index and leaves the original
untouched, which lets readers search while a writer extends the scope.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np
from numpy.typing import NDArray

from docrag.models import Passage, RetrievalResult, ScoredPassage

logger = logging.getLogger(__name__)

BackendName = Literal["faiss", "linear"]

# Extra FAISS candidates fetched up front; the fetch widens while scores
# at the cut-off are still tied.
TIE_MARGIN = 8


def normalize_rows(vectors: NDArray[np.float32]) -> NDArray[np.float32]:
    """
    Normalize vectors to unit length for cosine similarity.

    Zero vectors stay zero, so their similarity to anything is 0.
    """
    vectors = np.asarray(vectors, dtype=np.float32)
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)
    return np.ascontiguousarray((vectors / norms).astype(np.float32))


def cosine_similarity(a: NDArray[np.float32], b: NDArray[np.float32]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


class VectorIndex(ABC):
    """Common interface for vector index backends."""

    name: BackendName

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension
        self._passages: list[Passage] = []
        self._vectors: NDArray[np.float32] = np.empty((0, dimension), dtype=np.float32)
        self._built = False

    @property
    def is_built(self) -> bool:
        """Check if index has been built."""
        return self._built

    @property
    def size(self) -> int:
        """Number of vectors in the index."""
        return len(self._passages)

    @property
    def passages(self) -> list[Passage]:
        return list(self._passages)

    @property
    def vectors(self) -> NDArray[np.float32]:
        """Normalized vectors, row-aligned with ``passages``."""
        return self._vectors

    def _validate(self, passages: list[Passage], embeddings: NDArray[np.float32]) -> NDArray[np.float32]:
        embeddings = np.asarray(embeddings, dtype=np.float32)
        if len(passages) != len(embeddings):
            raise ValueError(
                f"Passages and embeddings must have same length: "
                f"got {len(passages)} passages and {len(embeddings)} embeddings"
            )
        if len(embeddings) == 0:
            return np.empty((0, self.dimension), dtype=np.float32)
        if embeddings.ndim != 2 or embeddings.shape[1] != self.dimension:
            raise ValueError(
                f"Embeddings must have dimension {self.dimension}, "
                f"got {embeddings.shape[-1]}"
            )
        return normalize_rows(embeddings)

    def build(self, passages: list[Passage], embeddings: NDArray[np.float32]) -> None:
        """
        Build the index from passages and their embeddings.

        Raises:
            ValueError: If lengths differ or embeddings have the wrong dimension
        """
        normalized = self._validate(passages, embeddings)
        self._load(normalized)
        self._passages = list(passages)
        self._vectors = normalized
        self._built = True

    def add(self, passages: list[Passage], embeddings: NDArray[np.float32]) -> "VectorIndex":
        """
        Return a new index containing the current entries plus ``passages``.

        The receiver is left unchanged.
        """
        normalized = self._validate(passages, embeddings)
        successor = type(self)(self.dimension)
        successor.build(
            self._passages + list(passages),
            np.vstack([self._vectors, normalized]),
        )
        return successor

    def search(self, query_embedding: NDArray[np.float32], k: int = 10) -> RetrievalResult:
        """
        Search for the passages most similar to the query.

        Args:
            query_embedding: Query vector of shape (dimension,)
            k: Maximum number of results; larger than size returns everything

        Returns:
            RetrievalResult ordered by (score desc, passage id asc).
            Empty when the index is empty or was never built.
        """
        if not self.is_built or self.size == 0 or k <= 0:
            return RetrievalResult()

        query = np.asarray(query_embedding, dtype=np.float32).reshape(-1)
        if query.shape[0] != self.dimension:
            raise ValueError(
                f"Query must have dimension {self.dimension}, got {query.shape[0]}"
            )

        candidates = self._candidates(normalize_rows(query), k)
        hits = [
            ScoredPassage(passage=self._passages[idx], score=float(np.clip(score, -1.0, 1.0)))
            for idx, score in candidates
        ]
        return RetrievalResult.ranked(hits).top(k)

    @abstractmethod
    def _load(self, normalized: NDArray[np.float32]) -> None:
        """Load normalized vectors into the backend."""

    @abstractmethod
    def _candidates(self, query: NDArray[np.float32], k: int) -> list[tuple[int, float]]:
        """Return (row, score) candidates; at least the top k by score."""


class LinearIndex(VectorIndex):
    """Brute-force cosine scan over a flat matrix. Always available."""

    name: BackendName = "linear"

    def _load(self, normalized: NDArray[np.float32]) -> None:
        pass

    def _candidates(self, query: NDArray[np.float32], k: int) -> list[tuple[int, float]]:
        scores = self._vectors @ query[0]
        return [(i, float(score)) for i, score in enumerate(scores)]


class FAISSIndex(VectorIndex):
    """
    FAISS-based vector index.

    Uses IndexFlatIP (inner product) over normalized vectors, which equals
    cosine similarity. ``faiss`` is imported on construction so a missing or
    broken native library surfaces as a construction error the factory can
    catch.
    """

    name: BackendName = "faiss"

    def __init__(self, dimension: int) -> None:
        import faiss

        super().__init__(dimension)
        self._faiss = faiss
        self._index = faiss.IndexFlatIP(dimension)

    def _load(self, normalized: NDArray[np.float32]) -> None:
        index = self._faiss.IndexFlatIP(self.dimension)
        if len(normalized) > 0:
            index.add(normalized)
        self._index = index

    def _candidates(self, query: NDArray[np.float32], k: int) -> list[tuple[int, float]]:
        fetch = min(self.size, k + TIE_MARGIN)
        while True:
            scores, indices = self._index.search(query, fetch)
            candidates = [
                (int(idx), float(score))
                for idx, score in zip(indices[0], scores[0])
                if idx >= 0
            ]
            # Every row tied with the k-th score must be a candidate.
            if fetch >= self.size or len(candidates) <= k:
                return candidates
            if candidates[-1][1] < candidates[k - 1][1]:
                return candidates
            fetch = min(self.size, fetch * 2)


BACKENDS: dict[str, type[VectorIndex]] = {
    "faiss": FAISSIndex,
    "linear": LinearIndex,
}


def create_index(
    passages: list[Passage],
    embeddings: NDArray[np.float32],
    dimension: int,
    prefer: BackendName = "faiss",
) -> VectorIndex:
    """
    Build an index with the preferred backend, falling back to linear scan.

    Any failure while constructing or building the preferred backend
    (missing native library, runtime error) yields a LinearIndex instead.
    Input validation errors are not swallowed: they would fail on every
    backend.

    Raises:
        ValueError: If passages and embeddings do not line up
    """
    if prefer != "linear":
        try:
            index = BACKENDS[prefer](dimension)
            index.build(passages, embeddings)
            return index
        except ValueError:
            raise
        except Exception as e:
            logger.warning(f"{prefer} backend unavailable, falling back to linear scan: {e}")

    index = LinearIndex(dimension)
    index.build(passages, embeddings)
    return index


@dataclass(frozen=True)
class VectorIndexHandle:
    """A fully built index plus the ids of the passages it holds."""

    index: VectorIndex
    passage_ids: frozenset[str]

    @property
    def backend(self) -> BackendName:
        return self.index.name

    @property
    def size(self) -> int:
        return self.index.size


def build_handle(
    passages: list[Passage],
    embeddings: NDArray[np.float32],
    dimension: int,
    prefer: BackendName = "faiss",
) -> VectorIndexHandle:
    """Build a complete handle; either every passage is indexed or this raises."""
    index = create_index(passages, embeddings, dimension, prefer)
    return VectorIndexHandle(index=index, passage_ids=frozenset(p.id for p in passages))


def add_to_handle(
    handle: VectorIndexHandle,
    passages: list[Passage],
    embeddings: NDArray[np.float32],
) -> VectorIndexHandle:
    """
    Return a new handle extended with ``passages``.

    Passages already indexed are skipped. If the FAISS backend fails while
    extending, the whole scope is rebuilt on the linear backend.
    """
    fresh = [(p, v) for p, v in zip(passages, embeddings) if p.id not in handle.passage_ids]
    if not fresh:
        return handle

    new_passages = [p for p, _ in fresh]
    new_vectors = np.vstack([v for _, v in fresh]).astype(np.float32)

    try:
        index = handle.index.add(new_passages, new_vectors)
    except ValueError:
        raise
    except Exception as e:
        if handle.backend == "linear":
            raise
        logger.warning(f"{handle.backend} backend failed during add, rebuilding with linear scan: {e}")
        index = LinearIndex(handle.index.dimension)
        index.build(
            handle.index.passages + new_passages,
            np.vstack([handle.index.vectors, normalize_rows(new_vectors)]),
        )

    return VectorIndexHandle(
        index=index,
        passage_ids=handle.passage_ids | frozenset(p.id for p in new_passages),
    )


def search_handle(
    handle: Optional[VectorIndexHandle],
    query_embedding: NDArray[np.float32],
    k: int,
) -> RetrievalResult:
    """Search a handle; a missing handle yields an empty result."""
    if handle is None:
        return RetrievalResult()
    return handle.index.search(query_embedding, k)
