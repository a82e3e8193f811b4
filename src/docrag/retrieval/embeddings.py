"""
Embedding generation via an OpenAI-compatible embeddings API.

Converts passages and queries into fixed-length vectors. Provider failures
are classified into the docrag error taxonomy so the orchestrator can decide
whether to degrade:

    - 429 / quota  -> ResourceExhausted (never retried)
    - 4xx          -> Misconfigured (never retried)
    - 5xx / any httpx transport or protocol error -> Transient (one bounded retry)
"""

import logging
from typing import Optional, Protocol

import httpx
import numpy as np
from numpy.typing import NDArray
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from docrag.config import settings
from docrag.errors import Misconfigured, Transient, error_from_response

logger = logging.getLogger(__name__)


class EmbedderProtocol(Protocol):
    """Contract the orchestrator relies on."""

    dimension: int

    def embed_texts(self, texts: list[str]) -> NDArray[np.float32]:
        """Embed texts; output rows match input order."""
        ...

    def embed_query(self, query: str) -> NDArray[np.float32]:
        """Embed a single query."""
        ...


class OpenAIEmbedder:
    """
    Generate embeddings using an OpenAI-compatible /embeddings endpoint.

    Example:
        >>> embedder = OpenAIEmbedder(api_key="sk-...")
        >>> vectors = embedder.embed_texts(["What is this document about?"])
        >>> vectors.shape
        (1, 1536)
    """

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        batch_size: Optional[int] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
        retry_backoff: Optional[float] = None,
    ) -> None:
        """
        Initialize the embedder.

        Args:
            model: Embedding model name (default from settings)
            api_key: Provider API key (default from settings)
            base_url: Provider base URL (default from settings)
            batch_size: Maximum texts per request (provider limit)
            dimension: Expected vector dimension
            timeout: Per-request timeout in seconds
            retry_backoff: Initial delay before the transient retry
        """
        self.model = model or settings.embedding_model
        self.api_key = api_key or settings.openai_api_key_value
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.batch_size = batch_size or settings.embedding_batch_size
        self.dimension = dimension or settings.embedding_dimension
        self.timeout = timeout or settings.request_timeout
        self.retry_backoff = settings.retry_backoff if retry_backoff is None else retry_backoff
        self.max_attempts = 2  # one try plus a single bounded retry

    @property
    def url(self) -> str:
        return f"{self.base_url}/embeddings"

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise Misconfigured("No embedding provider API key configured")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _batches(self, texts: list[str]) -> list[list[str]]:
        return [
            texts[i : i + self.batch_size]
            for i in range(0, len(texts), self.batch_size)
        ]

    def _empty(self) -> NDArray[np.float32]:
        return np.empty((0, self.dimension), dtype=np.float32)

    def _wait(self):
        return wait_exponential(multiplier=self.retry_backoff, min=0, max=10)

    def embed_texts(self, texts: list[str]) -> NDArray[np.float32]:
        """
        Generate embeddings for a list of texts.

        Sub-batches are sent sequentially to respect the provider batch limit.

        Args:
            texts: List of texts to embed

        Returns:
            Array of shape (len(texts), dimension), rows in input order

        Raises:
            ResourceExhausted: Rate limit or quota exhausted
            Misconfigured: Missing/invalid key or rejected request
            Transient: Network failure that persisted through the retry
        """
        if not texts:
            return self._empty()

        all_embeddings = [self._embed_batch_sync(batch) for batch in self._batches(texts)]
        return np.vstack(all_embeddings)

    def _embed_batch_sync(self, texts: list[str]) -> NDArray[np.float32]:
        headers = self._headers()
        payload = {"model": self.model, "input": texts}

        with httpx.Client(timeout=self.timeout) as client:
            for attempt in Retrying(
                retry=retry_if_exception_type(Transient),
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait(),
                reraise=True,
            ):
                with attempt:
                    try:
                        response = client.post(self.url, json=payload, headers=headers)
                    except httpx.HTTPError as e:
                        logger.warning(f"Embedding request failed: {e}")
                        raise Transient(f"Embedding request failed: {e}") from e
                    return self._parse_response(response, len(texts))

        raise RuntimeError("Unexpected error in _embed_batch_sync")

    def _parse_response(self, response: httpx.Response, expected: int) -> NDArray[np.float32]:
        if response.status_code >= 400:
            error = error_from_response(response, "Embedding provider")
            logger.warning(str(error))
            raise error

        try:
            data = response.json()["data"]
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            embeddings = np.array([item["embedding"] for item in ordered], dtype=np.float32)
        except (KeyError, TypeError, ValueError) as e:
            raise Misconfigured(f"Malformed embedding response: {e}") from e

        if embeddings.shape[0] != expected:
            raise Misconfigured(
                f"Embedding provider returned {embeddings.shape[0]} vectors for {expected} inputs"
            )
        if embeddings.ndim != 2 or embeddings.shape[1] != self.dimension:
            raise Misconfigured(
                f"Embeddings must have dimension {self.dimension}, got {embeddings.shape[-1]}"
            )
        return self._normalize_embeddings(embeddings)

    def _normalize_embeddings(self, embeddings: NDArray[np.float32]) -> NDArray[np.float32]:
        """
        Normalize embeddings to unit length for cosine similarity.

        Zero vectors are left as zeros.
        """
        norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
        norms = np.where(norms == 0, 1, norms)
        return (embeddings / norms).astype(np.float32)

    def embed_query(self, query: str) -> NDArray[np.float32]:
        """
        Generate embedding for a single query.

        Returns:
            Array of shape (dimension,)
        """
        return self.embed_texts([query])[0]
