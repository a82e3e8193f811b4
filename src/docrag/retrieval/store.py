"""
Passage store contract and an in-memory implementation.

The real deployment keeps passages in an external metadata database; the
retrieval core only needs the operations in PassageStoreProtocol.
InMemoryPassageStore is the reference implementation used by the CLI and
the tests.
"""

import logging
import re
import threading
from collections import OrderedDict
from typing import Iterable, Protocol

from docrag.models import Passage

logger = logging.getLogger(__name__)


class PassageStoreProtocol(Protocol):
    """Operations the retrieval core needs from the passage store."""

    @property
    def supports_full_text(self) -> bool:
        """Whether full_text_search is available."""
        ...

    def add(self, passages: Iterable[Passage]) -> None:
        ...

    def fetch_passages_by_document_ids(self, document_ids: Iterable[str]) -> list[Passage]:
        ...

    def fetch_passages_full_text(self, document_ids: Iterable[str], limit: int) -> list[Passage]:
        ...

    def full_text_search(
        self, document_ids: Iterable[str], terms: list[str], limit: int
    ) -> list[Passage]:
        ...

    def substring_search(
        self, document_ids: Iterable[str], terms: list[str], limit: int
    ) -> list[Passage]:
        ...

    def remove_document(self, document_id: str) -> int:
        ...


class InMemoryPassageStore:
    """
    Thread-safe in-memory passage store.

    Passages are kept per document in chunk order. ``full_text`` enables a
    simple ranked term search standing in for a database full-text index;
    without it callers fall back to substring matching.

    Example:
        >>> store = InMemoryPassageStore()
        >>> store.add(passages)
        >>> store.substring_search(["doc-1"], ["alpha"], limit=10)
    """

    def __init__(self, full_text: bool = False) -> None:
        self._full_text = full_text
        self._documents: "OrderedDict[str, dict[str, Passage]]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def supports_full_text(self) -> bool:
        return self._full_text

    def __len__(self) -> int:
        with self._lock:
            return sum(len(p) for p in self._documents.values())

    def document_ids(self) -> list[str]:
        with self._lock:
            return list(self._documents)

    def add(self, passages: Iterable[Passage]) -> None:
        """Insert passages; re-adding an id replaces the stored passage."""
        with self._lock:
            for passage in passages:
                self._documents.setdefault(passage.document_id, {})[passage.id] = passage

    def fetch_passages_by_document_ids(self, document_ids: Iterable[str]) -> list[Passage]:
        """All passages for the documents, in document then chunk order."""
        with self._lock:
            result: list[Passage] = []
            for document_id in dict.fromkeys(document_ids):
                passages = self._documents.get(document_id, {})
                result.extend(sorted(passages.values(), key=lambda p: p.position.chunk_index))
            return result

    def fetch_passages_full_text(self, document_ids: Iterable[str], limit: int) -> list[Passage]:
        """The first ``limit`` passages for the documents."""
        return self.fetch_passages_by_document_ids(document_ids)[:limit]

    def full_text_search(
        self, document_ids: Iterable[str], terms: list[str], limit: int
    ) -> list[Passage]:
        """
        Rank passages by how many query terms they contain (whole words).

        Raises:
            NotImplementedError: If the store was created without full_text
        """
        if not self._full_text:
            raise NotImplementedError("Full-text search is not enabled for this store")
        patterns = [re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE) for term in terms]
        scored = []
        for passage in self.fetch_passages_by_document_ids(document_ids):
            matches = sum(len(p.findall(passage.content)) for p in patterns)
            if matches:
                scored.append((-matches, passage.id, passage))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [passage for _, _, passage in scored[:limit]]

    def substring_search(
        self, document_ids: Iterable[str], terms: list[str], limit: int
    ) -> list[Passage]:
        """Case-insensitive OR match of ``terms`` against passage content."""
        lowered = [term.lower() for term in terms if term]
        if not lowered:
            return []
        hits = []
        for passage in self.fetch_passages_by_document_ids(document_ids):
            content = passage.content.lower()
            if any(term in content for term in lowered):
                hits.append(passage)
                if len(hits) >= limit:
                    break
        return hits

    def remove_document(self, document_id: str) -> int:
        """Remove a document's passages. Returns how many were removed."""
        with self._lock:
            removed = self._documents.pop(document_id, {})
        if removed:
            logger.debug(f"Removed {len(removed)} passages for document {document_id}")
        return len(removed)
