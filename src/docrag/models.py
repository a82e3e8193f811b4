"""
Data model for the retrieval pipeline.

Passages flow from the chunker into the passage store and the per-scope
vector index; searches return RetrievalResults; the orchestrator turns
those into Answers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Union


@dataclass(frozen=True)
class Position:
    """Approximate location of a passage inside its source document."""

    page_or_section: int
    """1-based page (or section) number, proportionally estimated."""

    chunk_index: int
    """0-based index of the chunk within its document."""


@dataclass(frozen=True)
class Passage:
    """One chunk of source text with provenance metadata."""

    id: str
    """Stable identifier, e.g. 'doc-1:000003'."""

    scope_id: str
    """Scope that ingested the passage."""

    document_id: str
    """Source document identifier."""

    content: str
    """The passage text."""

    position: Position
    """Page and chunk position."""

    metadata: dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    """Free-form metadata such as title and source_type."""

    @property
    def title(self) -> str:
        return self.metadata.get("title", self.document_id)

    @property
    def source_type(self) -> str:
        return self.metadata.get("source_type", "text")

    @property
    def page(self) -> int:
        return self.position.page_or_section


@dataclass(frozen=True)
class ScoredPassage:
    """A passage with its similarity score (None for lexical hits)."""

    passage: Passage
    score: Optional[float] = None
    snippet: str = ""
    """Human-readable excerpt around the match (lexical hits only)."""


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked passages, ordered by (score desc, passage id asc)."""

    hits: tuple[ScoredPassage, ...] = ()

    def __len__(self) -> int:
        return len(self.hits)

    def __iter__(self):
        return iter(self.hits)

    def __bool__(self) -> bool:
        return bool(self.hits)

    @property
    def passages(self) -> list[Passage]:
        return [hit.passage for hit in self.hits]

    @classmethod
    def ranked(cls, hits: list[ScoredPassage]) -> "RetrievalResult":
        """Sort hits deterministically and wrap them."""
        ordered = sorted(
            hits,
            key=lambda h: (-(h.score if h.score is not None else float("-inf")), h.passage.id),
        )
        return cls(hits=tuple(ordered))

    def above(self, threshold: float) -> "RetrievalResult":
        """Drop scored hits below ``threshold``; unscored hits are kept."""
        return RetrievalResult(
            hits=tuple(h for h in self.hits if h.score is None or h.score >= threshold)
        )

    def top(self, k: int) -> "RetrievalResult":
        return RetrievalResult(hits=self.hits[:k])


class ScopeStatus(str, Enum):
    """Lifecycle state of a scope's vector index."""

    UNINITIALIZED = "uninitialized"
    BUILDING = "building"
    READY = "ready"


AnswerMode = Literal["vector", "keyword", "summary", "empty"]


@dataclass
class Answer:
    """Final answer returned to the caller. ``text`` is never empty."""

    text: str
    mode: AnswerMode
    passages: list[Passage] = field(default_factory=list)
    degraded: bool = False


# =============================================================================
# Tier outcomes
# =============================================================================


@dataclass(frozen=True)
class Hits:
    """The tier found passages."""

    result: RetrievalResult


@dataclass(frozen=True)
class Empty:
    """The tier ran and found nothing."""

    reason: str = ""


@dataclass(frozen=True)
class Unavailable:
    """The tier could not run; the next tier should be tried."""

    error: Exception
    degrade: bool = True


TierOutcome = Union[Hits, Empty, Unavailable]
