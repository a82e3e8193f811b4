"""
Retrieval orchestrator: per-scope index lifecycle and the degradation chain.

Each scope (a named set of document ids) owns independent state:

    UNINITIALIZED -> BUILDING -> READY

``degraded`` is a flag orthogonal to the state. A degraded scope answers
every query through the keyword searcher and never touches the embedding
provider or the vector index again until it is reset.

Tiers report typed outcomes (Hits, Empty, Unavailable) and the
orchestrator decides the next tier from the variant:

    vector search --Unavailable--> keyword search --no hits--> summary

Build, add and reset on one scope are serialized by a per-scope lock;
new passages are embedded before the lock is taken.
Queries on a READY scope read the current index snapshot without locking;
``add`` publishes a new snapshot instead of mutating the old one.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from docrag.config import Settings, settings as default_settings
from docrag.errors import (
    NO_ANSWER_MESSAGE,
    NO_RELEVANT_MESSAGE,
    NO_SOURCES_MESSAGE,
    Misconfigured,
    NotFound,
    ProviderError,
)
from docrag.models import Answer, Empty, Hits, Passage, ScopeStatus, TierOutcome, Unavailable
from docrag.retrieval.indexer import (
    BackendName,
    VectorIndexHandle,
    add_to_handle,
    build_handle,
    search_handle,
)
from docrag.retrieval.keyword import KeywordSearcher
from docrag.retrieval.store import PassageStoreProtocol
from docrag.tracing import add_span_attributes, traced

if TYPE_CHECKING:
    from docrag.retrieval.embeddings import EmbedderProtocol
    from docrag.synthesizer import AnswerSynthesizer

logger = logging.getLogger(__name__)

NO_SOURCES = "no_sources"
NO_MATCHES = "no_matches"


@dataclass
class ScopeState:
    """Mutable lifecycle state of one scope."""

    scope_id: str
    document_ids: tuple[str, ...]
    backend: BackendName = "faiss"
    status: ScopeStatus = ScopeStatus.UNINITIALIZED
    degraded: bool = False
    degraded_reason: str = ""
    handle: Optional[VectorIndexHandle] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def document_set(self) -> frozenset[str]:
        return frozenset(self.document_ids)


@dataclass(frozen=True)
class ScopeSnapshot:
    """Read-only view of a scope for callers and diagnostics."""

    scope_id: str
    status: ScopeStatus
    degraded: bool
    backend: BackendName
    indexed_passages: int
    degraded_reason: str = ""


class RetrievalOrchestrator:
    """
    Owns per-scope vector indexes and routes queries through the fallback tiers.

    Example:
        >>> orchestrator = RetrievalOrchestrator(store, embedder, synthesizer)
        >>> answer = orchestrator.query("chat-1", ["doc-1", "doc-2"], "What is the refund policy?")
        >>> answer.text
        'Refunds are available within 30 days of purchase.'
    """

    def __init__(
        self,
        store: PassageStoreProtocol,
        embedder: Optional["EmbedderProtocol"] = None,
        synthesizer: Optional["AnswerSynthesizer"] = None,
        config: Optional[Settings] = None,
        keyword_searcher: Optional[KeywordSearcher] = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.synthesizer = synthesizer
        self.settings = config or default_settings
        self.keyword = keyword_searcher or KeywordSearcher(store, self.settings)
        self._scopes: dict[str, ScopeState] = {}
        self._registry_lock = threading.Lock()

    # =========================================================================
    # Scope lifecycle
    # =========================================================================

    def open_scope(self, scope_id: str, document_ids: Iterable[str]) -> ScopeState:
        """
        Get or create the state for a scope.

        Re-opening a scope with a different document set starts it afresh,
        so an index never holds passages outside the scope.
        """
        ids = tuple(dict.fromkeys(document_ids))
        with self._registry_lock:
            state = self._scopes.get(scope_id)
            if state is not None and state.document_set == frozenset(ids):
                return state
            if state is not None:
                logger.info(f"Scope {scope_id} document set changed; starting over")
            state = ScopeState(
                scope_id=scope_id,
                document_ids=ids,
                backend=state.backend if state is not None else self.settings.index_backend,
            )
            self._scopes[scope_id] = state
            return state

    def reset(self, scope_id: str) -> None:
        """Return a scope to UNINITIALIZED, dropping its index and degraded flag."""
        with self._registry_lock:
            state = self._scopes.get(scope_id)
        if state is None:
            return
        with state.lock:
            state.status = ScopeStatus.UNINITIALIZED
            state.degraded = False
            state.degraded_reason = ""
            state.handle = None
        logger.info(f"Scope {scope_id} reset")

    def close_scope(self, scope_id: str) -> None:
        """End a scope's session and forget its state."""
        with self._registry_lock:
            state = self._scopes.pop(scope_id, None)
        if state is not None:
            logger.debug(f"Scope {scope_id} closed")

    def scope_status(self, scope_id: str) -> ScopeSnapshot:
        """
        Describe a scope.

        Raises:
            NotFound: If the scope was never opened or has been closed
        """
        with self._registry_lock:
            state = self._scopes.get(scope_id)
        if state is None:
            raise NotFound(f"Unknown scope: {scope_id}")
        handle = state.handle
        return ScopeSnapshot(
            scope_id=state.scope_id,
            status=state.status,
            degraded=state.degraded,
            backend=state.backend,
            indexed_passages=handle.size if handle is not None else 0,
            degraded_reason=state.degraded_reason,
        )

    def _ensure_ready(self, state: ScopeState) -> None:
        if state.status is ScopeStatus.READY:
            return

        with state.lock:
            if state.status is ScopeStatus.READY:
                return

            state.status = ScopeStatus.BUILDING
            try:
                self._build(state)
            finally:
                if state.status is ScopeStatus.BUILDING:
                    state.status = ScopeStatus.UNINITIALIZED

    def _build(self, state: ScopeState) -> None:
        """Build the scope's index. Caller holds ``state.lock``."""
        passages = self.store.fetch_passages_by_document_ids(state.document_ids)
        if not passages:
            logger.info(f"Scope {state.scope_id} has no passages")
            state.status = ScopeStatus.UNINITIALIZED
            return

        if self.embedder is None:
            self._mark_degraded(state, "no embedding provider configured")
            state.status = ScopeStatus.READY
            return

        logger.info(
            f"Building {state.backend} index for scope {state.scope_id} "
            f"({len(passages)} passages)"
        )
        try:
            vectors = self.embedder.embed_texts([p.content for p in passages])
            handle = build_handle(passages, vectors, self.embedder.dimension, state.backend)
        except (ProviderError, ValueError) as e:
            self._mark_degraded(state, f"index build failed: {e}")
            state.status = ScopeStatus.READY
            return

        state.handle = handle
        state.backend = handle.backend
        state.status = ScopeStatus.READY
        logger.info(
            f"Scope {state.scope_id} ready on {handle.backend} backend "
            f"({handle.size} vectors)"
        )

    def _mark_degraded(self, state: ScopeState, reason: str) -> None:
        """Switch a scope to keyword mode. Caller holds ``state.lock``."""
        if not state.degraded:
            logger.warning(f"Scope {state.scope_id} degraded to keyword search: {reason}")
        state.degraded = True
        state.degraded_reason = reason
        state.handle = None

    def _degrade(self, state: ScopeState, error: Exception) -> None:
        with state.lock:
            self._mark_degraded(state, str(error) or type(error).__name__)

    # =========================================================================
    # Ingestion
    # =========================================================================

    @traced("retrieval.add_passages")
    def add_passages(self, passages: list[Passage]) -> None:
        """
        Store new passages and extend every open scope that covers them.

        READY scopes embed and index the passages; degraded scopes only need
        the store; scopes not built yet pick them up on their first query.
        """
        if not passages:
            return
        self.store.add(passages)

        with self._registry_lock:
            states = list(self._scopes.values())

        for state in states:
            relevant = [p for p in passages if p.document_id in state.document_set]
            if relevant:
                self._add_to_scope(state, relevant)

    def _add_to_scope(self, state: ScopeState, passages: list[Passage]) -> None:
        # A scope that is not built yet reads the store when it builds.
        if state.degraded or state.status is ScopeStatus.UNINITIALIZED:
            return

        if self.embedder is None:
            with state.lock:
                if state.status is ScopeStatus.READY:
                    self._mark_degraded(state, "no embedding provider configured")
            return

        # Embedding runs outside the lock so documents embed concurrently.
        try:
            vectors = self.embedder.embed_texts([p.content for p in passages])
        except ProviderError as e:
            with state.lock:
                if state.status is ScopeStatus.READY:
                    self._mark_degraded(state, f"index update failed: {e}")
            return

        with state.lock:
            if state.status is not ScopeStatus.READY or state.degraded or state.handle is None:
                return
            try:
                handle = add_to_handle(state.handle, passages, vectors)
            except ValueError as e:
                self._mark_degraded(state, f"index update failed: {e}")
                return
            state.handle = handle
            state.backend = handle.backend
            logger.debug(f"Scope {state.scope_id} now indexes {handle.size} passages")

    def remove_document(self, document_id: str) -> None:
        """Drop a document's passages and reset every scope that included it."""
        self.store.remove_document(document_id)
        with self._registry_lock:
            affected = [s.scope_id for s in self._scopes.values() if document_id in s.document_set]
        for scope_id in affected:
            self.reset(scope_id)

    # =========================================================================
    # Query
    # =========================================================================

    def retrieve(
        self,
        scope_id: str,
        document_ids: Iterable[str],
        question: str,
        k: Optional[int] = None,
    ) -> TierOutcome:
        """
        Run the vector tier for a question.

        Returns:
            Hits with passages at or above ``min_similarity``;
            Empty when the scope has no passages or nothing matched;
            Unavailable when the scope is (or just became) degraded
        """
        state = self.open_scope(scope_id, document_ids)
        self._ensure_ready(state)
        outcome = self._vector_tier(state, question, k or self.settings.top_k)
        if isinstance(outcome, Unavailable) and outcome.degrade:
            self._degrade(state, outcome.error)
        return outcome

    def _vector_tier(self, state: ScopeState, question: str, k: int) -> TierOutcome:
        if state.status is not ScopeStatus.READY:
            return Empty(reason=NO_SOURCES)
        if state.degraded:
            return Unavailable(error=NotFound(state.degraded_reason), degrade=False)

        handle = state.handle
        if handle is None or self.embedder is None:
            return Unavailable(error=NotFound("scope has no vector index"))

        try:
            query_vector = self.embedder.embed_query(question)
            result = search_handle(handle, query_vector, k)
        except ProviderError as e:
            return Unavailable(error=e)
        except ValueError as e:
            return Unavailable(error=Misconfigured(str(e)))

        result = result.above(self.settings.min_similarity)
        if not result:
            return Empty(reason=NO_MATCHES)
        return Hits(result=result)

    @traced("retrieval.query")
    def query(self, scope_id: str, document_ids: Iterable[str], question: str) -> Answer:
        """
        Answer a question from the scope's documents.

        Never raises for provider failures and never returns empty text.
        """
        ids = tuple(dict.fromkeys(document_ids))
        outcome = self.retrieve(scope_id, ids, question)
        state = self.open_scope(scope_id, ids)
        add_span_attributes(
            scope_id=scope_id, outcome=type(outcome).__name__, degraded=state.degraded
        )

        if isinstance(outcome, Empty):
            if outcome.reason == NO_SOURCES:
                return Answer(text=NO_SOURCES_MESSAGE, mode="empty")
            return Answer(text=NO_RELEVANT_MESSAGE, mode="empty")

        if isinstance(outcome, Unavailable):
            logger.debug(f"Scope {scope_id}: answering with keyword search ({outcome.error})")
            return self.keyword.answer(question, state.document_ids)

        passages = outcome.result.passages
        if self.synthesizer is None:
            return self.keyword.answer(question, state.document_ids)

        try:
            text = self.synthesizer.synthesize(question, passages)
        except ProviderError as e:
            self._degrade(state, e)
            return self.keyword.answer(question, state.document_ids)

        return Answer(text=text or NO_ANSWER_MESSAGE, mode="vector", passages=passages)
