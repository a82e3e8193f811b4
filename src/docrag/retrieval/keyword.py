"""
Keyword fallback searcher: retrieval without embeddings.

Used when a scope has no vector index (no provider credentials, quota
exhausted, provider errors). Pure text processing over stored passages.

Query intents are detected by an ordered list of matchers:
    1. SummarizeIntent  - "summarize", "what is this document about", ...
    2. PresenceIntent   - yes/no questions such as "does it mention js"
    3. LookupIntent     - default; lexical match with snippets

A lookup with no hits falls through to an extractive summary. The searcher
never raises: an empty scope gets a guidance message.
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from docrag.config import Settings, settings as default_settings
from docrag.errors import EMPTY_SCOPE_GUIDANCE, NO_RELEVANT_MESSAGE
from docrag.models import Answer, Passage, RetrievalResult, ScoredPassage
from docrag.retrieval.store import PassageStoreProtocol

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"[a-z0-9]+")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

MAX_QUERY_TOKENS = 5
MIN_TOKEN_LENGTH = 2
EARLY_SENTENCE_BOOST = 0.15

STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been
    before being below between both but by can could did do does doing down during
    each few for from further had has have having he her here hers herself him
    himself his how i if in into is it its itself just me more most my myself no
    nor not of off on once only or other our ours ourselves out over own same she
    should so some such than that the their theirs them themselves then there these
    they this those through to too under until up very was we were what when where
    which while who whom why will with would you your yours yourself yourselves
    also may might must shall us tell give show find please explain describe
    document documents file files pdf pdfs page pages text
    """.split()
)

SYNONYM_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"js", "javascript"}),
    frozenset({"ts", "typescript"}),
    frozenset({"py", "python"}),
    frozenset({"ml", "machine learning"}),
    frozenset({"ai", "artificial intelligence"}),
    frozenset({"db", "database"}),
    frozenset({"k8s", "kubernetes"}),
    frozenset({"nlp", "natural language processing"}),
    frozenset({"ui", "user interface"}),
    frozenset({"api", "application programming interface"}),
)

PRESENCE_FILLER = STOPWORDS | frozenset(
    {
        "mention", "mentions", "mentioned", "contain", "contains", "contained",
        "include", "includes", "included", "appear", "appears", "appeared",
        "talk", "talks", "discuss", "discusses", "discussed", "cover", "covers",
        "covered", "refer", "refers", "reference", "references", "anything",
        "something", "word", "term", "anywhere", "used", "use", "uses", "there",
    }
)


# =============================================================================
# Intents
# =============================================================================


@dataclass(frozen=True)
class SummarizeIntent:
    """The user wants an overview of the documents."""


@dataclass(frozen=True)
class PresenceIntent:
    """The user asks whether some term appears in the documents."""

    terms: tuple[str, ...]


@dataclass(frozen=True)
class LookupIntent:
    """Default: find passages matching the query tokens."""

    tokens: tuple[str, ...]


Intent = Union[SummarizeIntent, PresenceIntent, LookupIntent]
IntentMatcher = Callable[[str], Optional[Intent]]

SUMMARIZE_PATTERNS = (
    re.compile(r"\bsummar(?:y|ise|ize|ized|ised|izing|ising)\b", re.IGNORECASE),
    re.compile(
        r"\bwhat(?:'s| is| are)\s+(?:this|these|that|the)\s+"
        r"(?:document|documents|file|files|pdf|pdfs|paper|text|source|sources)\s+about\b",
        re.IGNORECASE,
    ),
    # Overview phrasing only counts when it is about the documents as a whole.
    re.compile(r"\b(?:overview|main points|key points|gist|tl;?dr)\s*[?.!]*\s*$", re.IGNORECASE),
    re.compile(
        r"\b(?:overview|main points|key points|gist|tl;?dr)\s+(?:of|on|about|for|from|in)\s+"
        r"(?:(?:this|these|that|the|my|your|all|our)\s+)*"
        r"(?:document|documents|file|files|pdf|pdfs|paper|text|source|sources|everything)\b",
        re.IGNORECASE,
    ),
)

PRESENCE_PATTERNS = (
    re.compile(
        r"^\s*(?:does|do|did|is|are|was|were|has|have)\b.*?\b"
        r"(?:mention(?:s|ed)?|contain(?:s|ed)?|include(?:s|d)?|appear(?:s|ed)?|"
        r"talk(?:s)? about|discuss(?:es|ed)?|cover(?:s|ed)?|refer(?:s)? to|reference(?:s)?)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^\s*(?:is|are)\s+there\b", re.IGNORECASE),
)


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens."""
    return TOKEN_RE.findall((text or "").lower())


def extract_query_tokens(
    question: str,
    limit: int = MAX_QUERY_TOKENS,
    min_length: int = MIN_TOKEN_LENGTH,
) -> list[str]:
    """
    Pick up to ``limit`` search tokens from a question.

    Stopwords are dropped unless nothing else is left.
    """
    tokens = list(dict.fromkeys(t for t in tokenize(question) if len(t) >= min_length))
    content = [t for t in tokens if t not in STOPWORDS]
    return (content or tokens)[:limit]


def expand_synonyms(terms: Iterable[str]) -> list[str]:
    """Expand terms through the synonym table, keeping input order first."""
    expanded = list(dict.fromkeys(terms))
    for term in list(expanded):
        for group in SYNONYM_GROUPS:
            if term in group:
                expanded.extend(sorted(group - {term}))
    return list(dict.fromkeys(expanded))


def match_summarize(question: str) -> Optional[Intent]:
    if any(pattern.search(question) for pattern in SUMMARIZE_PATTERNS):
        return SummarizeIntent()
    return None


def match_presence(question: str) -> Optional[Intent]:
    if not any(pattern.search(question) for pattern in PRESENCE_PATTERNS):
        return None
    words = [w for w in tokenize(question) if w not in PRESENCE_FILLER]
    # Keep multi-word synonym entries such as "machine learning" together.
    phrase = " ".join(words)
    phrases = [
        member
        for group in SYNONYM_GROUPS
        for member in sorted(group)
        if " " in member and f" {member} " in f" {phrase} "
    ]
    phrase_words = {w for p in phrases for w in p.split()}
    terms = phrases + [
        w for w in words if len(w) >= MIN_TOKEN_LENGTH and w not in phrase_words
    ]
    terms = list(dict.fromkeys(terms))[:MAX_QUERY_TOKENS]
    if not terms:
        return None
    return PresenceIntent(terms=tuple(terms))


INTENT_MATCHERS: tuple[IntentMatcher, ...] = (match_summarize, match_presence)


def detect_intent(question: str) -> Intent:
    """Run the matchers in priority order; default to a lookup."""
    for matcher in INTENT_MATCHERS:
        intent = matcher(question)
        if intent is not None:
            return intent
    return LookupIntent(tokens=tuple(extract_query_tokens(question)))


# =============================================================================
# Text helpers
# =============================================================================


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text or "") if s.strip()]


def extract_snippet(content: str, terms: Iterable[str], radius: int) -> str:
    """
    Return a window of ``radius`` characters around the earliest term match.

    Falls back to the start of the content when no term occurs.
    """
    lowered = content.lower()
    positions = [
        (pos, len(term))
        for term in terms
        if term and (pos := lowered.find(term.lower())) >= 0
    ]
    if not positions:
        snippet = content[: radius * 2]
        return snippet + ("..." if len(content) > len(snippet) else "")

    pos, length = min(positions)
    start = max(0, pos - radius)
    end = min(len(content), pos + length + radius)
    snippet = content[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(content):
        snippet = snippet + "..."
    return snippet


def summarize_passages(passages: list[Passage], max_sentences: int) -> list[str]:
    """
    Extractive summary: the highest scoring sentences in original order.

    A sentence scores the mean normalized frequency of its non-stopword
    terms across all passages, boosted slightly when it appears early.
    """
    sentences: list[str] = []
    seen: set[str] = set()
    for passage in passages:
        for sentence in split_sentences(passage.content):
            key = sentence.lower()
            if key not in seen:
                seen.add(key)
                sentences.append(sentence)
    if not sentences:
        return []

    sentence_terms = [
        [t for t in tokenize(s) if t not in STOPWORDS and len(t) >= MIN_TOKEN_LENGTH]
        for s in sentences
    ]
    frequencies = Counter(t for terms in sentence_terms for t in terms)
    max_frequency = max(frequencies.values(), default=1)

    substantive = [i for i, terms in enumerate(sentence_terms) if len(terms) >= 3]
    candidates = substantive or list(range(len(sentences)))

    total = len(sentences)
    scored = []
    for i in candidates:
        terms = sentence_terms[i]
        base = (
            sum(frequencies[t] for t in terms) / (max_frequency * math.sqrt(len(terms)))
            if terms
            else 0.0
        )
        boost = 1.0 + EARLY_SENTENCE_BOOST * (1.0 - i / total)
        scored.append((base * boost, -i))

    top = sorted(scored, reverse=True)[:max_sentences]
    return [sentences[-neg_i] for _, neg_i in sorted(top, key=lambda item: -item[1])]


def _describe(passage: Passage) -> str:
    return f"{passage.title} (page {passage.page})"


# =============================================================================
# Searcher
# =============================================================================


class KeywordSearcher:
    """
    Lexical retrieval and extractive summaries over the passage store.

    Example:
        >>> searcher = KeywordSearcher(store)
        >>> answer = searcher.answer("does it mention js?", ["doc-1"])
        >>> answer.text
        'Yes. ...'
    """

    def __init__(self, store: PassageStoreProtocol, config: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = config or default_settings

    def answer(self, question: str, document_ids: Iterable[str]) -> Answer:
        """
        Answer a question without embeddings or a language model.

        Never raises; always returns non-empty text.
        """
        ids = list(document_ids)
        try:
            intent = detect_intent(question or "")
            logger.debug(f"Keyword intent for {question!r}: {intent}")

            if isinstance(intent, SummarizeIntent):
                return self._summarize(ids)
            if isinstance(intent, PresenceIntent):
                return self._presence(ids, intent)
            return self._lookup(ids, intent)
        except Exception:
            logger.exception("Keyword fallback failed")
            return Answer(text=NO_RELEVANT_MESSAGE, mode="empty", degraded=True)

    def search(self, tokens: list[str], document_ids: Iterable[str]) -> RetrievalResult:
        """
        Lexical search with snippets; full-text when the store supports it.

        Returns unscored hits in store order.
        """
        ids = list(document_ids)
        limit = self.settings.keyword_result_limit
        if not tokens or not ids:
            return RetrievalResult()

        passages: list[Passage] = []
        if self.store.supports_full_text:
            try:
                passages = self.store.full_text_search(ids, tokens, limit)
            except Exception as e:
                logger.warning(f"Full-text search unavailable, using substring match: {e}")
                passages = []
        if not passages:
            passages = self.store.substring_search(ids, tokens, limit)

        radius = self.settings.snippet_radius
        return RetrievalResult(
            hits=tuple(
                ScoredPassage(passage=p, snippet=extract_snippet(p.content, tokens, radius))
                for p in passages[:limit]
            )
        )

    def _summarize(self, document_ids: list[str], preface: str = "") -> Answer:
        passages = self.store.fetch_passages_full_text(
            document_ids, self.settings.keyword_sample_limit
        )
        if not passages:
            return Answer(text=EMPTY_SCOPE_GUIDANCE, mode="empty", degraded=True)

        sentences = summarize_passages(passages, self.settings.summary_sentences)
        if not sentences:
            return Answer(text=EMPTY_SCOPE_GUIDANCE, mode="empty", degraded=True)

        heading = preface or "Here's a brief summary based on your documents:"
        return Answer(
            text=f"{heading}\n\n{' '.join(sentences)}",
            mode="summary",
            passages=passages,
            degraded=True,
        )

    def _presence(self, document_ids: list[str], intent: PresenceIntent) -> Answer:
        if not self.store.fetch_passages_full_text(document_ids, 1):
            return Answer(text=EMPTY_SCOPE_GUIDANCE, mode="empty", degraded=True)

        expanded = expand_synonyms(intent.terms)
        result = self.search(expanded, document_ids)
        asked = ", ".join(f'"{t}"' for t in intent.terms)

        if not result:
            return Answer(
                text=f"No. I couldn't find any mention of {asked} in the selected documents.",
                mode="keyword",
                degraded=True,
            )

        first = result.hits[0]
        also = [t for t in expanded if t not in intent.terms]
        note = f" (also searched: {', '.join(also)})" if also else ""
        text = (
            f"Yes. The documents mention {asked}{note}. "
            f"For example, in {_describe(first.passage)}: \"{first.snippet}\""
        )
        return Answer(text=text, mode="keyword", passages=result.passages, degraded=True)

    def _lookup(self, document_ids: list[str], intent: LookupIntent) -> Answer:
        if not self.store.fetch_passages_full_text(document_ids, 1):
            return Answer(text=EMPTY_SCOPE_GUIDANCE, mode="empty", degraded=True)

        result = self.search(list(intent.tokens), document_ids)
        if not result:
            wanted = ", ".join(intent.tokens) or "your question"
            return self._summarize(
                document_ids,
                preface=(
                    f"I couldn't find an exact match for {wanted}, "
                    "but here's a summary of your documents:"
                ),
            )

        lines = [
            f"{i}. {_describe(hit.passage)}: {hit.snippet}"
            for i, hit in enumerate(result.hits, start=1)
        ]
        text = "Here's what I found in your documents:\n\n" + "\n".join(lines)
        return Answer(text=text, mode="keyword", passages=result.passages, degraded=True)
