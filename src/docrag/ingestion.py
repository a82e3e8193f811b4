"""
Document ingestion: title, chunk, store and index.

Each document goes through:
    1. Title generation (language model, with a filename fallback)
    2. Chunking into passages
    3. Storage and incremental indexing via the orchestrator

Bulk ingestion processes documents in parallel; one failing document is
reported without aborting the rest of the batch.
"""

import hashlib
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Optional

from docrag.config import Settings, settings as default_settings
from docrag.errors import ProviderError
from docrag.retrieval.chunker import build_passages, normalize_whitespace

if TYPE_CHECKING:
    from docrag.llm.factory import ChatClientProtocol
    from docrag.retrieval.orchestrator import RetrievalOrchestrator

logger = logging.getLogger(__name__)

SourceType = Literal["pdf", "url", "screenshot", "text"]

TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".rst"}
TITLE_SNIPPET_CHARS = 2000
MAX_TITLE_WORDS = 7

TITLE_SYSTEM_PROMPT = (
    "You are helping label user-provided knowledge sources for a retrieval "
    "augmented generation system."
)

TITLE_PROMPT = """Analyze the content snippet below and suggest a concise, specific title (max 7 words) that captures the main subject.
Return only the title without additional words or punctuation beyond what is needed.

Source type: {source_type}
Snippet:
\"\"\"
{snippet}
\"\"\""""


@dataclass
class DocumentSource:
    """Extracted text of one document, ready for ingestion."""

    document_id: str
    text: str
    page_count: int = 1
    title: Optional[str] = None
    source_type: SourceType = "text"
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class IngestionReport:
    """Outcome of ingesting one document."""

    document_id: str
    title: str
    passages: int = 0
    success: bool = True
    error: str = ""


def fallback_title(filename: str) -> str:
    """Title derived from a filename; 'Untitled document' when empty."""
    stem = Path(filename).stem.strip() if filename else ""
    return stem or "Untitled document"


def clean_title(raw: str) -> str:
    """First line of a model reply, unquoted and capped at seven words."""
    line = next((ln for ln in (raw or "").splitlines() if ln.strip()), "")
    line = re.sub(r"^(?:title\s*:\s*)", "", line.strip(), flags=re.IGNORECASE)
    line = line.strip().strip("\"'`*#.").strip()
    return " ".join(line.split()[:MAX_TITLE_WORDS])


def generate_title(
    text: str,
    source_type: str,
    fallback: str,
    chat_client: Optional["ChatClientProtocol"],
) -> str:
    """
    Ask the language model for a short title.

    Args:
        text: Document text (only the first 2000 normalized characters are sent)
        source_type: pdf, url, screenshot or text
        fallback: Title used when generation is not possible
        chat_client: Chat client, or None to skip generation

    Returns:
        Generated title, or ``fallback`` on missing client, empty text,
        provider errors or an empty reply
    """
    if chat_client is None:
        return fallback

    snippet = normalize_whitespace(text)[:TITLE_SNIPPET_CHARS]
    if not snippet:
        return fallback

    try:
        reply = chat_client.complete(
            TITLE_SYSTEM_PROMPT,
            TITLE_PROMPT.format(source_type=source_type, snippet=snippet),
            0.2,
        )
    except ProviderError as e:
        logger.warning(f"Title generation failed, using fallback: {e}")
        return fallback

    return clean_title(reply) or fallback


def default_document_id(path: Path) -> str:
    """File stem plus a short hash of the resolved path; stable across reloads."""
    digest = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:8]
    return f"{path.stem}-{digest}"


def load_text_file(path: Path, document_id: Optional[str] = None) -> DocumentSource:
    """
    Read a plain-text or markdown file into a DocumentSource.

    The default document id comes from ``default_document_id``.

    Raises:
        ValueError: If the file type is not supported
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if path.suffix.lower() not in TEXT_SUFFIXES:
        raise ValueError(f"Unsupported file type: {path.suffix or path.name}")
    text = path.read_text(encoding="utf-8", errors="replace")
    return DocumentSource(
        document_id=document_id or default_document_id(path),
        text=text,
        source_type="text",
        metadata={"original_filename": path.name},
    )


def load_pdf_file(path: Path, document_id: Optional[str] = None) -> DocumentSource:
    """
    Extract the text and page count of a PDF.

    Pages are joined with blank lines; the page count drives the page
    estimates of the resulting passages.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a readable PDF
    """
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    path = Path(path)
    try:
        reader = PdfReader(path)
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        raise ValueError(f"Unreadable PDF {path.name}: {e}") from e
    text = "\n\n".join(p for p in pages if p.strip())
    if not text.strip():
        logger.warning(f"No text extracted from {path.name}")

    return DocumentSource(
        document_id=document_id or default_document_id(path),
        text=text,
        page_count=max(len(pages), 1),
        source_type="pdf",
        metadata={"original_filename": path.name, "mime_type": "application/pdf"},
    )


def load_document(path: Path, document_id: Optional[str] = None) -> DocumentSource:
    """
    Load a PDF, plain-text or markdown file by its suffix.

    Raises:
        ValueError: If the file type is not supported
    """
    path = Path(path)
    if path.suffix.lower() == ".pdf":
        return load_pdf_file(path, document_id)
    return load_text_file(path, document_id)


class IngestionPipeline:
    """
    Turn DocumentSources into stored, indexed passages.

    Example:
        >>> pipeline = IngestionPipeline(orchestrator, chat_client)
        >>> reports = pipeline.ingest_many(sources, scope_id="library")
    """

    def __init__(
        self,
        orchestrator: "RetrievalOrchestrator",
        chat_client: Optional["ChatClientProtocol"] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.chat_client = chat_client
        self.settings = config or default_settings

    def ingest(self, source: DocumentSource, scope_id: str) -> IngestionReport:
        """Ingest one document; an explicit title skips title generation."""
        default = source.title or fallback_title(source.metadata.get("original_filename", ""))
        title = source.title or generate_title(
            source.text, source.source_type, default, self.chat_client
        )

        metadata = {**source.metadata, "title": title, "source_type": source.source_type}
        passages = build_passages(
            document_id=source.document_id,
            scope_id=scope_id,
            text=source.text,
            chunk_size=self.settings.chunk_size_chars,
            overlap=self.settings.overlap_chars,
            page_count=max(source.page_count, 1),
            metadata=metadata,
        )
        self.orchestrator.add_passages(passages)

        logger.info(f"Ingested {source.document_id} ({title!r}): {len(passages)} passages")
        return IngestionReport(document_id=source.document_id, title=title, passages=len(passages))

    def ingest_many(
        self,
        sources: list[DocumentSource],
        scope_id: str,
        max_workers: Optional[int] = None,
    ) -> list[IngestionReport]:
        """
        Ingest documents in parallel, one task per document.

        Returns:
            One report per source, in input order
        """
        if not sources:
            return []

        workers = max_workers or self.settings.ingest_workers
        with ThreadPoolExecutor(max_workers=min(workers, len(sources))) as pool:
            futures = [pool.submit(self.ingest, source, scope_id) for source in sources]

        reports = []
        for source, future in zip(sources, futures):
            try:
                reports.append(future.result())
            except Exception as e:
                logger.error(f"Failed to ingest {source.document_id}: {e}")
                reports.append(
                    IngestionReport(
                        document_id=source.document_id,
                        title=source.title or source.document_id,
                        success=False,
                        error=str(e),
                    )
                )
        return reports
