"""Unit tests for ingestion module."""

from unittest.mock import MagicMock, patch

import pytest

from docrag.errors import Misconfigured, ResourceExhausted
from docrag.ingestion import (
    DocumentSource,
    IngestionPipeline,
    clean_title,
    fallback_title,
    generate_title,
    load_document,
    load_pdf_file,
    load_text_file,
)
from docrag.retrieval.orchestrator import RetrievalOrchestrator
from docrag.retrieval.store import InMemoryPassageStore


@pytest.mark.unit
class TestTitles:
    """Tests for title generation."""

    def test_fallback_title_uses_stem(self):
        assert fallback_title("reports/q3-results.pdf") == "q3-results"

    def test_fallback_title_empty(self):
        assert fallback_title("") == "Untitled document"

    def test_clean_title(self):
        assert clean_title('Title: "Quarterly Revenue Report".\nExtra line') == "Quarterly Revenue Report"

    def test_clean_title_caps_words(self):
        assert clean_title("one two three four five six seven eight nine") == (
            "one two three four five six seven"
        )

    def test_generate_title_uses_model(self, chat_client_factory):
        client = chat_client_factory(reply="Remote Work Policy")

        title = generate_title("Remote work is allowed.", "pdf", "fallback", client)

        assert title == "Remote Work Policy"
        _, prompt, temperature = client.calls[0]
        assert "Source type: pdf" in prompt
        assert "Remote work is allowed." in prompt
        assert temperature == 0.2

    def test_generate_title_sends_bounded_snippet(self, chat_client_factory):
        client = chat_client_factory(reply="Long")

        generate_title("x" * 5000, "text", "fallback", client)

        _, prompt, _ = client.calls[0]
        assert "x" * 2000 in prompt
        assert "x" * 2001 not in prompt

    def test_generate_title_without_client(self):
        assert generate_title("text", "pdf", "fallback", None) == "fallback"

    def test_generate_title_empty_text(self, chat_client_factory):
        client = chat_client_factory()

        assert generate_title("   ", "pdf", "fallback", client) == "fallback"
        assert client.calls == []

    @pytest.mark.parametrize("error", [ResourceExhausted("quota"), Misconfigured("bad key")])
    def test_generate_title_provider_error(self, chat_client_factory, error):
        client = chat_client_factory(error=error)

        assert generate_title("text", "pdf", "fallback", client) == "fallback"

    def test_generate_title_blank_reply(self, chat_client_factory):
        assert generate_title("text", "pdf", "fallback", chat_client_factory(reply="  ")) == "fallback"


@pytest.mark.unit
class TestLoadTextFile:
    """Tests for load_text_file."""

    def test_loads_text(self, tmp_docs_dir):
        source = load_text_file(tmp_docs_dir / "handbook.txt")

        assert source.text.startswith("Employees may request")
        assert source.source_type == "text"
        assert source.metadata["original_filename"] == "handbook.txt"
        assert source.document_id.startswith("handbook-")

    def test_document_id_is_stable(self, tmp_docs_dir):
        path = tmp_docs_dir / "guide.md"

        assert load_text_file(path).document_id == load_text_file(path).document_id

    def test_explicit_document_id(self, tmp_docs_dir):
        assert load_text_file(tmp_docs_dir / "guide.md", document_id="g1").document_id == "g1"

    def test_unsupported_type(self, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(ValueError, match="Unsupported"):
            load_text_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_text_file(tmp_path / "missing.txt")


def fake_page(text):
    page = MagicMock()
    page.extract_text.return_value = text
    return page


@pytest.mark.unit
class TestLoadPdfFile:
    """Tests for load_pdf_file and load_document."""

    @patch("pypdf.PdfReader")
    def test_loads_text_and_page_count(self, mock_reader, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4")
        mock_reader.return_value.pages = [
            fake_page("Quarterly revenue grew."),
            fake_page(""),
            fake_page("Costs fell in the spring."),
        ]

        source = load_pdf_file(path)

        assert source.page_count == 3
        assert source.source_type == "pdf"
        assert source.text == "Quarterly revenue grew.\n\nCosts fell in the spring."
        assert source.metadata["original_filename"] == "report.pdf"
        assert source.document_id.startswith("report-")

    def test_blank_pdf_has_pages_but_no_text(self, tmp_path):
        from pypdf import PdfWriter

        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        writer.add_blank_page(width=200, height=200)
        path = tmp_path / "blank.pdf"
        with open(path, "wb") as f:
            writer.write(f)

        source = load_pdf_file(path)

        assert source.page_count == 2
        assert source.text.strip() == ""

    def test_corrupt_pdf_is_rejected(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")

        with pytest.raises(ValueError, match="Unreadable PDF"):
            load_pdf_file(path)

    @patch("pypdf.PdfReader")
    def test_load_document_dispatches_on_suffix(self, mock_reader, tmp_docs_dir):
        mock_reader.return_value.pages = [fake_page("Scanned policy text.")]
        pdf_path = tmp_docs_dir / "policy.PDF"
        pdf_path.write_bytes(b"%PDF-1.4")

        assert load_document(pdf_path).source_type == "pdf"
        assert load_document(tmp_docs_dir / "guide.md").source_type == "text"

    def test_load_document_rejects_unknown_suffix(self, tmp_path):
        path = tmp_path / "slides.pptx"
        path.write_bytes(b"PK")

        with pytest.raises(ValueError, match="Unsupported"):
            load_document(path)


@pytest.mark.unit
class TestIngestionPipeline:
    """Tests for IngestionPipeline."""

    @pytest.fixture
    def orchestrator(self, mock_settings):
        return RetrievalOrchestrator(InMemoryPassageStore(), embedder=None, config=mock_settings)

    def test_ingest_stores_passages_with_metadata(self, orchestrator, chat_client_factory, settings_factory):
        config = settings_factory(chunk_size_chars=40, overlap_chars=10)
        pipeline = IngestionPipeline(orchestrator, chat_client_factory(reply="Travel Refunds"), config)
        source = DocumentSource(
            document_id="doc-1",
            text="Employees may request a refund of travel expenses within thirty days.",
            page_count=2,
            source_type="pdf",
        )

        report = pipeline.ingest(source, "chat-1")

        passages = orchestrator.store.fetch_passages_by_document_ids(["doc-1"])
        assert report.success is True
        assert report.title == "Travel Refunds"
        assert report.passages == len(passages) > 1
        assert all(p.title == "Travel Refunds" for p in passages)
        assert all(p.source_type == "pdf" for p in passages)
        assert all(p.scope_id == "chat-1" for p in passages)
        assert passages[-1].page == 2

    def test_ingest_keeps_explicit_title(self, orchestrator, chat_client_factory):
        client = chat_client_factory(reply="Ignored")
        pipeline = IngestionPipeline(orchestrator, client)

        report = pipeline.ingest(DocumentSource("doc-1", "Some text.", title="Given"), "chat-1")

        assert report.title == "Given"
        assert client.calls == []

    def test_ingest_fallback_title_from_filename(self, orchestrator):
        pipeline = IngestionPipeline(orchestrator, chat_client=None)
        source = DocumentSource("doc-1", "Some text.", metadata={"original_filename": "notes.md"})

        assert pipeline.ingest(source, "chat-1").title == "notes"

    def test_ingest_empty_document(self, orchestrator):
        report = IngestionPipeline(orchestrator).ingest(DocumentSource("doc-1", "   "), "chat-1")

        assert report.success is True
        assert report.passages == 0

    def test_ingest_many_preserves_order(self, orchestrator):
        pipeline = IngestionPipeline(orchestrator)
        sources = [DocumentSource(f"doc-{i}", f"Document number {i}.") for i in range(6)]

        reports = pipeline.ingest_many(sources, "chat-1", max_workers=3)

        assert [r.document_id for r in reports] == [s.document_id for s in sources]
        assert all(r.success for r in reports)
        assert len(orchestrator.store) == 6

    def test_ingest_many_reports_failures(self, orchestrator):
        pipeline = IngestionPipeline(orchestrator)
        sources = [
            DocumentSource("good", "Fine text."),
            DocumentSource("bad", "Broken text.", page_count=1),
        ]
        original = orchestrator.add_passages

        def flaky(passages):
            if passages and passages[0].document_id == "bad":
                raise RuntimeError("store unavailable")
            original(passages)

        orchestrator.add_passages = MagicMock(side_effect=flaky)

        reports = pipeline.ingest_many(sources, "chat-1")

        assert reports[0].success is True
        assert reports[1].success is False
        assert "store unavailable" in reports[1].error

    def test_ingest_many_empty(self, orchestrator):
        assert IngestionPipeline(orchestrator).ingest_many([], "chat-1") == []

    def test_ingested_passages_reach_open_scope(self, mock_settings, fake_embedder):
        orch = RetrievalOrchestrator(InMemoryPassageStore(), fake_embedder, config=mock_settings)
        pipeline = IngestionPipeline(orch)
        pipeline.ingest(DocumentSource("doc-1", "Kubernetes clusters host every service."), "chat-1")
        orch.query("chat-1", ["doc-1", "doc-2"], "kubernetes clusters")

        pipeline.ingest(DocumentSource("doc-2", "Invoices are paid monthly by finance."), "chat-1")

        assert orch.scope_status("chat-1").indexed_passages == 2
