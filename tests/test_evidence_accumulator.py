"""Tests for EvidenceAccumulator."""

from agentos_workbench.domain.context import (
    EvidenceAccumulator, evidence_for_query, ingestions_for_document
)
from agentos_workbench.domain.session.session_reducer import new_session

from tests import frames


class TestRetrieval:

    def test_entries_are_appended_in_order(self):
        accumulator = EvidenceAccumulator()

        evidence = accumulator.append_retrieval((), frames.chunk(frames.rag_retrieval("first")))
        evidence = accumulator.append_retrieval(evidence, frames.chunk(frames.rag_retrieval("second", chunks=[])))

        assert [entry.query for entry in evidence] == ["first", "second"]
        assert [entry.sequence for entry in evidence] == [0, 1]
        assert evidence[0].chunks[0].document_id == "d1"
        assert evidence[0].chunks[0].score == 0.91
        assert evidence[1].total_results == 0

    def test_identical_retrievals_are_all_kept(self):
        accumulator = EvidenceAccumulator()
        chunk = frames.chunk(frames.rag_retrieval("same"))

        evidence = accumulator.append_retrieval((), chunk)
        evidence = accumulator.append_retrieval(evidence, chunk)

        assert len(evidence) == 2


class TestIngestion:

    def test_repeated_document_reports_are_kept(self):
        accumulator = EvidenceAccumulator()

        ingestions = accumulator.append_ingestion((), frames.chunk(frames.rag_ingestion("doc-1", "partial")))
        ingestions = accumulator.append_ingestion(ingestions, frames.chunk(frames.rag_ingestion("doc-1", "success")))

        assert [entry.status for entry in ingestions] == ["partial", "success"]
        assert ingestions[1].sequence == 1

    def test_failed_ingestion_keeps_error(self):
        accumulator = EvidenceAccumulator()
        raw = frames.rag_ingestion("doc-2", "failed")
        raw["errorMessage"] = "unsupported format"

        ingestions = accumulator.append_ingestion((), frames.chunk(raw))

        assert ingestions[0].error_message == "unsupported format"


class TestQueries:

    def test_filters(self):
        accumulator = EvidenceAccumulator()
        session = new_session("sess-1").model_copy(update={
            "evidence": accumulator.append_retrieval(
                accumulator.append_retrieval((), frames.chunk(frames.rag_retrieval("a"))),
                frames.chunk(frames.rag_retrieval("b"))
            ),
            "ingestions": accumulator.append_ingestion((), frames.chunk(frames.rag_ingestion("doc-1"))),
        })

        assert [entry.query for entry in evidence_for_query(session, "b")] == ["b"]
        assert len(ingestions_for_document(session, "doc-1")) == 1
        assert ingestions_for_document(session, "doc-9") == ()
