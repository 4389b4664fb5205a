from typing import Tuple
import structlog

from agentos_workbench.domain.models.chunks import RagRetrievalChunk, RagIngestionChunk
from agentos_workbench.domain.models.session_state import (
    Session, RetrievedEvidence, IngestionRecord
)

logger = structlog.get_logger(__name__)


class EvidenceAccumulator:
    """Append-only logs of RAG retrieval and ingestion chunks"""

    def append_retrieval(
        self,
        evidence: Tuple[RetrievedEvidence, ...],
        chunk: RagRetrievalChunk
    ) -> Tuple[RetrievedEvidence, ...]:
        entry = RetrievedEvidence(
            stream_id=chunk.stream_id,
            sequence=len(evidence),
            query=chunk.query,
            chunks=tuple(chunk.retrieved_chunks),
            total_results=chunk.total_results,
            processing_time_ms=chunk.processing_time_ms
        )
        logger.debug(
            "Retrieval evidence recorded",
            stream_id=chunk.stream_id,
            query=chunk.query,
            returned=len(entry.chunks),
            total_results=chunk.total_results
        )
        return evidence + (entry,)

    def append_ingestion(
        self,
        ingestions: Tuple[IngestionRecord, ...],
        chunk: RagIngestionChunk
    ) -> Tuple[IngestionRecord, ...]:
        # Repeated reports for one document are all kept
        entry = IngestionRecord(
            stream_id=chunk.stream_id,
            sequence=len(ingestions),
            document_id=chunk.document_id,
            collection_id=chunk.collection_id,
            status=chunk.status,
            chunks_created=chunk.chunks_created,
            error_message=chunk.error_message,
            processing_time_ms=chunk.processing_time_ms
        )
        if chunk.status == "failed":
            logger.warning(
                "Document ingestion failed",
                document_id=chunk.document_id,
                collection_id=chunk.collection_id,
                error=chunk.error_message
            )
        return ingestions + (entry,)


def evidence_for_query(session: Session, query: str) -> Tuple[RetrievedEvidence, ...]:
    return tuple(entry for entry in session.evidence if entry.query == query)


def ingestions_for_document(session: Session, document_id: str) -> Tuple[IngestionRecord, ...]:
    return tuple(entry for entry in session.ingestions if entry.document_id == document_id)
