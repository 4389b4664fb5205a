# Retrieval evidence attached to a session
#
#  RAG_RETRIEVAL chunk ----> evidence    (query, arrival sequence)
#  RAG_INGESTION chunk ----> ingestions  (document id, status)
#
# Both logs are append-only: nothing is merged, deduplicated or rewritten.

from .evidence_accumulator import EvidenceAccumulator, evidence_for_query, ingestions_for_document

__all__ = ["EvidenceAccumulator", "evidence_for_query", "ingestions_for_document"]
