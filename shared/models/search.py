"""Pydantic models for retrieval results and grounded answers."""

from pydantic import BaseModel


class RetrievedChunk(BaseModel):
    """A single scored chunk returned by the vector index."""

    point_id: str
    score: float
    document_id: str
    path: str
    title: str
    text: str
    language: str | None = None
    revision: str | None = None
    source_url: str | None = None


class RetrievalResult(BaseModel):
    """Output of the retrieval pipeline.

    Attributes:
        query:        The normalised query text.
        candidates:   Raw search hits, best score first.
        evidence:     Diversified chunks with score >= min_score, in selection order.
        top_score:    Best raw score, 0.0 without hits.
        min_score:    The threshold the gate was evaluated against.
        has_evidence: True if top_score >= min_score.
    """

    query: str
    candidates: list[RetrievedChunk] = []
    evidence: list[RetrievedChunk] = []
    top_score: float = 0.0
    min_score: float
    has_evidence: bool = False


class SourceRef(BaseModel):
    title: str
    path: str
    url: str | None = None


class AnswerResult(BaseModel):
    chat_id: str
    correlation_id: str
    language: str
    answer: str
    has_evidence: bool
    top_score: float = 0.0
    sources: list[SourceRef] = []
