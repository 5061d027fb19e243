from pydantic import BaseModel

from shared.models.search import SourceRef
from shared.models.sync import SyncJob


class SearchResultItem(BaseModel):
    document_id: str
    title: str
    path: str
    text: str
    score: float
    language: str | None
    source_url: str | None


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResultItem]
    total: int
    top_score: float
    has_evidence: bool


class QueryResponse(BaseModel):
    answer: str
    sources: list[SourceRef]
    question: str
    lang: str
    chat_id: str
    has_evidence: bool
    correlation_id: str


class SyncAcceptedResponse(BaseModel):
    status: str
    message: str
    revision: str | None = None
    changes: int = 0


class SyncStatusResponse(BaseModel):
    jobs: list[SyncJob]
    total: int
