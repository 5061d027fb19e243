from pydantic import BaseModel, Field


class FullSyncRequest(BaseModel):
    branch: str | None = None
    force: bool = False


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    lang: str | None = None
    k: int | None = Field(default=None, ge=1, le=50)
    min_score: float | None = Field(default=None, ge=0.0, le=1.0)


class QueryRequest(BaseModel):
    question: str = Field(min_length=1)
    chat_id: str | None = None
    lang: str | None = None
