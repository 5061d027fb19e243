"""Pydantic models for indexed policy documents.

Hierarchy:
  Document: one tracked corpus file, keyed by a hash of its path.
  Chunk: a bounded slice of a Document's text, keyed by (document_id, seq).
  RepositoryState: the sync watermark of the corpus repository.
  ChunkCounts: chunk mutations of a single re-index, used for job counters.
"""

from datetime import datetime

from pydantic import BaseModel


class Document(BaseModel):
    """A tracked corpus file.

    The id is derived from the repository id and the path, so the same path
    always maps to the same document across syncs.
    """

    id: str
    repo_id: str
    path: str
    revision: str
    content_hash: str
    language: str
    title: str
    chunk_count: int = 0
    active: bool = True
    updated_at: datetime | None = None


class Chunk(BaseModel):
    document_id: str
    seq: int
    text: str
    text_hash: str
    language: str
    title: str

    @property
    def chunk_id(self) -> str:
        return f"{self.document_id}_{self.seq}"


class RepositoryState(BaseModel):
    """Watermark of the last full synchronisation of a repository."""

    repo_id: str
    default_branch: str
    last_synced_revision: str | None = None
    last_synced_at: datetime | None = None
    files_total: int = 0
    files_processed: int = 0
    active: bool = True


class ChunkCounts(BaseModel):
    created: int = 0
    updated: int = 0
    deleted: int = 0

    def __add__(self, other: "ChunkCounts") -> "ChunkCounts":
        return ChunkCounts(
            created=self.created + other.created,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
        )
