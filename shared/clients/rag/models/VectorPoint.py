"""Metadata stored alongside each chunk vector in the RAG backend."""

from pydantic import BaseModel


class VectorPoint(BaseModel):
    """Payload of one chunk vector.

    Denormalises the owning document so search results can be filtered by
    language and rendered with title and source link without a store lookup.

    Attributes:
        document_id:  Id of the owning document (hash of its path).
        path:         Repository-relative path of the document.
        revision:     Commit the chunk was indexed from.
        seq:          Zero-based position of this chunk within the document.
        language:     Detected document language ("ko" / "en").
        title:        Document title (first heading or file name).
        content_hash: SHA-256 of the whole document content. Identical across all chunks of a document.
        text_hash:    SHA-256 of this chunk's text.
        source_url:   Link to the document at the indexed revision.
        chunk_text:   Raw text content of this chunk.
    """

    # Core identity
    document_id: str
    path: str
    revision: str
    seq: int

    # Filterable metadata
    language: str
    title: str

    # Change detection
    content_hash: str
    text_hash: str

    # Display
    source_url: str | None = None
    chunk_text: str
