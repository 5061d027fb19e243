"""Keeps the chunk rows and the vector points of a document in lockstep.

Point ids are deterministic (uuid5 over document id and sequence), so writing
a document's new chunk set overwrites the points of the previous set in
place. Whatever the previous set had beyond the new chunk count is deleted
right after, which leaves no orphaned points when a document shrinks.
"""

import hashlib
import uuid

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.helper.text_utils import content_hash
from shared.models.document import Chunk, ChunkCounts, Document
from shared.models.errors import StoreError, VectorIndexError
from shared.store.StateStore import StateStore

UPSERT_BATCH_SIZE = 100  # max points per upsert call


def make_document_id(repo_id: str, path: str) -> str:
    """Build the stable document id of a corpus path.

    Args:
        repo_id (str): Repository identifier (e.g. "acme/policies").
        path (str): Repository-relative path.

    Returns:
        str: "<repo with / replaced by _>_<md5 of path>".
    """
    digest = hashlib.md5(path.encode("utf-8")).hexdigest()
    return f"{repo_id.replace('/', '_')}_{digest}"


def make_point_id(document_id: str, seq: int) -> str:
    """Build a deterministic UUID5 point ID for a chunk vector.

    Args:
        document_id (str): Id of the owning document.
        seq (int): Zero-based chunk index within the document.

    Returns:
        str: UUID string usable as a Qdrant point ID.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"{document_id}:{seq}"))


def document_filter(document_id: str) -> dict:
    return {"must": [RAGClientInterface.match_condition("document_id", document_id)]}


class ChunkLifecycle:
    """Writes and removes a document's chunk/point set against the vector index and the chunk store."""

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        store: StateStore,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self._store = store
        self._upsert_batch_size = int(helper_config.get_number_val("SYNC_UPSERT_BATCH_SIZE", default=UPSERT_BATCH_SIZE))

    ##########################################
    ################ BUILDERS ################
    ##########################################

    @staticmethod
    def build_chunks(document: Document, texts: list[str]) -> list[Chunk]:
        return [
            Chunk(
                document_id=document.id,
                seq=seq,
                text=text,
                text_hash=content_hash(text),
                language=document.language,
                title=document.title,
            )
            for seq, text in enumerate(texts)
        ]

    @staticmethod
    def build_points(document: Document, chunks: list[Chunk], vectors: list[list[float]], source_url: str | None) -> list[dict]:
        points: list[dict] = []
        for chunk, vector in zip(chunks, vectors):
            payload = VectorPoint(
                document_id=document.id,
                path=document.path,
                revision=document.revision,
                seq=chunk.seq,
                language=document.language,
                title=document.title,
                content_hash=document.content_hash,
                text_hash=chunk.text_hash,
                source_url=source_url,
                chunk_text=chunk.text,
            )
            points.append({
                "id": make_point_id(document.id, chunk.seq),
                "vector": vector,
                "payload": payload.model_dump(),
            })
        return points

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def do_replace_document(
        self,
        document: Document,
        texts: list[str],
        vectors: list[list[float]],
        source_url: str | None = None,
    ) -> ChunkCounts:
        """Replace the full chunk/point set of a document.

        Args:
            document (Document): The document at its new revision. Its chunk_count is set here.
            texts (list[str]): The new chunk texts in order.
            vectors (list[list[float]]): One embedding per chunk text.
            source_url (str | None): Link stored in every point payload.

        Returns:
            ChunkCounts: Chunks created, updated (overwritten in place) and deleted.

        Raises:
            ValueError: If texts and vectors differ in length.
            VectorIndexError: If the upsert or the stale-tail delete fails.
            StoreError: If the chunk rows or the document record cannot be written.
        """
        if len(texts) != len(vectors):
            raise ValueError(f"Got {len(vectors)} vectors for {len(texts)} chunks of '{document.path}'.")

        previous = await self._store.get_document(document.id)
        previous_count = previous.chunk_count if previous else 0
        chunks = self.build_chunks(document, texts)
        points = self.build_points(document, chunks, vectors, source_url)

        try:
            for batch_start in range(0, len(points), self._upsert_batch_size):
                await self._rag_client.do_upsert_points(points[batch_start: batch_start + self._upsert_batch_size])
            # drop the tail of the old set that the new set did not overwrite
            await self._rag_client.do_delete_points_by_filter({
                "must": [
                    RAGClientInterface.match_condition("document_id", document.id),
                    RAGClientInterface.range_condition("seq", gte=len(chunks)),
                ]
            })
        except Exception as exc:
            raise VectorIndexError(f"Writing points failed: {exc}", subject=document.path) from exc

        try:
            await self._store.replace_chunks(document.id, chunks)
            await self._store.save_document(document.model_copy(update={"chunk_count": len(chunks), "active": True}))
        except Exception as exc:
            raise StoreError(f"Writing chunk rows failed: {exc}", subject=document.path) from exc

        updated = min(previous_count, len(chunks))
        counts = ChunkCounts(
            created=len(chunks) - updated,
            updated=updated,
            deleted=previous_count - updated,
        )
        self.logging.debug(
            "Replaced chunks of '%s': %d created, %d updated, %d deleted.",
            document.path, counts.created, counts.updated, counts.deleted,
        )
        return counts

    async def do_remove_document(self, document_id: str) -> int:
        """Delete all points, chunk rows and the record of a document.

        Returns:
            int: Number of chunks the document had.

        Raises:
            VectorIndexError: If the point delete fails.
            StoreError: If the store rows cannot be deleted.
        """
        try:
            await self._rag_client.do_delete_points_by_filter(document_filter(document_id))
        except Exception as exc:
            raise VectorIndexError(f"Deleting points failed: {exc}", subject=document_id) from exc
        try:
            deleted = await self._store.delete_chunks(document_id)
            await self._store.delete_document(document_id)
        except Exception as exc:
            raise StoreError(f"Deleting chunk rows failed: {exc}", subject=document_id) from exc
        return deleted
