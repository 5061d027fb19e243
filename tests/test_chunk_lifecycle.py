import pytest

from services.doc_sync.ChunkLifecycle import make_document_id, make_point_id
from shared.models.document import Document
from shared.models.errors import VectorIndexError
from tests.fakes import REPO_ID

PATH = "policies/hr/leave.md"


def make_document(revision: str = "r1") -> Document:
    return Document(
        id=make_document_id(REPO_ID, PATH),
        repo_id=REPO_ID,
        path=PATH,
        revision=revision,
        content_hash=f"hash-{revision}",
        language="en",
        title="Leave",
    )


def vectors_for(texts: list[str]) -> list[list[float]]:
    return [[float(i), 0.0, 1.0] for i, _ in enumerate(texts)]


def test_ids_are_deterministic():
    document_id = make_document_id(REPO_ID, PATH)

    assert document_id.startswith("acme_policies_")
    assert document_id == make_document_id(REPO_ID, PATH)
    assert make_point_id(document_id, 0) == make_point_id(document_id, 0)
    assert make_point_id(document_id, 0) != make_point_id(document_id, 1)


@pytest.mark.asyncio
async def test_first_write_creates_all_chunks(lifecycle, rag_client, store):
    document = make_document()
    texts = ["first", "second", "third"]

    counts = await lifecycle.do_replace_document(document, texts, vectors_for(texts), source_url="https://example/leave")

    assert (counts.created, counts.updated, counts.deleted) == (3, 0, 0)
    points = rag_client.points_of(document.id)
    assert [p["payload"]["seq"] for p in points] == [0, 1, 2]
    assert points[0]["payload"]["source_url"] == "https://example/leave"
    stored = await store.get_document(document.id)
    assert stored.chunk_count == 3
    assert [c.text for c in await store.list_chunks(document.id)] == texts


@pytest.mark.asyncio
async def test_shrinking_document_leaves_no_orphan_points(lifecycle, rag_client, store):
    document = make_document()
    await lifecycle.do_replace_document(document, ["a", "b", "c", "d"], vectors_for("abcd"))

    counts = await lifecycle.do_replace_document(make_document("r2"), ["a2"], vectors_for(["a2"]))

    assert (counts.created, counts.updated, counts.deleted) == (0, 1, 3)
    points = rag_client.points_of(document.id)
    assert len(points) == 1
    assert points[0]["payload"]["chunk_text"] == "a2"
    assert points[0]["payload"]["revision"] == "r2"
    assert len(await store.list_chunks(document.id)) == 1
    assert (await store.get_document(document.id)).chunk_count == 1


@pytest.mark.asyncio
async def test_growing_document_counts_created_chunks(lifecycle, rag_client):
    document = make_document()
    await lifecycle.do_replace_document(document, ["a"], vectors_for(["a"]))

    counts = await lifecycle.do_replace_document(make_document("r2"), ["a", "b", "c"], vectors_for("abc"))

    assert (counts.created, counts.updated, counts.deleted) == (2, 1, 0)
    assert len(rag_client.points_of(document.id)) == 3


@pytest.mark.asyncio
async def test_remove_document_deletes_points_chunks_and_record(lifecycle, rag_client, store):
    document = make_document()
    await lifecycle.do_replace_document(document, ["a", "b"], vectors_for("ab"))

    deleted = await lifecycle.do_remove_document(document.id)

    assert deleted == 2
    assert rag_client.points_of(document.id) == []
    assert await store.list_chunks(document.id) == []
    assert await store.get_document(document.id) is None


@pytest.mark.asyncio
async def test_vector_count_mismatch_is_rejected(lifecycle):
    with pytest.raises(ValueError):
        await lifecycle.do_replace_document(make_document(), ["a", "b"], vectors_for(["a"]))


@pytest.mark.asyncio
async def test_upsert_failure_is_an_index_error(lifecycle, rag_client, store):
    rag_client.fail_upsert = True
    document = make_document()

    with pytest.raises(VectorIndexError):
        await lifecycle.do_replace_document(document, ["a"], vectors_for(["a"]))

    assert await store.get_document(document.id) is None
