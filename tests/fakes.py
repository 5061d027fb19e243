"""In-process fakes of the content, embedding, vector index, model and chat backends."""

import hashlib
import hmac

import httpx

from shared.clients.rag.models.SearchHit import SearchHit

REPO_ID = "acme/policies"
WEBHOOK_SECRET = "hook-secret"


class FakeClient:
    """Lifecycle and healthcheck surface shared by all backend fakes."""

    client_type = "fake"

    def __init__(self):
        self.healthy = True

    def get_client_type(self) -> str:
        return self.client_type

    def get_engine_name(self) -> str:
        return "fake"

    async def boot(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def do_healthcheck(self) -> httpx.Response:
        return httpx.Response(200 if self.healthy else 503)


def sign(body: bytes) -> str:
    return "sha256=" + hmac.new(WEBHOOK_SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()


class FakeContentClient(FakeClient):
    """Serves a mutable in-memory corpus at a single head revision."""

    client_type = "content"

    def __init__(self, files: dict[str, str] | None = None, revision: str = "a" * 40):
        super().__init__()
        self.files = dict(files or {})
        self.revision = revision
        self.failing_paths: set[str] = set()
        self.fetched: list[str] = []
        self.fail_listing = False

    def get_repository_id(self) -> str:
        return REPO_ID

    def get_default_branch(self) -> str:
        return "main"

    def build_source_url(self, path: str, revision: str) -> str:
        return f"https://github.com/{REPO_ID}/blob/{revision}/{path}"

    async def do_fetch_files(self, paths: list[str], revision: str) -> dict:
        results = {}
        for path in paths:
            self.fetched.append(path)
            if path in self.failing_paths or path not in self.files:
                results[path] = Exception(f"404 for {path}")
            else:
                results[path] = self.files[path]
        return results

    async def do_list_files(self, revision: str) -> list[str]:
        if self.fail_listing:
            raise Exception("listing unavailable")
        return list(self.files)

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        return bool(signature) and hmac.compare_digest(sign(body), signature)

    async def do_resolve_revision(self, ref: str | None = None) -> str:
        return self.revision


class FakeEmbedClient(FakeClient):
    client_type = "embed"

    def __init__(self):
        super().__init__()
        self.calls: list[list[str]] = []
        self.fail = False

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        texts = [texts] if isinstance(texts, str) else texts
        if self.fail:
            raise Exception("embedding backend down")
        self.calls.append(list(texts))
        return [[float(len(text)), 1.0, 0.5] for text in texts]

    async def do_fetch_embedding_vector_size(self) -> tuple[int, str]:
        return 3, "Cosine"

    @property
    def embedded_texts(self) -> int:
        return sum(len(call) for call in self.calls)


def _matches(payload: dict, flt: dict | None) -> bool:
    for condition in (flt or {}).get("must", []):
        value = payload.get(condition["key"])
        if "match" in condition and value != condition["match"]["value"]:
            return False
        if "range" in condition:
            bounds = condition["range"]
            if "gte" in bounds and not value >= bounds["gte"]:
                return False
            if "lt" in bounds and not value < bounds["lt"]:
                return False
    return True


class FakeRAGClient(FakeClient):
    """Vector index that stores points and answers searches with preset hits."""

    client_type = "rag"

    def __init__(self):
        super().__init__()
        self.points: dict[str, dict] = {}
        self.search_hits: list[SearchHit] = []
        self.search_filters: list[dict | None] = []
        self.fail_upsert = False
        self.collection_exists = True
        self.collection_config: dict | None = None
        self.payload_indexes: dict[str, str] = {}

    async def do_upsert_points(self, points: list[dict]) -> None:
        if self.fail_upsert:
            raise Exception("upsert rejected")
        for point in points:
            self.points[point["id"]] = point

    async def do_delete_points_by_filter(self, filter: dict) -> None:
        for point_id in [pid for pid, p in self.points.items() if _matches(p["payload"], filter)]:
            del self.points[point_id]

    async def do_search(self, vector, limit, filter=None, score_threshold=None) -> list[SearchHit]:
        self.search_filters.append(filter)
        hits = [hit for hit in self.search_hits if _matches(hit.payload, filter)]
        return sorted(hits, key=lambda h: h.score, reverse=True)[:limit]

    async def do_existence_check(self) -> bool:
        return self.collection_exists

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        self.collection_config = {"size": vector_size, "distance": distance}
        self.collection_exists = True

    async def do_create_payload_index(self, field_name: str, field_schema: str = "keyword") -> None:
        self.payload_indexes[field_name] = field_schema

    def points_of(self, document_id: str) -> list[dict]:
        return sorted(
            (p for p in self.points.values() if p["payload"]["document_id"] == document_id),
            key=lambda p: p["payload"]["seq"],
        )


class FakeLLMClient(FakeClient):
    client_type = "llm"

    def __init__(self, reply: str = "Annual leave is 15 days."):
        super().__init__()
        self.reply = reply
        self.prompts: list[str] = []
        self.fail = False

    async def do_complete(self, prompt: str, temperature: float | None = None) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise Exception("model unavailable")
        return self.reply


class FakeTransportClient(FakeClient):
    client_type = "transport"

    def __init__(self):
        super().__init__()
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def do_send_message(self, chat_id: str, text: str) -> None:
        if self.fail:
            raise Exception("chat platform unreachable")
        self.sent.append((chat_id, text))


def make_hit(
    point_id: str,
    score: float,
    title: str,
    text: str,
    language: str = "ko",
    path: str | None = None,
    document_id: str | None = None,
) -> SearchHit:
    path = path or f"policies/{point_id}.md"
    return SearchHit(
        id=point_id,
        score=score,
        payload={
            "document_id": document_id or f"doc_{point_id}",
            "path": path,
            "title": title,
            "chunk_text": text,
            "language": language,
            "revision": "a" * 40,
            "source_url": f"https://github.com/{REPO_ID}/blob/main/{path}",
        },
    )


