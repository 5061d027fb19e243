"""Retrieval pipeline: embed the query, search the vector index, diversify and gate.

Candidates below the evidence threshold are discarded before diversification;
the survivors are re-ranked with maximal marginal relevance so near-duplicate
chunks of the same section do not crowd out other relevant documents.
"""

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.SearchHit import SearchHit
from shared.helper.HelperConfig import HelperConfig
from shared.helper.text_utils import normalize_whitespace
from shared.models.errors import EmbeddingError, VectorIndexError
from shared.models.search import RetrievalResult, RetrievedChunk

DEFAULT_TOP_K = 6
DEFAULT_MIN_SCORE = 0.80
DEFAULT_MMR_LAMBDA = 0.7
SIMILARITY_SNIPPET_CHARS = 300


def token_similarity(a: RetrievedChunk, b: RetrievedChunk) -> float:
    """Jaccard similarity of the lowercased whitespace tokens of title and text snippet."""
    tokens_a = set(f"{a.title} {a.text[:SIMILARITY_SNIPPET_CHARS]}".lower().split())
    tokens_b = set(f"{b.title} {b.text[:SIMILARITY_SNIPPET_CHARS]}".lower().split())
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def diversify(candidates: list[RetrievedChunk], mmr_lambda: float, limit: int) -> list[RetrievedChunk]:
    """Select up to ``limit`` chunks by maximal marginal relevance.

    Each step picks the candidate maximising
    ``mmr_lambda * score - (1 - mmr_lambda) * max_similarity_to_selected``.
    Ties keep the earlier (higher scored) candidate.

    Args:
        candidates (list[RetrievedChunk]): Candidates, best score first.
        mmr_lambda (float): Weight of relevance against diversity, in [0, 1].
        limit (int): Maximum number of chunks to select.

    Returns:
        list[RetrievedChunk]: The selected chunks in selection order.
    """
    remaining = list(candidates)
    selected: list[RetrievedChunk] = []
    while remaining and len(selected) < limit:
        best_index = 0
        best_value = float("-inf")
        for index, candidate in enumerate(remaining):
            redundancy = max((token_similarity(candidate, chosen) for chosen in selected), default=0.0)
            value = mmr_lambda * candidate.score - (1 - mmr_lambda) * redundancy
            if value > best_value:
                best_index, best_value = index, value
        selected.append(remaining.pop(best_index))
    return selected


class RetrievalService:
    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._rag_client = rag_client

        self.top_k = int(helper_config.get_number_val("RAG_TOP_K", default=DEFAULT_TOP_K))
        self.min_score = float(helper_config.get_number_val("RAG_MIN_SCORE", default=DEFAULT_MIN_SCORE))
        self.mmr_lambda = float(helper_config.get_number_val("RAG_MMR_LAMBDA", default=DEFAULT_MMR_LAMBDA))
        self.filter_by_language = helper_config.get_bool_val("RAG_FILTER_BY_LANGUAGE", default=True)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    @staticmethod
    def to_chunk(hit: SearchHit) -> RetrievedChunk:
        payload = hit.payload
        return RetrievedChunk(
            point_id=hit.id,
            score=hit.score,
            document_id=str(payload.get("document_id", "")),
            path=str(payload.get("path", "")),
            title=str(payload.get("title", "")),
            text=str(payload.get("chunk_text", "")),
            language=payload.get("language"),
            revision=payload.get("revision"),
            source_url=payload.get("source_url"),
        )

    def _build_filter(self, language: str | None) -> dict | None:
        if not language or not self.filter_by_language:
            return None
        return {"must": [RAGClientInterface.match_condition("language", language)]}

    ##########################################
    ################# CORE ###################
    ##########################################

    async def do_retrieve(
        self,
        query: str,
        language: str | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> RetrievalResult:
        """Retrieve diversified evidence for a query.

        Args:
            query (str): The user question.
            language (str | None): Restrict the search to chunks of this language.
            top_k (int | None): Number of candidates to request, defaults to RAG_TOP_K.
            min_score (float | None): Evidence threshold (inclusive), defaults to RAG_MIN_SCORE.

        Returns:
            RetrievalResult: Candidates, evidence and the gate outcome.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            VectorIndexError: If the similarity search fails.
        """
        top_k = top_k or self.top_k
        threshold = self.min_score if min_score is None else min_score
        normalized = normalize_whitespace(query)
        if not normalized:
            return RetrievalResult(query=normalized, min_score=threshold)

        try:
            vectors = await self._embed_client.do_embed([normalized])
        except Exception as exc:
            raise EmbeddingError(f"Query embedding failed: {exc}", subject="query") from exc

        try:
            hits = await self._rag_client.do_search(vectors[0], limit=top_k, filter=self._build_filter(language))
        except Exception as exc:
            raise VectorIndexError(f"Similarity search failed: {exc}", subject="query") from exc

        candidates = sorted((self.to_chunk(hit) for hit in hits), key=lambda chunk: chunk.score, reverse=True)
        top_score = candidates[0].score if candidates else 0.0
        above_threshold = [chunk for chunk in candidates if chunk.score >= threshold]
        evidence = diversify(above_threshold, self.mmr_lambda, top_k)

        self.logging.info(
            "Retrieved %d candidate(s) for query (lang=%s), top score %.3f, %d evidence chunk(s) at threshold %.2f.",
            len(candidates), language or "any", top_score, len(evidence), threshold,
        )
        return RetrievalResult(
            query=normalized,
            candidates=candidates,
            evidence=evidence,
            top_score=top_score,
            min_score=threshold,
            has_evidence=bool(candidates) and top_score >= threshold,
        )
