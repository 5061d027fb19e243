from fastapi import APIRouter, Depends, HTTPException, Request

from server.dependencies.auth import get_app_context, verify_api_key
from server.dependencies.context import build_request_context
from server.models.requests import QueryRequest, SearchRequest
from server.models.responses import QueryResponse, SearchResponse, SearchResultItem
from shared.models.errors import BridgeError, ErrorKind

router = APIRouter(prefix="/rag", tags=["rag"])

# failures of a backend the bridge depends on
_UPSTREAM_KINDS = {ErrorKind.EMBEDDING, ErrorKind.INDEX, ErrorKind.MODEL}


def to_http_error(error: BridgeError) -> HTTPException:
    status_code = 502 if error.kind in _UPSTREAM_KINDS else 500
    return HTTPException(status_code=status_code, detail={"kind": error.kind.value, "message": error.message})


@router.post("/search")
async def search_documents(
    request: Request,
    body: SearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Run retrieval only: similarity search, diversification and the evidence gate.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        body (SearchRequest): Query, optional language, pool size and threshold.
        _ (None): Auth dependency result (unused).

    Returns:
        SearchResponse: The evidence chunks and the gate outcome.
    """
    retrieval_service = get_app_context(request).retrieval_service
    try:
        result = await retrieval_service.do_retrieve(body.query, language=body.lang, top_k=body.k, min_score=body.min_score)
    except BridgeError as e:
        raise to_http_error(e)

    items = [
        SearchResultItem(
            document_id=chunk.document_id,
            title=chunk.title,
            path=chunk.path,
            text=chunk.text,
            score=chunk.score,
            language=chunk.language,
            source_url=chunk.source_url,
        )
        for chunk in result.evidence
    ]
    return SearchResponse(
        query=result.query,
        results=items,
        total=len(items),
        top_score=result.top_score,
        has_evidence=result.has_evidence,
    )


@router.post("/query")
async def query_documents(
    request: Request,
    body: QueryRequest,
    _: None = Depends(verify_api_key),
) -> QueryResponse:
    """Answer a question from the corpus.

    Without a chat_id every call gets its own one-off session.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        body (QueryRequest): Question, optional chat id and language.
        _ (None): Auth dependency result (unused).

    Returns:
        QueryResponse: The grounded answer with its sources.
    """
    answer_service = get_app_context(request).answer_service
    ctx = build_request_context(request, body.chat_id)
    try:
        result = await answer_service.do_answer(body.question, ctx, language=body.lang)
    except BridgeError as e:
        raise to_http_error(e)

    return QueryResponse(
        answer=result.answer,
        sources=result.sources,
        question=body.question,
        lang=result.language,
        chat_id=result.chat_id,
        has_evidence=result.has_evidence,
        correlation_id=result.correlation_id,
    )
