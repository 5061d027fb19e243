from uuid import uuid4

from fastapi import Request

from shared.models.context import RequestContext


def build_request_context(request: Request, chat_id: str | None = None) -> RequestContext:
    """Create the per-call context.

    The caller's X-Request-ID becomes the correlation id when given. Without a
    chat id the call gets a one-off session named after the correlation id.
    """
    correlation_id = request.headers.get("x-request-id") or uuid4().hex
    return RequestContext(correlation_id=correlation_id, chat_id=chat_id or f"api_{correlation_id}")
