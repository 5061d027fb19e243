from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from server.dependencies.auth import get_app_context, verify_api_key, verify_telegram_secret
from server.dependencies.context import build_request_context
from shared.models.conversation import ConversationStats, MemoryContext

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    _: None = Depends(verify_telegram_secret),
) -> dict:
    """Accept a Telegram update and answer it in the background.

    Updates without text (stickers, joins, ...) are acknowledged and ignored.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        background_tasks (BackgroundTasks): FastAPI background task queue.
        _ (None): Secret token dependency result (unused).

    Returns:
        dict: Acknowledgement payload.
    """
    context = get_app_context(request)
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Update is not valid JSON")

    update = context.transport_client.parse_update(payload if isinstance(payload, dict) else {})
    if update is None:
        return {"ok": True, "message": "Ignored non-text update"}

    ctx = build_request_context(request, update.chat_id)
    context.helper_config.get_logger().info(
        "[%s] Update from chat %s: %s", ctx.correlation_id, update.chat_id, update.text[:100],
    )
    background_tasks.add_task(context.chat_service.do_handle_update, update, ctx)
    return {"ok": True}


@router.get("/conversations/{chat_id}/stats")
async def conversation_stats(
    request: Request,
    chat_id: str,
    _: None = Depends(verify_api_key),
) -> ConversationStats:
    stats = await get_app_context(request).conversation_service.do_get_stats(chat_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Conversation '{chat_id}' not found")
    return stats


@router.get("/conversations/{chat_id}/memory")
async def conversation_memory(
    request: Request,
    chat_id: str,
    _: None = Depends(verify_api_key),
) -> MemoryContext:
    """Return the memory context the next question of this chat would get."""
    return await get_app_context(request).conversation_service.do_build_memory_context(chat_id)


@router.post("/conversations/{chat_id}/summary")
async def force_summary(
    request: Request,
    chat_id: str,
    _: None = Depends(verify_api_key),
) -> dict:
    """Summarise the conversation now, regardless of the trigger."""
    conversation_service = get_app_context(request).conversation_service
    async with conversation_service.lock(chat_id):
        summary = await conversation_service.do_force_summary(chat_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary available for '{chat_id}'")
    return {"chat_id": chat_id, "summary": summary}
