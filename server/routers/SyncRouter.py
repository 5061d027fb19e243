from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from server.dependencies.auth import get_app_context, verify_api_key
from server.models.requests import FullSyncRequest
from server.models.responses import SyncAcceptedResponse, SyncStatusResponse
from services.AppContext import AppContext
from shared.models.errors import BridgeError

router = APIRouter(prefix="/sync", tags=["sync"])


async def run_full_sync(context: AppContext, branch: str | None, force: bool) -> None:
    logging = context.helper_config.get_logger()
    try:
        await context.sync_service.do_full_sync(branch=branch, force=force)
    except BridgeError as e:
        logging.error("Full sync failed: %s", e)


@router.post("/full")
async def sync_full(
    request: Request,
    background_tasks: BackgroundTasks,
    body: FullSyncRequest | None = None,
    _: None = Depends(verify_api_key),
) -> SyncAcceptedResponse:
    """Schedule a full resynchronisation of the corpus.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        background_tasks (BackgroundTasks): FastAPI background task queue.
        body (FullSyncRequest | None): Optional branch and force flag.
        _ (None): Auth dependency result (unused).

    Returns:
        SyncAcceptedResponse: Acknowledgement, the job shows up in GET /sync/status.
    """
    body = body or FullSyncRequest()
    context = get_app_context(request)
    background_tasks.add_task(run_full_sync, context, body.branch, body.force)
    return SyncAcceptedResponse(status="accepted", message="Full sync scheduled.")


@router.get("/status")
async def sync_status(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    _: None = Depends(verify_api_key),
) -> SyncStatusResponse:
    """Return the most recent sync jobs, newest first."""
    jobs = await get_app_context(request).sync_service.get_recent_jobs(limit=limit)
    return SyncStatusResponse(jobs=jobs, total=len(jobs))
