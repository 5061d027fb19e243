import json

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request

from server.dependencies.auth import get_app_context, verify_github_signature
from server.models.responses import SyncAcceptedResponse
from services.AppContext import AppContext
from shared.models.errors import BridgeError, ClassificationError
from shared.models.sync import FileChange

router = APIRouter(prefix="/webhook", tags=["webhook"])


async def run_incremental_sync(context: AppContext, revision: str, changes: list[FileChange]) -> None:
    """Background task: run the sync and log a failure."""
    logging = context.helper_config.get_logger()
    try:
        await context.sync_service.do_incremental_sync(revision, changes)
    except BridgeError as e:
        logging.error("Incremental sync for %s failed: %s", revision[:12], e)


@router.post("/github")
async def webhook_github(
    request: Request,
    background_tasks: BackgroundTasks,
    x_github_event: str | None = Header(default=None),
    body: bytes = Depends(verify_github_signature),
) -> SyncAcceptedResponse:
    """Accept a GitHub push webhook and schedule an incremental sync.

    Only push events to the configured default branch are synced. The sync
    itself runs after the response is sent; progress is visible through
    GET /sync/status.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        background_tasks (BackgroundTasks): FastAPI background task queue.
        x_github_event (str | None): The GitHub event name.
        body (bytes): Raw body, returned by the signature dependency.

    Returns:
        SyncAcceptedResponse: Acknowledgement with the revision and change count.

    Raises:
        HTTPException: 400 if the payload cannot be parsed.
    """
    context = get_app_context(request)
    logging = context.helper_config.get_logger()

    if x_github_event != "push":
        return SyncAcceptedResponse(status="ignored", message=f"Event '{x_github_event}' is not handled.")

    try:
        payload = json.loads(body)
        notification = context.classifier.parse_push_payload(payload)
    except (ValueError, ClassificationError) as e:
        logging.warning("Rejected push webhook: %s", e)
        raise HTTPException(status_code=400, detail=f"Malformed push payload: {e}")

    default_branch = context.content_client.get_default_branch()
    if notification.branch != default_branch:
        return SyncAcceptedResponse(
            status="ignored",
            message=f"Push to '{notification.branch}' ignored, only '{default_branch}' is synced.",
            revision=notification.revision,
        )
    if not notification.changes:
        return SyncAcceptedResponse(status="ignored", message="No tracked files changed.", revision=notification.revision)

    logging.info("Push webhook for %s with %d tracked change(s).", notification.revision[:12], len(notification.changes))
    background_tasks.add_task(run_incremental_sync, context, notification.revision, notification.changes)
    return SyncAcceptedResponse(
        status="accepted",
        message="Incremental sync scheduled.",
        revision=notification.revision,
        changes=len(notification.changes),
    )
