import os

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from server.dependencies.auth import get_app_context

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Report the reachability of every backend. Returns 503 if a required one is down."""
    context = get_app_context(request)
    logging = context.helper_config.get_logger()
    services: dict[str, bool] = {}
    for client in context.clients:
        try:
            response = await client.do_healthcheck()
            services[client.get_client_type()] = response.is_success
        except Exception as e:
            logging.warning("Healthcheck of %s client failed: %s", client.get_client_type(), e)
            services[client.get_client_type()] = False

    required = ("rag", "embed", "llm")
    healthy = all(services.get(name, False) for name in required)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": os.getenv("APP_VERSION", "unknown"),
            "services": services,
        },
    )
