"""FastAPI application entry point for policy_rag_bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from services.AppContext import build_app_context
from server.routers.HealthRouter import router as health_router
from server.routers.QueryRouter import router as query_router
from server.routers.SyncRouter import router as sync_router
from server.routers.TelegramRouter import router as telegram_router
from server.routers.WebhookRouter import router as webhook_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    helper_config = HelperConfig(logger=logging)
    context = build_app_context(helper_config)
    await context.boot()
    app.state.context = context

    await context.check_connections()
    await context.ensure_collection()

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    await context.close()


app = FastAPI(
    title="policy_rag_bridge",
    description=(
        "Question answering over a versioned corpus of policy documents. "
        "Documents are synced from a GitHub repository into a vector index on every push "
        "(POST /webhook/github) and answered with evidence-gated retrieval and conversation memory "
        "through Telegram (POST /telegram/webhook) or the API (POST /rag/query)."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(webhook_router)
app.include_router(sync_router)
app.include_router(query_router)
app.include_router(telegram_router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("API_SERVER_PORT", "8000"))
    logging.info(
        "Starting policy_rag_bridge API Server v%s from root dir: %s on port %d...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
        port,
    )
    uvicorn.run(app, host="0.0.0.0", port=port)
